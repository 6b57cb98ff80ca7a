from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.clients.base_gateway_client import GatewayOutcome
from app.config import DeliverySettings
from app.models.api.messages import MessageStatus
from app.services.dispatch_service import DispatchService
from app.services.scheduler_service import MessageScheduler


class FakeMonotonic:
    """Monotonic clock that moves forward by ``step`` seconds per reading."""

    def __init__(self, step: float):
        self.step = step
        self.value = 0.0

    def __call__(self) -> float:
        current = self.value
        self.value += self.step
        return current


@pytest.fixture
def make_scheduler(settings: DeliverySettings, stub_gateway, clock):
    def _make(db: AsyncSession, **overrides):
        dispatcher = overrides.pop(
            "dispatcher",
            DispatchService(
                db, settings=settings, client_factory=stub_gateway.factory, clock=clock
            ),
        )
        return MessageScheduler(
            db, settings=settings, dispatcher=dispatcher, clock=clock, **overrides
        )

    return _make


class TestMessageSchedulerRunOnce:
    """Tests for scheduler runs."""

    @pytest.mark.asyncio
    async def test_no_due_messages(self, make_scheduler, test_db: AsyncSession) -> None:
        result = await make_scheduler(test_db).run_once()
        assert result.processed == 0

    @pytest.mark.asyncio
    async def test_dispatches_due_messages(
        self, make_scheduler, test_db: AsyncSession, seed, stub_gateway, clock
    ) -> None:
        user = await seed.user(credits=10)
        gateway = await seed.gateway()
        first = await seed.message(user, gateway)
        second = await seed.message(
            user, gateway, MessageStatus.SCHEDULED, scheduled_for=clock() - timedelta(seconds=5)
        )
        future = await seed.message(
            user, gateway, MessageStatus.SCHEDULED, scheduled_for=clock() + timedelta(days=1)
        )

        result = await make_scheduler(test_db).run_once()

        assert result.processed == 2
        assert (await seed.get_message(first.id)).status == MessageStatus.SENT
        assert (await seed.get_message(second.id)).status == MessageStatus.SENT
        assert (await seed.get_message(future.id)).status == MessageStatus.SCHEDULED
        assert await seed.credits(user.id) == 8
        assert len(stub_gateway.calls) == 2

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(
        self, make_scheduler, test_db: AsyncSession, seed, stub_gateway
    ) -> None:
        user = await seed.user()
        await seed.message(user, await seed.gateway())
        scheduler = make_scheduler(test_db)

        assert (await scheduler.run_once()).processed == 1
        assert (await scheduler.run_once()).processed == 0
        assert len(stub_gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_retry_waits_for_backoff(
        self, make_scheduler, test_db: AsyncSession, seed, stub_gateway, clock
    ) -> None:
        user = await seed.user(credits=10)
        message = await seed.message(user, await seed.gateway())
        stub_gateway.outcomes.append(GatewayOutcome.reject("HTTP 503", status_code=503))
        scheduler = make_scheduler(test_db)

        await scheduler.run_once()
        stored = await seed.get_message(message.id)
        assert stored.status == MessageStatus.RETRY
        assert stored.retry_count == 1

        # Backoff not yet elapsed
        clock.advance(minutes=4)
        assert (await scheduler.run_once()).processed == 0

        clock.advance(minutes=1)
        assert (await scheduler.run_once()).processed == 1

        stored = await seed.get_message(message.id)
        assert stored.status == MessageStatus.SENT
        assert stored.retry_count == 2
        assert stored.error_message is None
        assert await seed.credits(user.id) == 9

    @pytest.mark.asyncio
    async def test_scheduled_message_sent_once_due(
        self, make_scheduler, test_db: AsyncSession, seed, stub_gateway, clock
    ) -> None:
        user = await seed.user()
        message = await seed.message(
            user, await seed.gateway(), MessageStatus.SCHEDULED,
            scheduled_for=clock() + timedelta(minutes=10),
        )
        scheduler = make_scheduler(test_db)

        assert (await scheduler.run_once()).processed == 0

        clock.advance(minutes=10)
        assert (await scheduler.run_once()).processed == 1
        assert (await seed.get_message(message.id)).status == MessageStatus.SENT

    @pytest.mark.asyncio
    async def test_overlapping_runs_send_each_message_once(
        self, make_scheduler, session_factory, seed, stub_gateway
    ) -> None:
        user = await seed.user(credits=10)
        gateway = await seed.gateway()
        messages = [await seed.message(user, gateway) for _ in range(3)]
        overlapping = []
        fired = []

        async def start_second_run() -> None:
            # A second trigger fires while the first send is in flight
            if fired:
                return
            fired.append(True)
            async with session_factory() as other_db:
                overlapping.append(await make_scheduler(other_db).run_once())

        stub_gateway.on_send = start_second_run

        async with session_factory() as db:
            result = await make_scheduler(db).run_once()

        assert result.processed == 1
        assert overlapping[0].processed == 2
        assert len(stub_gateway.calls) == 3
        for message in messages:
            assert (await seed.get_message(message.id)).status == MessageStatus.SENT
        assert await seed.credits(user.id) == 7

    @pytest.mark.asyncio
    async def test_time_budget_defers_remaining(
        self, make_scheduler, test_db: AsyncSession, seed, stub_gateway
    ) -> None:
        user = await seed.user()
        gateway = await seed.gateway()
        messages = [await seed.message(user, gateway) for _ in range(5)]
        # One reading for the start, then one per message: 0, 1, 2, 3...
        scheduler = make_scheduler(test_db, monotonic=FakeMonotonic(step=1.0))

        result = await scheduler.run_once(time_budget=2.5)

        assert result.processed == 2
        statuses = [(await seed.get_message(m.id)).status for m in messages]
        assert statuses == [MessageStatus.SENT] * 2 + [MessageStatus.PENDING] * 3

    @pytest.mark.asyncio
    async def test_batch_size_limits_run(
        self, test_db: AsyncSession, seed, stub_gateway, clock
    ) -> None:
        user = await seed.user()
        gateway = await seed.gateway()
        for _ in range(3):
            await seed.message(user, gateway)
        settings = DeliverySettings(batch_size=2, time_budget_seconds=None)
        dispatcher = DispatchService(
            test_db, settings=settings, client_factory=stub_gateway.factory, clock=clock
        )

        scheduler = MessageScheduler(
            test_db, settings=settings, dispatcher=dispatcher, clock=clock
        )

        assert (await scheduler.run_once()).processed == 2
        assert (await scheduler.run_once()).processed == 1

    @pytest.mark.asyncio
    async def test_failing_message_does_not_stop_batch(
        self, make_scheduler, test_db: AsyncSession, seed
    ) -> None:
        user = await seed.user()
        gateway = await seed.gateway()
        for _ in range(3):
            await seed.message(user, gateway)

        dispatcher = MagicMock()
        dispatcher.attempt = AsyncMock(side_effect=[RuntimeError("boom"), True, True])
        logger = MagicMock()

        with patch.object(test_db, "rollback", new=AsyncMock()) as mock_rollback:
            result = await make_scheduler(
                test_db, dispatcher=dispatcher, logger=logger
            ).run_once()

        assert result.processed == 2
        assert dispatcher.attempt.await_count == 3
        logger.exception.assert_called_once()
        mock_rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_error_does_not_poison_later_messages(
        self, make_scheduler, test_db: AsyncSession, seed, stub_gateway
    ) -> None:
        user = await seed.user(credits=10)
        gateway = await seed.gateway()
        first = await seed.message(user, gateway)
        second = await seed.message(user, gateway)

        scheduler = make_scheduler(test_db)
        gateway_repo = scheduler.dispatcher.gateway_repo
        lookup = gateway_repo.get_by_id
        failures = [OperationalError("SELECT gateways", {}, Exception("server closed"))]

        async def flaky_lookup(gateway_id):
            if failures:
                raise failures.pop()
            return await lookup(gateway_id)

        gateway_repo.get_by_id = flaky_lookup
        original_rollback = test_db.rollback

        with patch.object(
            test_db, "rollback", new=AsyncMock(wraps=original_rollback)
        ) as mock_rollback:
            result = await scheduler.run_once()

        mock_rollback.assert_awaited_once()
        assert result.processed == 1
        # Claimed before the error; left for the stuck-message sweep
        assert (await seed.get_message(first.id)).status == MessageStatus.PROCESSING
        assert (await seed.get_message(second.id)).status == MessageStatus.SENT
        assert len(stub_gateway.calls) == 1

    @pytest.mark.asyncio
    async def test_dispatch_order(self, make_scheduler, test_db: AsyncSession, seed, clock) -> None:
        user = await seed.user()
        gateway = await seed.gateway()
        newer = await seed.message(user, gateway)
        older = await seed.message(
            user, gateway, MessageStatus.SCHEDULED, scheduled_for=clock() - timedelta(days=1)
        )
        dispatcher = MagicMock()
        dispatcher.attempt = AsyncMock()

        await make_scheduler(test_db, dispatcher=dispatcher).run_once()

        dispatched = [call.args[0].id for call in dispatcher.attempt.await_args_list]
        assert dispatched == [older.id, newer.id]
