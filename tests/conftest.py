import os

# Must be set before app.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DELIVERY_TIMER_ENABLED", "false")
os.environ.setdefault("COMMIT_HASH", "test")

from datetime import datetime, timedelta, timezone  # noqa: E402
from typing import Any, AsyncGenerator, Awaitable, Callable, Dict, Generator, List, Optional, Union  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402
from uuid import UUID, uuid4  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

import app.models.db  # noqa: E402,F401
from app.clients.base_gateway_client import BaseGatewayClient, GatewayOutcome  # noqa: E402
from app.config import DeliverySettings  # noqa: E402
from app.database import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.api.gateways import GatewayConfig  # noqa: E402
from app.models.api.messages import MessageRecord, MessageStatus  # noqa: E402
from app.models.api.users import UserAccount  # noqa: E402
from app.repositories.gateway_repository import GatewayRepository  # noqa: E402
from app.repositories.message_repository import MessageRepository  # noqa: E402
from app.repositories.user_repository import UserRepository  # noqa: E402


class FakeClock:
    """Controllable replacement for utcnow."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class StubGateway:
    """Records sends and answers with queued outcomes (or raises queued errors)."""

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.outcomes: List[Union[GatewayOutcome, Exception]] = []
        self.default: Union[GatewayOutcome, Exception] = GatewayOutcome.accept("SM-stub")
        self.on_send: Optional[Callable[[], Awaitable[None]]] = None

    def factory(self, gateway: GatewayConfig, timeout: float) -> BaseGatewayClient:
        return _StubClient(self, gateway, timeout)


class _StubClient(BaseGatewayClient):
    def __init__(self, stub: StubGateway, gateway: GatewayConfig, timeout: float):
        super().__init__(gateway, timeout=timeout)
        self.stub = stub

    async def send_message(
        self, recipient: str, body: str, sender_id: Optional[str]
    ) -> GatewayOutcome:
        self.stub.calls.append(
            {
                "gateway_id": self.gateway.id,
                "recipient": recipient,
                "body": body,
                "sender_id": sender_id,
            }
        )
        if self.stub.on_send is not None:
            await self.stub.on_send()
        outcome = self.stub.outcomes.pop(0) if self.stub.outcomes else self.stub.default
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def extract_message_id(self, response_data: Dict[str, Any]) -> str:
        return ""

    def extract_error(self, response_data: Dict[str, Any]) -> Optional[str]:
        return None


class Seeder:
    """Writes fixture rows through the repositories, each in its own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: FakeClock):
        self.session_factory = session_factory
        self.clock = clock
        self._created = 0

    async def user(
        self, credits: int = 10, sender_names: Optional[List[str]] = None
    ) -> UserAccount:
        async with self.session_factory() as session:
            return await UserRepository(session).create(
                UserAccount(
                    id=uuid4(),
                    email="sender@example.com",
                    credits=credits,
                    sender_names=["ACME"] if sender_names is None else sender_names,
                )
            )

    async def gateway(
        self,
        provider: str = "twilio",
        is_active: bool = True,
        credentials: Optional[Dict[str, Any]] = None,
    ) -> GatewayConfig:
        async with self.session_factory() as session:
            return await GatewayRepository(session).create(
                GatewayConfig(
                    id=uuid4(),
                    name=f"{provider} gateway",
                    provider=provider,
                    credentials=credentials
                    if credentials is not None
                    else {"account_sid": "AC123", "auth_token": "secret"},
                    is_active=is_active,
                )
            )

    async def message(
        self,
        user: UserAccount,
        gateway: Optional[GatewayConfig],
        status: MessageStatus = MessageStatus.PENDING,
        **fields: Any,
    ) -> MessageRecord:
        # Creation order follows insertion order
        self._created += 1
        fields.setdefault("sender_id", "ACME")
        fields.setdefault("created_at", self.clock() - timedelta(hours=1) + timedelta(
            milliseconds=self._created
        ))
        async with self.session_factory() as session:
            return await MessageRepository(session).create(
                MessageRecord(
                    id=uuid4(),
                    user_id=user.id,
                    gateway_id=gateway.id if gateway else uuid4(),
                    recipient="+15550001111",
                    message="Your appointment is tomorrow at 10:00",
                    status=status,
                    **fields,
                )
            )

    async def get_message(self, message_id: UUID) -> MessageRecord:
        async with self.session_factory() as session:
            message = await MessageRepository(session).get_by_id(message_id)
            assert message is not None
            return message

    async def credits(self, user_id: UUID) -> Optional[int]:
        async with self.session_factory() as session:
            return await UserRepository(session).get_credits(user_id)


@pytest.fixture
async def test_engine(tmp_path: Any) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite database file per test, so conditional updates run for real."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'delivery.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session used by the code under test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def settings() -> DeliverySettings:
    return DeliverySettings(timer_enabled=False, time_budget_seconds=None)


@pytest.fixture
def stub_gateway() -> StubGateway:
    return StubGateway()


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession], clock: FakeClock) -> Seeder:
    return Seeder(session_factory, clock)


@pytest.fixture
async def mock_db() -> AsyncGenerator[AsyncMock, None]:
    """Create a mock database session for unit tests."""
    mock_session = AsyncMock()
    mock_session.commit = AsyncMock()
    mock_session.rollback = AsyncMock()
    mock_session.close = AsyncMock()
    mock_session.refresh = AsyncMock()
    mock_session.execute = AsyncMock()
    mock_session.add = MagicMock()  # add is sync, not async

    yield mock_session


@pytest.fixture
def client() -> Generator[TestClient, Any, None]:
    """Create a test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client
