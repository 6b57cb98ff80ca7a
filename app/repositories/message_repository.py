from datetime import datetime
from typing import Any, List, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy import and_, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.clock import ensure_utc
from app.models.api.messages import CLAIMABLE_STATUSES, MessageRecord, MessageStatus
from app.models.db.message_model import MessageModel
from app.repositories.base_repository import BaseRepository, as_uuid

EXCEEDED_RETRIES_ERROR = "Exceeded maximum retry attempts"
STUCK_RESET_ERROR = "Reset due to timeout"

_CLAIMABLE = [status.value for status in CLAIMABLE_STATUSES]


class MessageRepository(BaseRepository[MessageModel, MessageRecord]):
    """Repository for the messages table and its delivery state machine.

    Every transition is one UPDATE whose WHERE clause holds the expected
    current state, so concurrent triggers race on the database rather than
    in application code. Transition methods return whether this caller won.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(db, MessageModel)

    async def get_by_status(self, status: MessageStatus) -> List[MessageRecord]:
        """Get messages by status."""
        query = (
            select(self.model_class)
            .where(self.model_class.status == status.value)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        db_models = result.scalars().all()
        return [self._to_pydantic(db_model) for db_model in db_models]

    async def select_due(self, now: datetime, limit: int = 100) -> List[MessageRecord]:
        """Messages whose due time has arrived and that may be dispatched.

        pending/scheduled rows are due when scheduled_for is null or past;
        retry rows additionally wait for next_retry. Earliest due first,
        creation order breaking ties.
        """
        model = self.model_class
        due = or_(model.scheduled_for.is_(None), model.scheduled_for <= now)
        retry_ready = or_(model.next_retry.is_(None), model.next_retry <= now)

        query = (
            select(model)
            .where(
                due,
                or_(
                    model.status.in_(
                        [MessageStatus.PENDING.value, MessageStatus.SCHEDULED.value]
                    ),
                    and_(model.status == MessageStatus.RETRY.value, retry_ready),
                ),
            )
            .order_by(
                func.coalesce(model.scheduled_for, model.created_at), model.created_at
            )
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return [self._to_pydantic(db_model) for db_model in result.scalars().all()]

    async def claim(
        self, message_id: Union[str, UUID], now: datetime, max_retries: int
    ) -> bool:
        """Atomically move a claimable message to processing.

        Increments retry_count and stamps last_attempt. Fails when another
        invocation already claimed the row, it left the claimable states,
        or its retries are used up.
        """
        model = self.model_class
        statement = (
            update(model)
            .where(
                model.id == as_uuid(message_id),
                model.status.in_(_CLAIMABLE),
                model.retry_count < max_retries,
            )
            .values(
                status=MessageStatus.PROCESSING.value,
                retry_count=model.retry_count + 1,
                last_attempt=now,
            )
        )
        return await self._execute_update(statement) == 1

    async def mark_exhausted(
        self, message_id: Union[str, UUID], max_retries: int
    ) -> bool:
        """Fail a claimable message that has no retries left, without sending."""
        model = self.model_class
        statement = (
            update(model)
            .where(
                model.id == as_uuid(message_id),
                model.status.in_(_CLAIMABLE),
                model.retry_count >= max_retries,
            )
            .values(
                status=MessageStatus.FAILED.value,
                error_message=EXCEEDED_RETRIES_ERROR,
                next_retry=None,
            )
        )
        return await self._execute_update(statement) == 1

    async def mark_sent(
        self,
        message_id: Union[str, UUID],
        now: datetime,
        provider_message_id: Optional[str] = None,
    ) -> bool:
        """Record provider acceptance.

        Also lands when a sweep already reset the row, since the provider has
        taken the message and sending it again would duplicate it.
        """
        model = self.model_class
        statement = (
            update(model)
            .where(
                model.id == as_uuid(message_id),
                model.status.in_([MessageStatus.PROCESSING.value, *_CLAIMABLE]),
            )
            .values(
                status=MessageStatus.SENT.value,
                sent_at=now,
                error_message=None,
                next_retry=None,
                provider_message_id=provider_message_id,
            )
        )
        return await self._execute_update(statement) == 1

    async def mark_retry(
        self, message_id: Union[str, UUID], reason: str, next_retry: datetime
    ) -> bool:
        """Put an in-flight message back in the queue after a failed attempt."""
        model = self.model_class
        statement = (
            update(model)
            .where(
                model.id == as_uuid(message_id),
                model.status == MessageStatus.PROCESSING.value,
            )
            .values(
                status=MessageStatus.RETRY.value,
                error_message=reason,
                next_retry=next_retry,
            )
        )
        return await self._execute_update(statement) == 1

    async def mark_failed(self, message_id: Union[str, UUID], reason: str) -> bool:
        """Terminally fail an in-flight message."""
        model = self.model_class
        statement = (
            update(model)
            .where(
                model.id == as_uuid(message_id),
                model.status == MessageStatus.PROCESSING.value,
            )
            .values(
                status=MessageStatus.FAILED.value,
                error_message=reason,
                next_retry=None,
            )
        )
        return await self._execute_update(statement) == 1

    def _stuck_condition(self, cutoff: datetime) -> Any:
        model = self.model_class
        return and_(
            model.status == MessageStatus.PROCESSING.value,
            or_(model.last_attempt.is_(None), model.last_attempt < cutoff),
        )

    async def find_stuck(self, cutoff: datetime) -> List[MessageRecord]:
        """Messages in processing whose last attempt started before ``cutoff``."""
        query = (
            select(self.model_class)
            .where(self._stuck_condition(cutoff))
            .order_by(self.model_class.last_attempt)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return [self._to_pydantic(db_model) for db_model in result.scalars().all()]

    async def reset_stuck(
        self, message_ids: Sequence[Union[str, UUID]], cutoff: datetime, now: datetime
    ) -> int:
        """Return stuck messages to retry, preserving retry_count.

        The staleness condition is re-checked in the UPDATE so a row that
        finished meanwhile is left alone.
        """
        if not message_ids:
            return 0

        model = self.model_class
        statement = (
            update(model)
            .where(
                model.id.in_([as_uuid(message_id) for message_id in message_ids]),
                self._stuck_condition(cutoff),
            )
            .values(
                status=MessageStatus.RETRY.value,
                error_message=STUCK_RESET_ERROR,
                next_retry=now,
            )
        )
        return await self._execute_update(statement)

    def _to_pydantic(self, db_model: Any) -> MessageRecord:
        """Convert SQLAlchemy MessageModel to Pydantic MessageRecord."""
        return MessageRecord(
            id=db_model.id,
            user_id=db_model.user_id,
            gateway_id=db_model.gateway_id,
            sender_id=db_model.sender_id,
            recipient=db_model.recipient,
            message=db_model.message,
            status=MessageStatus(db_model.status),
            scheduled_for=ensure_utc(db_model.scheduled_for),
            retry_count=db_model.retry_count or 0,
            last_attempt=ensure_utc(db_model.last_attempt),
            next_retry=ensure_utc(db_model.next_retry),
            error_message=db_model.error_message,
            sent_at=ensure_utc(db_model.sent_at),
            provider_message_id=db_model.provider_message_id,
            created_at=ensure_utc(db_model.created_at),
            updated_at=ensure_utc(db_model.updated_at),
        )

    def _from_pydantic(self, pydantic_model: MessageRecord) -> MessageModel:
        """Convert Pydantic MessageRecord to SQLAlchemy MessageModel."""
        # Leave timestamps unset so the column defaults fill them in
        timestamps = {
            key: value
            for key, value in (
                ("created_at", pydantic_model.created_at),
                ("updated_at", pydantic_model.updated_at),
            )
            if value is not None
        }
        return MessageModel(
            **timestamps,
            id=pydantic_model.id,
            user_id=pydantic_model.user_id,
            gateway_id=pydantic_model.gateway_id,
            sender_id=pydantic_model.sender_id,
            recipient=pydantic_model.recipient,
            message=pydantic_model.message,
            status=pydantic_model.status.value,
            scheduled_for=pydantic_model.scheduled_for,
            retry_count=pydantic_model.retry_count,
            last_attempt=pydantic_model.last_attempt,
            next_retry=pydantic_model.next_retry,
            error_message=pydantic_model.error_message,
            sent_at=pydantic_model.sent_at,
            provider_message_id=pydantic_model.provider_message_id,
        )
