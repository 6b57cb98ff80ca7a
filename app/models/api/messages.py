from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MessageStatus(str, Enum):
    """Lifecycle states of an outbound message."""

    PENDING = "pending"
    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    RETRY = "retry"
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


# States a dispatch attempt may claim a message from
CLAIMABLE_STATUSES = (MessageStatus.PENDING, MessageStatus.SCHEDULED, MessageStatus.RETRY)

# Sinks: never mutated again by the delivery pipeline
TERMINAL_STATUSES = (
    MessageStatus.SENT,
    MessageStatus.DELIVERED,
    MessageStatus.FAILED,
    MessageStatus.CANCELLED,
)


class MessageRecord(BaseModel):
    """A row of the messages table as seen by the delivery pipeline."""

    id: UUID
    user_id: UUID
    gateway_id: Optional[UUID] = None
    sender_id: Optional[str] = None
    recipient: str
    message: str
    status: MessageStatus = MessageStatus.PENDING
    scheduled_for: Optional[datetime] = None
    retry_count: int = Field(default=0, ge=0)
    last_attempt: Optional[datetime] = None
    next_retry: Optional[datetime] = None
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    provider_message_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
