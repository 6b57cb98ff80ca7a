import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.clock import utcnow
from app.database import Base

MESSAGE_STATUSES = (
    "pending",
    "scheduled",
    "processing",
    "retry",
    "sent",
    "delivered",
    "failed",
    "cancelled",
)


class MessageModel(Base):
    """SQLAlchemy model for messages table."""

    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False)
    gateway_id = Column(Uuid(as_uuid=True), ForeignKey("gateways.id"))
    sender_id = Column(String(255))
    recipient = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    scheduled_for = Column(DateTime(timezone=True))
    retry_count = Column(Integer, nullable=False, default=0)
    last_attempt = Column(DateTime(timezone=True))
    next_retry = Column(DateTime(timezone=True))
    error_message = Column(Text)
    sent_at = Column(DateTime(timezone=True))
    provider_message_id = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    gateway = relationship("GatewayModel")
    user = relationship("UserModel")

    __table_args__ = (
        CheckConstraint(
            "status IN ({})".format(", ".join(f"'{s}'" for s in MESSAGE_STATUSES)),
            name="ck_messages_status",
        ),
        Index("idx_messages_status_scheduled_for", "status", "scheduled_for"),
        Index("idx_messages_status_next_retry", "status", "next_retry"),
        Index("idx_messages_status_last_attempt", "status", "last_attempt"),
        Index("idx_messages_user_id", "user_id"),
    )
