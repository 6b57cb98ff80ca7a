import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Uuid

from app.clock import utcnow
from app.database import Base


class GatewayModel(Base):
    """SQLAlchemy model for gateways table."""

    __tablename__ = "gateways"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    provider = Column(String(50), nullable=False)
    api_url = Column(String(512))
    credentials = Column(JSON, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Provider values are validated by the client factory, not the database:
    # twilio, whatsapp_twilio, whatsapp, messagebird
