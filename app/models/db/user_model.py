import uuid

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Integer, String, Uuid

from app.clock import utcnow
from app.database import Base


class UserModel(Base):
    """SQLAlchemy model for users table (only the columns delivery needs)."""

    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255))
    credits = Column(Integer, nullable=False, default=0)
    sender_names = Column(JSON, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (CheckConstraint("credits >= 0", name="ck_users_credits"),)
