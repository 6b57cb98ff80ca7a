from typing import List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserAccount(BaseModel):
    """Identity and credit balance of a sending user."""

    id: UUID
    email: str = ""
    credits: int = 0
    sender_names: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)
