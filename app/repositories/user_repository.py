from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.models.api.users import UserAccount
from app.models.db.user_model import UserModel
from app.repositories.base_repository import BaseRepository, as_uuid


class UserRepository(BaseRepository[UserModel, UserAccount]):
    """Repository for user identity and credit balance."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, UserModel)

    async def get_credits(self, user_id: Union[str, UUID]) -> Optional[int]:
        """Current credit balance, or None when the user does not exist."""
        query = select(self.model_class.credits).where(
            self.model_class.id == as_uuid(user_id)
        )
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def decrement_credit(self, user_id: Union[str, UUID]) -> bool:
        """Take one credit if the balance is positive, in a single UPDATE."""
        model = self.model_class
        statement = (
            update(model)
            .where(model.id == as_uuid(user_id), model.credits > 0)
            .values(credits=model.credits - 1)
        )
        return await self._execute_update(statement) == 1

    async def increment_credit(self, user_id: Union[str, UUID]) -> bool:
        """Give one credit back."""
        model = self.model_class
        statement = (
            update(model)
            .where(model.id == as_uuid(user_id))
            .values(credits=model.credits + 1)
        )
        return await self._execute_update(statement) == 1

    def _to_pydantic(self, db_model: Any) -> UserAccount:
        """Convert SQLAlchemy UserModel to Pydantic UserAccount."""
        return UserAccount(
            id=db_model.id,
            email=db_model.email or "",
            credits=db_model.credits or 0,
            sender_names=db_model.sender_names or [],
        )

    def _from_pydantic(self, pydantic_model: UserAccount) -> UserModel:
        """Convert Pydantic UserAccount to SQLAlchemy UserModel."""
        return UserModel(
            id=pydantic_model.id,
            email=pydantic_model.email,
            credits=pydantic_model.credits,
            sender_names=pydantic_model.sender_names,
        )
