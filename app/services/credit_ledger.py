import logging
from enum import Enum
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.user_repository import UserRepository


class CreditCheck(str, Enum):
    RESERVED = "reserved"
    INSUFFICIENT = "insufficient"
    USER_NOT_FOUND = "user_not_found"


class CreditLedger:
    """Per-user message credits.

    A send reserves one credit up front with a single conditional UPDATE,
    so two concurrent sends cannot both spend a user's last credit. The
    reservation is kept on acceptance and refunded otherwise, leaving the
    balance of a user whose message was rejected unchanged.
    """

    def __init__(self, db: AsyncSession, logger: Optional[logging.Logger] = None):
        self.db = db
        self.user_repo = UserRepository(db)
        self.logger = logger or logging.getLogger(__name__)

    async def check_and_reserve(self, user_id: Union[str, UUID]) -> CreditCheck:
        """Reserve one credit, or report why it cannot be reserved."""
        if await self.user_repo.decrement_credit(user_id):
            return CreditCheck.RESERVED

        credits = await self.user_repo.get_credits(user_id)
        if credits is None:
            return CreditCheck.USER_NOT_FOUND
        return CreditCheck.INSUFFICIENT

    async def commit(self, user_id: Union[str, UUID]) -> None:
        """Keep the reserved credit; the balance already reflects it."""
        self.logger.debug("Credit charged", extra={"user_id": str(user_id)})

    async def release(self, user_id: Union[str, UUID]) -> None:
        """Refund a reservation whose send was not accepted."""
        if not await self.user_repo.increment_credit(user_id):
            self.logger.warning(
                "Could not refund reserved credit", extra={"user_id": str(user_id)}
            )
