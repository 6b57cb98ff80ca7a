import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import Clock, utcnow
from app.config import DeliverySettings, get_settings
from app.models.api.processing import ReclaimResponse
from app.repositories.message_repository import MessageRepository


class StuckMessageReclaimer:
    """Returns messages wedged in processing to the retry queue.

    A crash or timeout between the claim and the final status write leaves a
    row in processing forever; this sweep puts it back with its retry_count
    intact.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[DeliverySettings] = None,
        clock: Clock = utcnow,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)
        self.message_repo = MessageRepository(db)

    async def reclaim(self) -> ReclaimResponse:
        now = self.clock()
        cutoff = now - timedelta(seconds=self.settings.stuck_threshold_seconds)

        stuck = await self.message_repo.find_stuck(cutoff)
        if not stuck:
            self.logger.debug("No stuck messages found")
            return ReclaimResponse(reset=0)

        reset = await self.message_repo.reset_stuck(
            [message.id for message in stuck], cutoff, now
        )
        self.logger.info(
            f"Reset {reset} stuck messages",
            extra={"reset": reset, "message_ids": [str(m.id) for m in stuck]},
        )
        return ReclaimResponse(reset=reset)
