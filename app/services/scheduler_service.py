import logging
import time
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.clock import Clock, utcnow
from app.config import DeliverySettings, get_settings
from app.models.api.processing import ProcessResponse
from app.repositories.message_repository import MessageRepository
from app.services.dispatch_service import DispatchService


class MessageScheduler:
    """Finds due messages and hands them to the dispatch service one by one.

    Shared by every trigger (in-process timer, cron endpoint, on-demand
    endpoint). Safe to run concurrently: each message is claimed with a
    conditional update before it is sent.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Optional[DeliverySettings] = None,
        dispatcher: Optional[DispatchService] = None,
        clock: Clock = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.monotonic = monotonic
        self.logger = logger or logging.getLogger(__name__)
        self.message_repo = MessageRepository(db)
        self.dispatcher = dispatcher or DispatchService(
            db, settings=self.settings, clock=clock, logger=self.logger
        )

    async def run_once(self, time_budget: Optional[float] = None) -> ProcessResponse:
        """Dispatch every due message, oldest first.

        Args:
            time_budget: seconds after which no further message is started;
                leftovers stay eligible for the next run. None means no limit.

        Returns:
            ProcessResponse with the number of messages this run claimed
            (or failed as exhausted); rows taken by a concurrent run are not
            counted.
        """
        started = self.monotonic()
        messages = await self.message_repo.select_due(
            self.clock(), limit=self.settings.batch_size
        )

        if not messages:
            self.logger.debug("No scheduled messages to process")
            return ProcessResponse(processed=0)

        self.logger.info(f"Processing {len(messages)} scheduled messages")

        processed = 0
        for index, message in enumerate(messages):
            if time_budget is not None and self.monotonic() - started >= time_budget:
                self.logger.info(
                    "Time budget exhausted, deferring remaining messages",
                    extra={"processed": processed, "deferred": len(messages) - index},
                )
                break

            try:
                if await self.dispatcher.attempt(message):
                    processed += 1
            except Exception:
                # One message must never stop the batch
                self.logger.exception(
                    "Error dispatching message", extra={"message_id": str(message.id)}
                )
                await self.db.rollback()

        self.logger.info(
            "Finished processing scheduled messages", extra={"processed": processed}
        )
        return ProcessResponse(processed=processed)
