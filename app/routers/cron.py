import logging
from typing import Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import DeliverySettings, get_settings
from app.database import get_db
from app.models.api.processing import ErrorResponse, ProcessResponse, ReclaimResponse
from app.security import require_cron_secret
from app.services.reclaim_service import StuckMessageReclaimer
from app.services.scheduler_service import MessageScheduler

logger = logging.getLogger(__name__)

# Called by an external scheduler every minute / every five minutes
router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post(
    "/process-scheduled-messages",
    response_model=ProcessResponse,
    responses={500: {"model": ErrorResponse}},
)
async def process_scheduled_messages(
    db: AsyncSession = Depends(get_db),
    settings: DeliverySettings = Depends(get_settings),
) -> Union[ProcessResponse, JSONResponse]:
    """Cron entry point for the scheduler."""
    try:
        scheduler = MessageScheduler(db, settings=settings, logger=logger)
        return await scheduler.run_once(time_budget=settings.time_budget_seconds)
    except Exception as e:
        logger.exception("Cron message processing failed")
        return JSONResponse(status_code=500, content={"error": str(e)})


@router.post(
    "/reset-stuck-messages",
    response_model=ReclaimResponse,
    responses={500: {"model": ErrorResponse}},
)
async def reset_stuck_messages(
    db: AsyncSession = Depends(get_db),
    settings: DeliverySettings = Depends(get_settings),
) -> Union[ReclaimResponse, JSONResponse]:
    """Cron entry point for the stuck-message sweep."""
    try:
        reclaimer = StuckMessageReclaimer(db, settings=settings, logger=logger)
        return await reclaimer.reclaim()
    except Exception as e:
        logger.exception("Cron stuck-message reset failed")
        return JSONResponse(status_code=500, content={"error": str(e)})
