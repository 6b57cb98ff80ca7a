import logging
from typing import Union

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import DeliverySettings, get_settings
from app.database import get_db
from app.models.api.processing import ErrorResponse, ProcessResponse
from app.security import require_processing_token
from app.services.scheduler_service import MessageScheduler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/process",
    response_model=ProcessResponse,
    responses={500: {"model": ErrorResponse}},
    dependencies=[Depends(require_processing_token)],
)
async def process_scheduled_messages(
    db: AsyncSession = Depends(get_db),
    settings: DeliverySettings = Depends(get_settings),
) -> Union[ProcessResponse, JSONResponse]:
    """
    Run the scheduler now and report how many messages were dispatched.

    Per-message results are recorded on each message row, not returned here.
    """
    try:
        scheduler = MessageScheduler(db, settings=settings, logger=logger)
        return await scheduler.run_once(time_budget=settings.time_budget_seconds)
    except Exception as e:
        logger.exception("On-demand message processing failed")
        return JSONResponse(status_code=500, content={"error": str(e)})
