import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import AsyncSessionLocal, close_db, get_db, init_db
from app.delivery_timer import DeliveryTimer
from app.logging_utils import setup_logging
from app.routers.cron import router as cron_router
from app.routers.processing import router as processing_router
from app.security import UnauthorizedError

# Load environment variables
load_dotenv()

# Environment variable parsing
ENV = os.getenv("ENV")
ENV_IS_PROD = ENV == "prod"
COMMIT_HASH = os.getenv("COMMIT_HASH")
if not COMMIT_HASH and ENV_IS_PROD:
    raise ValueError("COMMIT_HASH is required for production environments")

APP_ADDR = os.getenv("HOST", "0.0.0.0")
APP_PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown."""
    # Startup
    setup_logging(LOG_LEVEL)
    await init_db()

    settings = get_settings()
    timer: Optional[DeliveryTimer] = None
    if settings.timer_enabled:
        timer = DeliveryTimer(AsyncSessionLocal, settings)
        timer.start()
    app.state.delivery_timer = timer

    yield

    # Shutdown
    if timer is not None:
        timer.stop()
    await close_db()


app = FastAPI(
    title="SMS Delivery Service",
    description="Scheduled SMS/WhatsApp delivery with retries and stuck-message recovery",
    version=COMMIT_HASH,
    lifespan=lifespan,
)

# Include routers
app.include_router(processing_router, prefix="/api/messages", tags=["messages"])
app.include_router(cron_router, prefix="/api/cron", tags=["cron"])


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Dict[str, Optional[str]]:
    """Health check endpoint with database connectivity."""
    try:
        # Test database connection
        result = await db.execute(text("SELECT 1"))
        db_status = "connected" if result.scalar() == 1 else "error"
    except Exception:
        db_status = "disconnected"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
        "environment": ENV,
        "version": COMMIT_HASH,
    }


# If run directly, start the server
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_ADDR, port=APP_PORT)
