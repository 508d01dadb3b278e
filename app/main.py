"""Main FastAPI application."""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from app.core.config import settings
from app.core.dependencies import get_call_session_manager
from app.core.logging import setup_logging
from app.db.database import init_db
from app.api import audio, health
from app.api.webhooks import voice
from app.services.call_session.housekeeping import run_housekeeping

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    setup_logging(settings.log_level)
    await init_db()
    manager = get_call_session_manager()
    housekeeping = asyncio.create_task(
        run_housekeeping(manager, settings.housekeeping_interval_seconds)
    )
    yield
    # Shutdown
    housekeeping.cancel()
    with suppress(asyncio.CancelledError):
        await housekeeping
    if manager.supervisor.pending:
        logger.info(f"Cancelling {manager.supervisor.pending} background task(s)")
    await manager.supervisor.cancel_all()


app = FastAPI(
    title="Voice Call Orchestrator",
    description="Turn-taking voice agent driven by Twilio webhooks",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(health.router, tags=["health"])
app.include_router(voice.router, prefix="/webhooks", tags=["webhooks"])
app.include_router(audio.router, tags=["audio"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)
