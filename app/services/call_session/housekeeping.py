"""Periodic cleanup of in-memory call state."""
import asyncio
import logging

from app.services.call_session.manager import CallSessionManager

logger = logging.getLogger(__name__)


async def run_housekeeping(manager: CallSessionManager, interval_seconds: float) -> None:
    """Sweep expired state every ``interval_seconds`` until cancelled."""
    logger.info(f"[HOUSEKEEPING] Started (interval: {interval_seconds:.0f}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            manager.sweep()
        except Exception as e:
            logger.error(f"[HOUSEKEEPING] Sweep failed: {type(e).__name__}: {e}", exc_info=True)
