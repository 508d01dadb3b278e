"""Short-lived cache of synthesized speech served to Twilio by URL."""
import logging
import time
from typing import Optional

from app.services.cache.expiring import Clock, ExpiringStore

logger = logging.getLogger(__name__)


class AudioBlobCache:
    """
    Holds TTS audio until Twilio fetches it through ``<Play>``.

    Reads do not delete: Twilio may fetch the same URL more than once.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Clock = time.monotonic):
        self._store: ExpiringStore[bytes] = ExpiringStore(ttl_seconds, clock=clock)

    def put(self, audio_id: str, audio: bytes) -> None:
        self._store.put(audio_id, audio)
        logger.debug(f"[AUDIO CACHE] Stored {audio_id} ({len(audio)} bytes)")

    def get(self, audio_id: str) -> Optional[bytes]:
        return self._store.get(audio_id)

    def sweep(self) -> int:
        removed = self._store.sweep()
        if removed:
            logger.debug(f"[AUDIO CACHE] Swept {removed} expired entries")
        return removed

    def __len__(self) -> int:
        return len(self._store)
