"""Deduplication of repeated and late webhooks."""
import time
from typing import Optional

from app.services.cache.expiring import Clock, ExpiringStore


def recording_key(call_sid: str, recording_ref: str) -> str:
    """Marker key for one recorded utterance of one call."""
    return f"{call_sid}:{recording_ref}"


class IdempotencyGuard:
    """
    In-progress markers keyed by recording, plus markers for calls that ended.

    The TTL must outlast Twilio's webhook retry window.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Clock = time.monotonic):
        self._store: ExpiringStore[bool] = ExpiringStore(ttl_seconds, clock=clock)
        self._ended: ExpiringStore[str] = ExpiringStore(ttl_seconds, clock=clock)

    def try_acquire(self, key: str) -> bool:
        """True if the caller now owns processing for ``key``; False for a duplicate."""
        return self._store.put_if_absent(key, True)

    def is_held(self, key: str) -> bool:
        return key in self._store

    def mark_ended(self, call_sid: str, call_id: Optional[str], status: str) -> None:
        """Remember that a call ended so late webhooks for it are dropped."""
        self._ended.put(f"sid:{call_sid}", status)
        if call_id:
            self._ended.put(f"call:{call_id}", status)

    def has_ended(self, call_sid: str, call_id: str) -> bool:
        return f"sid:{call_sid}" in self._ended or f"call:{call_id}" in self._ended

    def sweep(self) -> int:
        return self._store.sweep() + self._ended.sweep()
