"""Time-to-live lookup table shared by the audio cache and the idempotency guard."""
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Generic, Optional, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


@dataclass(frozen=True)
class Entry(Generic[V]):
    value: V
    created_at: float
    expires_at: float


class ExpiringStore(Generic[V]):
    """
    Thread-safe key/value table whose entries expire a fixed TTL after insertion.

    Expired entries are never returned, even before ``sweep`` removes them.
    The clock is injectable so expiry can be exercised without sleeping.
    """

    def __init__(self, ttl_seconds: float, clock: Clock = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Entry[V]] = {}
        self._lock = Lock()

    def _new_entry(self, value: V) -> Entry[V]:
        now = self._clock()
        return Entry(value=value, created_at=now, expires_at=now + self.ttl_seconds)

    def _live(self, key: str, now: float) -> Optional[Entry[V]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            del self._entries[key]
            return None
        return entry

    def put(self, key: str, value: V) -> None:
        """Insert or replace an entry."""
        entry = self._new_entry(value)
        with self._lock:
            self._entries[key] = entry

    def put_if_absent(self, key: str, value: V) -> bool:
        """Insert only when no live entry exists. Returns True if inserted."""
        with self._lock:
            if self._live(key, self._clock()) is not None:
                return False
            self._entries[key] = self._new_entry(value)
            return True

    def get(self, key: str) -> Optional[V]:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry.value if entry else None

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def sweep(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)
