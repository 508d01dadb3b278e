"""Unit tests for the expiring store, audio cache and idempotency guard."""
import threading

import pytest

from app.services.cache.audio import AudioBlobCache
from app.services.cache.expiring import ExpiringStore
from app.services.cache.idempotency import IdempotencyGuard, recording_key


class Clock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestExpiringStore:
    """Test the TTL table."""

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            ExpiringStore(0)

    def test_get_before_and_after_expiry(self):
        clock = Clock()
        store = ExpiringStore(10, clock=clock)
        store.put("a", 1)

        clock.now = 9.9
        assert store.get("a") == 1

        clock.now = 10.0
        assert store.get("a") is None
        assert len(store) == 0

    def test_put_replaces_and_restarts_ttl(self):
        clock = Clock()
        store = ExpiringStore(10, clock=clock)
        store.put("a", 1)
        clock.now = 8
        store.put("a", 2)
        clock.now = 15
        assert store.get("a") == 2

    def test_put_if_absent(self):
        clock = Clock()
        store = ExpiringStore(10, clock=clock)

        assert store.put_if_absent("k", "first") is True
        assert store.put_if_absent("k", "second") is False
        assert store.get("k") == "first"

        # An expired entry counts as absent
        clock.now = 11
        assert store.put_if_absent("k", "third") is True
        assert store.get("k") == "third"

    def test_sweep_removes_only_expired(self):
        clock = Clock()
        store = ExpiringStore(10, clock=clock)
        store.put("old", 1)
        clock.now = 5
        store.put("new", 2)
        clock.now = 12

        assert store.sweep() == 1
        assert "old" not in store
        assert "new" in store
        assert len(store) == 1


class TestAudioBlobCache:
    """Test the synthesized audio cache."""

    def test_reads_do_not_consume(self):
        cache = AudioBlobCache(ttl_seconds=300, clock=Clock())
        cache.put("audio-1", b"mp3")

        assert cache.get("audio-1") == b"mp3"
        assert cache.get("audio-1") == b"mp3"

    def test_expires_after_ttl(self):
        clock = Clock()
        cache = AudioBlobCache(ttl_seconds=300, clock=clock)
        cache.put("audio-1", b"mp3")

        clock.now = 299
        assert cache.get("audio-1") == b"mp3"
        clock.now = 300
        assert cache.get("audio-1") is None

    def test_unknown_id(self):
        cache = AudioBlobCache(clock=Clock())
        assert cache.get("missing") is None


class TestIdempotencyGuard:
    """Test recording deduplication."""

    def test_recording_key(self):
        assert recording_key("CA1", "RE9") == "CA1:RE9"

    def test_second_acquire_is_duplicate(self):
        guard = IdempotencyGuard(clock=Clock())
        key = recording_key("CA1", "RE1")

        assert guard.try_acquire(key) is True
        assert guard.try_acquire(key) is False
        assert guard.is_held(key)

    def test_distinct_recordings_are_independent(self):
        guard = IdempotencyGuard(clock=Clock())
        assert guard.try_acquire(recording_key("CA1", "RE1")) is True
        assert guard.try_acquire(recording_key("CA1", "RE2")) is True
        assert guard.try_acquire(recording_key("CA2", "RE1")) is True

    def test_marker_expires(self):
        clock = Clock()
        guard = IdempotencyGuard(ttl_seconds=300, clock=clock)
        key = recording_key("CA1", "RE1")
        guard.try_acquire(key)

        clock.now = 301
        assert not guard.is_held(key)
        assert guard.try_acquire(key) is True

    def test_ended_call_matches_by_id_or_sid(self):
        clock = Clock()
        guard = IdempotencyGuard(ttl_seconds=300, clock=clock)
        guard.mark_ended("CA1", "call-1", "completed")

        assert guard.has_ended("CA-other", "call-1")
        assert guard.has_ended("CA1", "call-other")
        assert not guard.has_ended("CA2", "call-2")

        clock.now = 301
        assert guard.sweep() == 2
        assert not guard.has_ended("CA1", "call-1")

    def test_concurrent_acquire_has_single_winner(self):
        guard = IdempotencyGuard()
        key = recording_key("CA1", "RE1")
        barrier = threading.Barrier(16)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            acquired = guard.try_acquire(key)
            with lock:
                results.append(acquired)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert results.count(False) == 15
