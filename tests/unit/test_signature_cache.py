"""
Unit tests for the in-memory signature cache
"""

import asyncio
import threading

import pytest

from esign.services.signature_cache import EphemeralSignatureCache, sweep_periodically

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return EphemeralSignatureCache(ttl_seconds=900, clock=clock)


class TestEphemeralSignatureCache:
    def test_put_then_get(self, cache):
        cache.put("1", b"png")
        assert cache.get("1") == b"png"
        assert "1" in cache
        assert len(cache) == 1

    def test_missing_key(self, cache):
        assert cache.get("nope") is None
        assert "nope" not in cache

    def test_entry_expires_after_ttl(self, cache, clock):
        cache.put("1", b"png")
        clock.advance(899)
        assert cache.get("1") == b"png"
        clock.advance(1)
        assert cache.get("1") is None
        assert len(cache) == 0

    def test_reads_do_not_extend_lifetime(self, cache, clock):
        cache.put("1", b"png")
        clock.advance(600)
        cache.get("1")
        clock.advance(300)
        assert cache.get("1") is None

    def test_put_replaces_and_restarts_ttl(self, cache, clock):
        cache.put("1", b"old")
        clock.advance(600)
        cache.put("1", b"new")
        clock.advance(600)
        assert cache.get("1") == b"new"

    def test_delete_is_idempotent(self, cache):
        cache.put("1", b"png")
        cache.delete("1")
        cache.delete("1")
        assert cache.get("1") is None

    def test_purge_expired(self, cache, clock):
        cache.put("old", b"a")
        clock.advance(500)
        cache.put("new", b"b")
        clock.advance(450)

        assert cache.purge_expired() == 1
        assert cache.get("new") == b"b"
        assert len(cache) == 1

    def test_put_sweeps_abandoned_entries(self, cache, clock):
        for i in range(100):
            cache.put(f"abandoned-{i}", b"png")
        clock.advance(901)
        cache.put("fresh", b"png")

        assert len(cache) == 1
        assert cache.get("fresh") == b"png"

    def test_periodic_sweep_runs_without_new_uploads(self, cache, clock):
        cache.put("1", b"png")
        clock.advance(901)

        async def run_sweeper():
            task = asyncio.create_task(sweep_periodically(cache, 0.01))
            await asyncio.sleep(0.1)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run_sweeper())
        assert len(cache) == 0

    def test_clear(self, cache):
        cache.put("1", b"a")
        cache.put("2", b"b")
        cache.clear()
        assert len(cache) == 0

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            EphemeralSignatureCache(ttl_seconds=0)

    def test_concurrent_writers(self):
        cache = EphemeralSignatureCache(ttl_seconds=60)

        def writer(prefix):
            for i in range(200):
                cache.put(f"{prefix}-{i}", b"x")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(cache) == 800
