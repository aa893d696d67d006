"""
In-memory holding area for uploaded signatures.

Signature images are biometric-like data, so they are never written to the
database or disk: a processed signature lives here from upload until it is
composited onto the document, or until its time-to-live runs out.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15 * 60


class EphemeralSignatureCache:
    """
    Thread-safe TTL map from record id to signature bytes.

    Expiry is fixed at ``put`` time and is not extended by reads. Every
    ``put`` also sweeps expired entries, so signatures from abandoned
    sessions do not outlive their TTL by more than one upload.

    Args:
        ttl_seconds: Lifetime of an entry
        clock: Monotonic time source, injectable for tests
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[bytes, float]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes) -> None:
        """Store ``data`` for ``key``, replacing any earlier entry and restarting its TTL."""
        now = self._clock()
        with self._lock:
            expired = self._evict_expired(now)
            self._entries[key] = (bytes(data), now + self.ttl_seconds)
        if expired:
            logger.debug("Swept expired signatures", extra={"count": expired})
        logger.debug("Signature cached", extra={"record_id": key, "size": len(data)})

    def get(self, key: str) -> Optional[bytes]:
        """The live bytes for ``key``, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            data, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                logger.debug("Signature expired", extra={"record_id": key})
                return None
            return data

    def delete(self, key: str) -> None:
        """Remove ``key``; a missing key is not an error."""
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        """Evict every expired entry; returns how many were removed."""
        with self._lock:
            removed = self._evict_expired(self._clock())
        if removed:
            logger.info("Purged expired signatures", extra={"count": removed})
        return removed

    def _evict_expired(self, now: float) -> int:
        # Caller holds the lock
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None


async def sweep_periodically(cache: EphemeralSignatureCache, interval_seconds: float) -> None:
    """Purge expired signatures every ``interval_seconds`` until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        cache.purge_expired()
