"""In-memory bucket store with simulated expiry.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Records go through the same JSON encoding as the Redis store so that
  precision and malformed-record behaviour match production.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from bucketguard.adapters.rate_limit.base import (
    AbstractBucketStore,
    Bucket,
    decode_bucket,
    encode_bucket,
)


@dataclass
class _StoredRecord:
    raw: str
    expires_at: float


class InMemoryBucketStore(AbstractBucketStore):
    """Dict-backed store that mimics ``GET``/``SETEX`` semantics.

    Expired records are dropped on access and swept on every write, so
    identities that stop sending requests do not accumulate.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, _StoredRecord] = {}

    def _live_record(self, key: str) -> _StoredRecord | None:
        record = self._records.get(key)
        if record is None:
            return None
        if self._clock() >= record.expires_at:
            self._records.pop(key, None)
            return None
        return record

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, record in self._records.items() if record.expires_at <= now]
        for key in expired_keys:
            del self._records[key]

    async def get(self, key: str) -> Bucket | None:
        with self._lock:
            record = self._live_record(key)
            raw = record.raw if record else None
        return decode_bucket(raw)

    async def set(self, key: str, bucket: Bucket, ttl_seconds: int) -> bool:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        with self._lock:
            self._evict_expired_locked()
            self._records[key] = _StoredRecord(
                raw=encode_bucket(bucket),
                expires_at=self._clock() + ttl_seconds,
            )
        return True

    def put_raw(self, key: str, raw: str, ttl_seconds: int) -> None:
        """Store an arbitrary payload under ``key`` (bypasses encoding)."""

        with self._lock:
            self._evict_expired_locked()
            self._records[key] = _StoredRecord(raw=raw, expires_at=self._clock() + ttl_seconds)

    def ttl(self, key: str) -> float | None:
        """Return the remaining lifetime of ``key`` in seconds, or None if absent."""

        with self._lock:
            record = self._live_record(key)
            if record is None:
                return None
            return record.expires_at - self._clock()

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for record in self._records.values() if record.expires_at > now)

    async def ping(self) -> bool:
        """Lifecycle probe; an in-process store is always reachable."""
        return True

    async def aclose(self) -> None:
        return None
