"""Bucket store interfaces.

The admission engine depends on this abstraction (not a concrete store) so
the shared Redis store and the in-process test double are interchangeable.
Stores treat the bucket as an opaque record: they serialize it, attach a
TTL, and hand it back. All interpretation happens in the engine.
"""

from __future__ import annotations

import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bucket:
    """Rate-limiting state for one client identity.

    Attributes:
        tokens: Available tokens, between 0 and the policy ceiling.
        last_refill: UNIX time (seconds) at which ``tokens`` was computed.
    """

    tokens: float
    last_refill: float


def encode_bucket(bucket: Bucket) -> str:
    """Serialize a bucket to its stored JSON form."""

    return json.dumps(
        {"tokens": bucket.tokens, "lastRefill": bucket.last_refill},
        separators=(",", ":"),
    )


def decode_bucket(raw: str | bytes | None) -> Bucket | None:
    """Deserialize a stored record.

    Malformed records decode to ``None`` so the caller treats the client as
    new instead of failing the request.

    Args:
        raw: Stored value as returned by the store, or None when absent.

    Returns:
        The decoded bucket, or None when absent or malformed.
    """

    if raw is None:
        return None

    try:
        payload = json.loads(raw)
        tokens = payload["tokens"]
        last_refill = payload["lastRefill"]
    except (ValueError, TypeError, KeyError) as exc:
        logger.warning(
            "store.record_malformed",
            extra={"error_type": type(exc).__name__},
        )
        return None

    valid = all(
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
        for value in (tokens, last_refill)
    )
    if not valid:
        logger.warning("store.record_malformed", extra={"error_type": "invalid_values"})
        return None

    return Bucket(tokens=float(tokens), last_refill=float(last_refill))


class AbstractBucketStore(ABC):
    """Interface for bucket stores.

    Both operations are independent network calls in production and may fail
    independently. Implementations never raise: a failed read reports an
    absent record and a failed write reports ``False``.
    """

    @abstractmethod
    async def get(self, key: str) -> Bucket | None:
        """Return the bucket stored under ``key``.

        Args:
            key: Client identity (without namespace prefix).

        Returns:
            The stored bucket, or None if absent, expired, malformed or the
            read failed.
        """
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, bucket: Bucket, ttl_seconds: int) -> bool:
        """Store ``bucket`` under ``key``, resetting its expiry to ``ttl_seconds``.

        Returns:
            True when the write was acknowledged by the store.
        """
        raise NotImplementedError

