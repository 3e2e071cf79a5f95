"""Token bucket arithmetic.

Pure functions over a bucket snapshot and the current time. Nothing here
performs I/O or raises for well-formed input, so the whole algorithm can be
exercised with plain numbers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from bucketguard.adapters.rate_limit.base import Bucket
from bucketguard.core.config import RateLimitSettings
from bucketguard.core.errors import ValidationAppError


@dataclass(frozen=True)
class TokenBucketPolicy:
    """Immutable limiter configuration.

    Attributes:
        refill_rate_per_second: Tokens granted per elapsed second.
        max_tokens: Bucket ceiling.
        cost_per_request: Tokens debited per admitted request.
        record_ttl_seconds: Store-side expiry applied on every write.
    """

    refill_rate_per_second: float
    max_tokens: float
    cost_per_request: float
    record_ttl_seconds: int

    def __post_init__(self) -> None:
        for field_name in ("refill_rate_per_second", "max_tokens", "cost_per_request"):
            value = getattr(self, field_name)
            if not math.isfinite(value) or value <= 0:
                raise ValidationAppError(
                    code="invalid_rate_limit_policy",
                    message=f"{field_name} must be a positive number",
                    details={"field": field_name},
                )
        if self.record_ttl_seconds < 1:
            raise ValidationAppError(
                code="invalid_rate_limit_policy",
                message="record_ttl_seconds must be >= 1",
                details={"field": "record_ttl_seconds"},
            )

    @classmethod
    def from_settings(cls, rate_limit_settings: RateLimitSettings) -> "TokenBucketPolicy":
        return cls(
            refill_rate_per_second=rate_limit_settings.refill_rate_per_second,
            max_tokens=rate_limit_settings.max_tokens,
            cost_per_request=rate_limit_settings.cost_per_request,
            record_ttl_seconds=rate_limit_settings.record_ttl_seconds,
        )


def compute_available(bucket: Bucket | None, now: float, policy: TokenBucketPolicy) -> Bucket:
    """Refill a bucket snapshot up to ``now``.

    A missing bucket is a new client and starts full. Otherwise tokens grow
    linearly with elapsed time, clamped to the ceiling. The returned
    ``last_refill`` is the snapshot's anchor, unchanged: only a write moves it.

    Args:
        bucket: Stored snapshot, or None if the client has no record.
        now: Current UNIX time in seconds.
        policy: Limiter configuration.

    Returns:
        Bucket holding the tokens available at ``now``.
    """

    if bucket is None:
        return Bucket(tokens=policy.max_tokens, last_refill=now)

    elapsed = max(0.0, now - bucket.last_refill)
    tokens = min(policy.max_tokens, bucket.tokens + elapsed * policy.refill_rate_per_second)
    return Bucket(tokens=tokens, last_refill=bucket.last_refill)


def retry_after_seconds(tokens: float, policy: TokenBucketPolicy) -> int:
    """Whole seconds until ``tokens`` grows enough to cover one request."""

    needed = policy.cost_per_request - tokens
    if needed <= 0:
        return 0
    return math.ceil(needed / policy.refill_rate_per_second)
