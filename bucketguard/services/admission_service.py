"""Admission decisions for rate-limited requests.

Per request: resolve identity, check store availability, read the bucket,
refill it, compare against the request cost, write the result back, then
allow or deny. Anything that prevents metering (no identity, store down,
failed store call) admits the request.

The read and the write are separate store calls. Two concurrent requests for
the same identity can both read the same snapshot and both be admitted, so
under contention the limit is soft.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from starlette.requests import HTTPConnection

from bucketguard.adapters.rate_limit.base import AbstractBucketStore, Bucket
from bucketguard.adapters.rate_limit.connection import ConnectionLifecycleManager
from bucketguard.services.identity import hash_identity, resolve_client_identity
from bucketguard.services.token_bucket import (
    TokenBucketPolicy,
    compute_available,
    retry_after_seconds,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    """Outcome of a single rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        reason: ``admitted``, ``denied``, ``identity_unresolved``,
            ``store_unavailable`` or ``check_failed``.
        identity: Resolved client identity, if any.
        available_tokens: Tokens in the bucket after the decision was made.
        required_tokens: Cost of the request.
        retry_after_seconds: Wait hint, set only on denial.
    """

    allowed: bool
    reason: str
    identity: str | None = None
    available_tokens: float | None = None
    required_tokens: float | None = None
    retry_after_seconds: int | None = None


class AdmissionService:
    """Token bucket admission engine over a shared store.

    Args:
        store: Bucket store; the engine is its only writer.
        lifecycle: Connection state of the store.
        policy: Limiter configuration.
        forwarded_header: Header consulted first for the client identity.
        clock: Time source returning UNIX seconds.
    """

    def __init__(
        self,
        *,
        store: AbstractBucketStore,
        lifecycle: ConnectionLifecycleManager,
        policy: TokenBucketPolicy,
        forwarded_header: str = "x-forwarded-for",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self.policy = policy
        self._forwarded_header = forwarded_header
        self._clock = clock

    def resolve_identity(self, request: HTTPConnection) -> str | None:
        return resolve_client_identity(request, self._forwarded_header)

    async def check(self, request: HTTPConnection) -> AdmissionDecision:
        """Decide whether ``request`` may proceed."""

        identity = self.resolve_identity(request)
        if identity is None:
            logger.warning(
                "rate_limit.identity_unresolved",
                extra={"path": request.url.path},
            )
            return AdmissionDecision(allowed=True, reason="identity_unresolved")

        return await self.check_identity(identity)

    async def check_identity(self, identity: str) -> AdmissionDecision:
        """Run the bucket check for an already resolved identity.

        Never raises: an unexpected failure is logged and the request is
        admitted.
        """

        identity_hash = hash_identity(identity)

        if not self.lifecycle.is_available:
            logger.warning(
                "rate_limit.fail_open",
                extra={"key_hash": identity_hash, "store_state": self.lifecycle.state.value},
            )
            return AdmissionDecision(allowed=True, reason="store_unavailable", identity=identity)

        try:
            return await self._consume(identity, identity_hash)
        except Exception:
            logger.exception("rate_limit.check_failed", extra={"key_hash": identity_hash})
            return AdmissionDecision(allowed=True, reason="check_failed", identity=identity)

    async def _consume(self, identity: str, identity_hash: str) -> AdmissionDecision:
        policy = self.policy
        now = self._clock()
        snapshot = await self.store.get(identity)
        available = compute_available(snapshot, now, policy)

        if available.tokens >= policy.cost_per_request:
            remaining = available.tokens - policy.cost_per_request
            await self.store.set(
                identity,
                Bucket(tokens=remaining, last_refill=now),
                policy.record_ttl_seconds,
            )
            logger.info(
                "rate_limit.allowed",
                extra={
                    "key_hash": identity_hash,
                    "remaining": round(remaining, 2),
                    "cost": policy.cost_per_request,
                    "new_bucket": snapshot is None,
                },
            )
            return AdmissionDecision(
                allowed=True,
                reason="admitted",
                identity=identity,
                available_tokens=remaining,
                required_tokens=policy.cost_per_request,
            )

        await self.store.set(
            identity,
            Bucket(tokens=available.tokens, last_refill=now),
            policy.record_ttl_seconds,
        )
        wait_seconds = retry_after_seconds(available.tokens, policy)
        logger.warning(
            "rate_limit.denied",
            extra={
                "key_hash": identity_hash,
                "available": round(available.tokens, 2),
                "required": policy.cost_per_request,
                "retry_after_s": wait_seconds,
            },
        )
        return AdmissionDecision(
            allowed=False,
            reason="denied",
            identity=identity,
            available_tokens=available.tokens,
            required_tokens=policy.cost_per_request,
            retry_after_seconds=wait_seconds,
        )

    async def stats(self, identity: str) -> dict[str, Any]:
        """Report an identity's current bucket without writing to the store.

        When the store is unavailable the identity is reported as a fresh,
        full bucket, which is what it would be metered against once the
        store comes back empty.
        """

        now = self._clock()
        snapshot = await self.store.get(identity) if self.lifecycle.is_available else None
        available = compute_available(snapshot, now, self.policy)
        return {
            "identity": identity,
            "availableTokens": round(available.tokens, 2),
            "maxTokens": self.policy.max_tokens,
            "refillRatePerSecond": self.policy.refill_rate_per_second,
            "tokenCost": self.policy.cost_per_request,
            "lastRefill": datetime.fromtimestamp(available.last_refill, tz=timezone.utc).isoformat(),
        }

    async def shutdown(self) -> None:
        """Close the store connection for process termination."""
        await self.lifecycle.shutdown()
