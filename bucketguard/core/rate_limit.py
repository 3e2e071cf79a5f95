"""Rate limiting dependency for FastAPI routes.

This module wires the admission engine into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- Swap-friendly: the store sits behind an abstract interface (Redis in
  production, in-process for tests and ``REDIS_URL=memory://``).
- Fail open: an unreachable store never blocks traffic.

Rate limiting strategy:
- Token bucket per client identity, state shared through the store.
- Identity is the X-Forwarded-For header, falling back to the peer address.
"""

from __future__ import annotations

import logging

from fastapi import Request

from bucketguard.adapters.rate_limit.base import AbstractBucketStore
from bucketguard.adapters.rate_limit.connection import ConnectionLifecycleManager
from bucketguard.adapters.rate_limit.in_memory import InMemoryBucketStore
from bucketguard.adapters.rate_limit.redis_store import RedisBucketStore, create_redis_client
from bucketguard.core.config import Settings, settings
from bucketguard.core.errors import RateLimitExceededError
from bucketguard.services.admission_service import AdmissionService
from bucketguard.services.token_bucket import TokenBucketPolicy

logger = logging.getLogger(__name__)


def build_admission_service(app_settings: Settings | None = None) -> AdmissionService:
    """Create the admission engine and its store from settings.

    Nothing connects here; call ``lifecycle.start()`` from the app lifespan.

    Raises:
        ValidationAppError: If the configured policy is invalid.
    """

    cfg = app_settings or settings
    policy = TokenBucketPolicy.from_settings(cfg.rate_limit)

    lifecycle_options = {
        "connect_timeout": cfg.redis.connect_timeout_seconds,
        "reconnect_interval": cfg.redis.reconnect_interval_seconds,
        "max_reconnect_attempts": cfg.redis.max_reconnect_attempts,
    }
    if cfg.redis.is_in_memory:
        memory_store = InMemoryBucketStore()
        lifecycle = ConnectionLifecycleManager(memory_store, **lifecycle_options)
        store: AbstractBucketStore = memory_store
    else:
        client = create_redis_client(cfg.redis)
        lifecycle = ConnectionLifecycleManager(client, **lifecycle_options)
        store = RedisBucketStore(
            client,
            lifecycle=lifecycle,
            key_prefix=cfg.rate_limit.key_prefix,
            operation_timeout=cfg.redis.socket_timeout_seconds,
        )

    logger.info(
        "rate_limit.configured",
        extra={
            "enabled": cfg.rate_limit.enabled,
            "refill_rate_per_second": policy.refill_rate_per_second,
            "max_tokens": policy.max_tokens,
            "cost_per_request": policy.cost_per_request,
            "record_ttl_seconds": policy.record_ttl_seconds,
            "store": cfg.redis.masked_endpoint(),
        },
    )

    return AdmissionService(
        store=store,
        lifecycle=lifecycle,
        policy=policy,
        forwarded_header=cfg.rate_limit.forwarded_header,
    )


def get_admission_service(request: Request) -> AdmissionService:
    """Return the app-wide admission engine created by the app factory."""
    return request.app.state.admission_service


async def enforce_rate_limit(request: Request) -> None:
    """FastAPI dependency enforcing the token bucket.

    When enabled, debits the request cost from the caller's bucket. If the
    bucket cannot cover it, raises ``RateLimitExceededError`` (HTTP 429).
    """

    if not settings.rate_limit.enabled:
        return

    decision = await get_admission_service(request).check(request)
    if decision.allowed:
        return

    raise RateLimitExceededError(
        retry_after_seconds=decision.retry_after_seconds or 0,
        available_tokens=decision.available_tokens or 0.0,
        required_tokens=decision.required_tokens or 0.0,
    )
