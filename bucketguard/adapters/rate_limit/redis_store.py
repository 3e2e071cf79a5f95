"""Redis-backed bucket store shared by every server instance.

One record per client under ``{key_prefix}{identity}``, written with
``SETEX`` so each write refreshes the expiry. The read-modify-write done by
the admission engine around these calls is not atomic; see DESIGN.md.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable

import redis.asyncio as aioredis
from redis.exceptions import DataError, ResponseError

from bucketguard.adapters.rate_limit.base import (
    AbstractBucketStore,
    Bucket,
    decode_bucket,
    encode_bucket,
)
from bucketguard.adapters.rate_limit.connection import (
    CONNECTION_ERRORS,
    ConnectionLifecycleManager,
)
from bucketguard.core.config import RedisSettings
from bucketguard.core.errors import StoreAppError

logger = logging.getLogger(__name__)

# Subset of CONNECTION_ERRORS that says nothing about the connection itself.
_COMMAND_ERRORS = (ResponseError, DataError)


def create_redis_client(redis_settings: RedisSettings) -> aioredis.Redis:
    """Build an asyncio Redis client from settings.

    The client connects lazily; nothing touches the network until the
    lifecycle manager's first probe.
    """

    common: dict[str, Any] = {
        "socket_timeout": redis_settings.socket_timeout_seconds,
        "socket_connect_timeout": redis_settings.connect_timeout_seconds,
        "decode_responses": True,
    }
    if redis_settings.url:
        return aioredis.from_url(redis_settings.url, **common)
    return aioredis.Redis(
        host=redis_settings.host,
        port=redis_settings.port,
        username=redis_settings.username,
        password=redis_settings.password,
        db=redis_settings.db,
        **common,
    )


class RedisBucketStore(AbstractBucketStore):
    """Bucket store over ``GET``/``SETEX``.

    Args:
        client: asyncio Redis client.
        lifecycle: Manager notified when a call fails at the connection level.
        key_prefix: Namespace for bucket keys.
        operation_timeout: Upper bound in seconds for a single call.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        *,
        lifecycle: ConnectionLifecycleManager | None = None,
        key_prefix: str = "rate_limit:",
        operation_timeout: float = 1.0,
    ) -> None:
        self._client = client
        self._lifecycle = lifecycle
        self._key_prefix = key_prefix
        self._operation_timeout = operation_timeout

    def _key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    async def _call(self, operation: str, awaitable: Awaitable[Any]) -> Any:
        """Run one store command with a latency bound.

        Raises:
            StoreAppError: If the command fails or times out.
        """

        try:
            return await asyncio.wait_for(awaitable, timeout=self._operation_timeout)
        except _COMMAND_ERRORS as exc:
            raise StoreAppError(
                code="store_command_failed",
                message=f"Store {operation} failed: {exc}",
                details={"operation": operation},
            ) from exc
        except CONNECTION_ERRORS as exc:
            if self._lifecycle is not None:
                self._lifecycle.report_connection_error(exc)
            raise StoreAppError(
                code="store_unreachable",
                message=f"Store {operation} failed: {type(exc).__name__}",
                details={"operation": operation},
            ) from exc

    async def get(self, key: str) -> Bucket | None:
        try:
            raw = await self._call("get", self._client.get(self._key(key)))
        except StoreAppError as exc:
            logger.error(
                "store.get_failed",
                extra={"error_code": exc.code, "error_msg": exc.message},
            )
            return None
        return decode_bucket(raw)

    async def set(self, key: str, bucket: Bucket, ttl_seconds: int) -> bool:
        try:
            await self._call(
                "setex",
                self._client.setex(self._key(key), ttl_seconds, encode_bucket(bucket)),
            )
        except StoreAppError as exc:
            logger.error(
                "store.set_failed",
                extra={"error_code": exc.code, "error_msg": exc.message},
            )
            return False
        return True

