"""Connection lifecycle for the shared bucket store.

The manager is the single source of truth for "can the store be used right
now". It models the connection as an explicit state machine::

    DISCONNECTED -> CONNECTING -> READY
    READY -> RECONNECTING -> READY
    any -> DISCONNECTED   (retries exhausted or shutdown)

Only READY reports available. Every other state makes the admission engine
fail open. Connecting and reconnecting run as background tasks so request
handling never waits on them. Both keep probing with ``PING`` until the store
answers or ``max_reconnect_attempts`` retries have failed.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    RECONNECTING = "reconnecting"


_ALLOWED_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.READY, ConnectionState.DISCONNECTED}),
    ConnectionState.READY: frozenset({ConnectionState.RECONNECTING, ConnectionState.DISCONNECTED}),
    ConnectionState.RECONNECTING: frozenset({ConnectionState.READY, ConnectionState.DISCONNECTED}),
}

# Errors that mean "the store cannot be reached", as opposed to a bad command.
CONNECTION_ERRORS: tuple[type[BaseException], ...] = (RedisError, OSError, asyncio.TimeoutError)


class StoreClient(Protocol):
    """Minimal surface the manager needs from a store client."""

    async def ping(self) -> Any: ...

    async def aclose(self) -> None: ...


class ConnectionLifecycleManager:
    """Own the store connection's connect/ready/error/reconnect state.

    Args:
        client: Store client exposing ``ping()`` and ``aclose()``.
        connect_timeout: Upper bound in seconds for a single connect probe.
        reconnect_interval: Delay in seconds between reconnection probes.
        max_reconnect_attempts: Retries after a failed probe before giving
            up; 0 retries forever.
        sleep: Awaitable delay function (injectable for tests).
    """

    def __init__(
        self,
        client: StoreClient,
        *,
        connect_timeout: float = 5.0,
        reconnect_interval: float = 2.0,
        max_reconnect_attempts: int = 0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._connect_timeout = connect_timeout
        self._reconnect_interval = reconnect_interval
        self._max_reconnect_attempts = max_reconnect_attempts
        self._sleep = sleep
        self._state = ConnectionState.DISCONNECTED
        self._task: asyncio.Task[bool] | None = None
        self._history: list[ConnectionState] = [self._state]

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_available(self) -> bool:
        return self._state is ConnectionState.READY

    @property
    def history(self) -> list[ConnectionState]:
        """States visited so far, oldest first."""
        return list(self._history)

    def _transition(self, new_state: ConnectionState, **extra: Any) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise RuntimeError(
                f"invalid store connection transition {self._state.value} -> {new_state.value}"
            )
        previous = self._state
        self._state = new_state
        self._history.append(new_state)
        level = logging.WARNING if new_state is not ConnectionState.READY else logging.INFO
        logger.log(
            level,
            f"store.connection.{new_state.value}",
            extra={"previous_state": previous.value, **extra},
        )

    async def _probe(self) -> None:
        await asyncio.wait_for(self._client.ping(), timeout=self._connect_timeout)

    async def connect(self) -> bool:
        """Connect and wait for the outcome.

        If the first probe fails the manager stays CONNECTING (unavailable)
        and retries every ``reconnect_interval`` seconds. It ends DISCONNECTED
        only once ``max_reconnect_attempts`` retries have failed.

        Returns:
            True if the store is READY afterwards.
        """

        if self._state is not ConnectionState.DISCONNECTED:
            return self.is_available

        self._transition(ConnectionState.CONNECTING)
        try:
            await self._probe()
        except CONNECTION_ERRORS as exc:
            logger.error(
                "store.connection.error",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc), "phase": "connect"},
            )
            logger.warning("rate_limit.fallback_mode", extra={"reason": "store_unreachable"})
            return await self._retry_until_ready(ConnectionState.CONNECTING)

        self._transition(ConnectionState.READY)
        return True

    async def start(self) -> None:
        """Begin connecting in the background without blocking the caller."""

        if self._state is not ConnectionState.DISCONNECTED:
            return
        self._task = asyncio.create_task(self.connect(), name="bucket-store-connect")

    def report_connection_error(self, exc: BaseException) -> None:
        """Record that a call on a READY connection hit a connection-level error.

        Moves to RECONNECTING and probes in the background. Errors reported
        in any other state are already accounted for and ignored.
        """

        if self._state is not ConnectionState.READY:
            return
        logger.error(
            "store.connection.error",
            extra={"error_type": type(exc).__name__, "error_msg": str(exc), "phase": "operation"},
        )
        self._transition(ConnectionState.RECONNECTING)
        self._task = asyncio.create_task(
            self._retry_until_ready(ConnectionState.RECONNECTING),
            name="bucket-store-reconnect",
        )

    async def _retry_until_ready(self, waiting_state: ConnectionState) -> bool:
        """Probe every ``reconnect_interval`` while in ``waiting_state``."""

        phase = "connect" if waiting_state is ConnectionState.CONNECTING else "reconnect"
        attempt = 0
        while self._state is waiting_state:
            attempt += 1
            await self._sleep(self._reconnect_interval)
            if self._state is not waiting_state:
                break
            try:
                await self._probe()
            except CONNECTION_ERRORS as exc:
                logger.warning(
                    f"store.connection.{phase}_retry_failed",
                    extra={"attempt": attempt, "error_type": type(exc).__name__},
                )
                if self._max_reconnect_attempts and attempt >= self._max_reconnect_attempts:
                    self._transition(ConnectionState.DISCONNECTED, reason=f"{phase}_exhausted")
                    return False
                continue
            self._transition(ConnectionState.READY, attempts=attempt)
            return True
        return self.is_available

    async def wait_settled(self) -> None:
        """Wait for any in-flight connect or reconnect task to finish."""

        if self._task is not None and not self._task.done():
            await self._task

    async def shutdown(self) -> None:
        """Close the connection and end DISCONNECTED.

        Calling this while already DISCONNECTED is a no-op.
        """

        if self._state is ConnectionState.DISCONNECTED:
            logger.info("store.connection.already_closed")
            return

        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._state is ConnectionState.DISCONNECTED:
            return

        try:
            await self._client.aclose()
        except CONNECTION_ERRORS as exc:
            logger.warning(
                "store.connection.close_failed",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
        self._transition(ConnectionState.DISCONNECTED, reason="shutdown")
