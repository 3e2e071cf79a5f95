"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets environment defaults before settings are imported so no .env file
is read and the app never tries to reach a real Redis server.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("REDIS_URL", "memory://")
os.environ.setdefault("LOG_FORMAT", "plain")
os.environ.setdefault("RATE_LIMIT_MAX_TOKENS", "10")
os.environ.setdefault("RATE_LIMIT_REFILL_RATE_PER_SECOND", "1")
os.environ.setdefault("RATE_LIMIT_COST_PER_REQUEST", "10")
os.environ.setdefault("RATE_LIMIT_RECORD_TTL_SECONDS", "3600")

import pytest
from starlette.requests import Request

from bucketguard.adapters.rate_limit.connection import ConnectionLifecycleManager
from bucketguard.adapters.rate_limit.in_memory import InMemoryBucketStore
from bucketguard.services.admission_service import AdmissionService
from bucketguard.services.token_bucket import TokenBucketPolicy


class FakeClock:
    """Deterministic clock used to test refill and expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


def _build_request(
    *,
    forwarded_for: str | None = None,
    client: tuple[str, int] | None = ("10.0.0.1", 50000),
    path: str = "/v1/zip",
) -> Request:
    """Build a bare Starlette request with the given identity signals."""

    headers = []
    if forwarded_for is not None:
        headers.append((b"x-forwarded-for", forwarded_for.encode()))
    scope = {
        "type": "http",
        "method": "POST",
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "query_string": b"",
        "headers": headers,
        "client": client,
    }
    return Request(scope)


@pytest.fixture
def make_request():
    return _build_request


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> TokenBucketPolicy:
    return TokenBucketPolicy(
        refill_rate_per_second=1.0,
        max_tokens=10.0,
        cost_per_request=10.0,
        record_ttl_seconds=3600,
    )


@pytest.fixture
def store(clock: FakeClock) -> InMemoryBucketStore:
    return InMemoryBucketStore(clock=clock)


@pytest.fixture
def lifecycle(store: InMemoryBucketStore) -> ConnectionLifecycleManager:
    return ConnectionLifecycleManager(store)


@pytest.fixture
def service(
    store: InMemoryBucketStore,
    lifecycle: ConnectionLifecycleManager,
    policy: TokenBucketPolicy,
    clock: FakeClock,
) -> AdmissionService:
    return AdmissionService(store=store, lifecycle=lifecycle, policy=policy, clock=clock)
