"""Tests for the admission engine over the in-memory store."""

import asyncio
from unittest.mock import AsyncMock

import pytest
import redis

from bucketguard.adapters.rate_limit.base import Bucket
from bucketguard.adapters.rate_limit.connection import ConnectionLifecycleManager
from bucketguard.adapters.rate_limit.redis_store import RedisBucketStore
from bucketguard.services.admission_service import AdmissionService
from bucketguard.services.token_bucket import TokenBucketPolicy


@pytest.mark.asyncio
async def test_fresh_client_is_admitted(service: AdmissionService, store, make_request) -> None:
    await service.lifecycle.connect()

    decision = await service.check(make_request(forwarded_for="203.0.113.9"))

    assert decision.allowed is True
    assert decision.reason == "admitted"
    assert decision.identity == "203.0.113.9"
    assert (await store.get("203.0.113.9")).tokens == 0.0


@pytest.mark.asyncio
async def test_denial_arithmetic_and_recovery(service: AdmissionService, clock, make_request) -> None:
    await service.lifecycle.connect()
    request = make_request(forwarded_for="198.51.100.1")

    first = await service.check(request)
    second = await service.check(request)

    assert first.allowed is True
    assert second.allowed is False
    assert second.reason == "denied"
    assert round(second.available_tokens, 2) == 0.00
    assert second.required_tokens == 10
    assert second.retry_after_seconds == 10

    clock.advance(10)
    third = await service.check(request)

    assert third.allowed is True


@pytest.mark.asyncio
async def test_debit_is_exact(store, lifecycle, clock) -> None:
    policy = TokenBucketPolicy(
        refill_rate_per_second=0.3,
        max_tokens=7.7,
        cost_per_request=1.1,
        record_ttl_seconds=60,
    )
    service = AdmissionService(store=store, lifecycle=lifecycle, policy=policy, clock=clock)
    await lifecycle.connect()
    await store.set("k", Bucket(tokens=2.2, last_refill=clock() - 1.5), 60)

    decision = await service.check_identity("k")

    expected = 2.2 + 1.5 * 0.3 - 1.1
    stored = await store.get("k")
    assert decision.allowed is True
    assert abs(stored.tokens - expected) < 1e-9
    assert stored.last_refill == clock()


@pytest.mark.asyncio
async def test_denial_refreshes_anchor_but_keeps_tokens(service: AdmissionService, store, clock) -> None:
    await service.lifecycle.connect()
    await store.set("k", Bucket(tokens=3.0, last_refill=clock() - 2.0), 3600)

    decision = await service.check_identity("k")

    stored = await store.get("k")
    assert decision.allowed is False
    assert stored.tokens == pytest.approx(5.0)
    assert stored.last_refill == clock()
    assert decision.retry_after_seconds == 5


@pytest.mark.asyncio
async def test_every_check_resets_ttl(service: AdmissionService, store, clock) -> None:
    await service.lifecycle.connect()

    await service.check_identity("k")
    clock.advance(5)
    assert store.ttl("k") == pytest.approx(3595)

    denied = await service.check_identity("k")

    assert denied.allowed is False
    assert store.ttl("k") == pytest.approx(3600)


@pytest.mark.asyncio
async def test_expired_record_grants_full_bucket(service: AdmissionService, clock) -> None:
    await service.lifecycle.connect()
    await service.check_identity("k")

    clock.advance(3600)
    decision = await service.check_identity("k")

    assert decision.allowed is True


@pytest.mark.asyncio
async def test_unresolvable_identity_is_admitted(service: AdmissionService, make_request) -> None:
    await service.lifecycle.connect()

    decisions = [await service.check(make_request(client=None)) for _ in range(5)]

    assert all(d.allowed for d in decisions)
    assert {d.reason for d in decisions} == {"identity_unresolved"}


@pytest.mark.asyncio
async def test_fail_open_when_store_disconnected(service: AdmissionService, store) -> None:
    decisions = [await service.check_identity("k") for _ in range(5)]

    assert all(d.allowed for d in decisions)
    assert {d.reason for d in decisions} == {"store_unavailable"}
    assert await store.get("k") is None


@pytest.mark.asyncio
async def test_fail_open_after_consumption_when_store_drops(service: AdmissionService) -> None:
    never = asyncio.Event()

    async def _blocked_sleep(_: float) -> None:
        await never.wait()

    service.lifecycle._sleep = _blocked_sleep
    await service.lifecycle.connect()
    assert (await service.check_identity("k")).allowed is True
    assert (await service.check_identity("k")).allowed is False

    service.lifecycle.report_connection_error(redis.ConnectionError("gone"))

    assert (await service.check_identity("k")).allowed is True
    await service.lifecycle.shutdown()


@pytest.mark.asyncio
async def test_store_call_failure_is_admitted(policy, clock) -> None:
    client = AsyncMock()
    client.ping.return_value = True
    client.get.side_effect = redis.ConnectionError("reset")
    client.setex.side_effect = redis.ConnectionError("reset")
    lifecycle = ConnectionLifecycleManager(client, sleep=AsyncMock())

    store = RedisBucketStore(client, lifecycle=lifecycle)
    service = AdmissionService(store=store, lifecycle=lifecycle, policy=policy, clock=clock)
    await lifecycle.connect()

    decision = await service.check_identity("k")

    assert decision.allowed is True
    await lifecycle.shutdown()


@pytest.mark.asyncio
async def test_unexpected_store_exception_fails_open(service: AdmissionService, store) -> None:
    await service.lifecycle.connect()
    store.get = AsyncMock(side_effect=RuntimeError("boom"))

    decision = await service.check_identity("k")

    assert decision.allowed is True
    assert decision.reason == "check_failed"


@pytest.mark.asyncio
async def test_stats_do_not_mutate(service: AdmissionService, store, clock) -> None:
    await service.lifecycle.connect()
    await service.check_identity("k")
    clock.advance(2.5)

    stats = await service.stats("k")
    stats_again = await service.stats("k")

    assert stats == stats_again
    assert stats["availableTokens"] == 2.5
    assert stats["maxTokens"] == 10
    assert stats["refillRatePerSecond"] == 1
    assert stats["tokenCost"] == 10
    assert stats["lastRefill"] == "1970-01-01T00:16:40+00:00"
    assert store.ttl("k") == pytest.approx(3597.5)


@pytest.mark.asyncio
async def test_stats_for_unknown_identity_is_full(service: AdmissionService) -> None:
    await service.lifecycle.connect()

    stats = await service.stats("never-seen")

    assert stats["availableTokens"] == 10


@pytest.mark.asyncio
async def test_concurrent_checks_can_over_admit(service: AdmissionService, store) -> None:
    """Read-modify-write is not atomic: parallel first requests all pass."""
    await service.lifecycle.connect()
    original_get = store.get

    async def _slow_get(key):
        bucket = await original_get(key)
        await asyncio.sleep(0)
        return bucket

    store.get = _slow_get

    decisions = await asyncio.gather(*(service.check_identity("k") for _ in range(3)))

    assert sum(d.allowed for d in decisions) == 3
