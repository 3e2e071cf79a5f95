"""Bucket store adapters.

The admission engine talks to a shared store through a small interface so
the Redis store used in production and the in-process store used in tests
and single-worker development are interchangeable.
"""

from bucketguard.adapters.rate_limit.base import AbstractBucketStore, Bucket
from bucketguard.adapters.rate_limit.connection import (
    ConnectionLifecycleManager,
    ConnectionState,
)
from bucketguard.adapters.rate_limit.in_memory import InMemoryBucketStore
from bucketguard.adapters.rate_limit.redis_store import RedisBucketStore, create_redis_client

__all__ = [
    "AbstractBucketStore",
    "Bucket",
    "ConnectionLifecycleManager",
    "ConnectionState",
    "InMemoryBucketStore",
    "RedisBucketStore",
    "create_redis_client",
]
