"""Pytest configuration for partition lease tests."""

import os
import uuid

import pytest
import redis

from partition_leases.checkpointer import InMemoryCheckpointer
from partition_leases.leaser import InMemoryLeaser


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (require Redis)"
    )


class FakeClock:
    """Controllable Unix clock for lease expiry tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Provide a fake clock starting at a fixed instant."""
    return FakeClock()


@pytest.fixture
def leaser(clock):
    """In-memory leaser for host "A" with a 30 second lease."""
    leaser = InMemoryLeaser("A", lease_duration=30, clock=clock)
    leaser.ensure_store()
    return leaser


@pytest.fixture
def checkpointer():
    """Initialized in-memory checkpointer."""
    checkpointer = InMemoryCheckpointer("A")
    checkpointer.ensure_store()
    return checkpointer


@pytest.fixture(scope="session")
def redis_url():
    """Get Redis URL from environment or use default."""
    return os.environ.get("REDIS_URL", "redis://localhost:6379")


@pytest.fixture
def redis_client(redis_url):
    """Redis client, skipping the test when Redis is unreachable."""
    client = redis.from_url(redis_url, decode_responses=True)
    try:
        client.ping()
    except redis.ConnectionError:
        pytest.skip(f"Redis not available at {redis_url}")
    yield client
    client.close()


@pytest.fixture
def key_prefix(redis_client):
    """Unique key namespace, deleted after the test."""
    prefix = f"test_partition_leases:{uuid.uuid4().hex[:8]}"
    yield prefix
    keys = redis_client.keys(f"{prefix}:*")
    if keys:
        redis_client.delete(*keys)
