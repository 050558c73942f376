"""Integration test: Redis lease store against a live Redis.

Tests ownership handover, expiry, and mutual exclusion between hosts that
share nothing but Redis.
"""

import threading

import pytest

from partition_leases.exceptions import LeaseNotFoundError, StoreNotInitializedError
from partition_leases.leaser import RedisLeaser

pytestmark = pytest.mark.integration


@pytest.fixture
def make_leaser(redis_url, redis_client, key_prefix, clock):
    """Build RedisLeasers for different hosts over one key namespace."""
    created = []

    def factory(name):
        leaser = RedisLeaser(
            name, lease_duration=30, redis_url=redis_url, key_prefix=key_prefix, clock=clock
        )
        created.append(leaser)
        return leaser

    yield factory
    for leaser in created:
        leaser.close()


def test_store_lifecycle(make_leaser):
    leaser = make_leaser("A")
    assert leaser.store_exists() is False

    with pytest.raises(StoreNotInitializedError):
        leaser.ensure_lease("0")

    leaser.ensure_store()
    leaser.ensure_lease("0")
    leaser.ensure_lease("1")
    assert sorted(l.partition_id for l in leaser.get_leases()) == ["0", "1"]

    leaser.delete_store()
    assert leaser.store_exists() is False


def test_ensure_lease_is_idempotent(make_leaser):
    leaser = make_leaser("A")
    leaser.ensure_store()
    leaser.ensure_lease("0")
    leaser.acquire_lease("0")

    lease = leaser.ensure_lease("0")

    assert lease.owner == "A"
    assert lease.epoch == 1


def test_acquire_unknown_partition(make_leaser):
    leaser = make_leaser("A")
    leaser.ensure_store()

    with pytest.raises(LeaseNotFoundError):
        leaser.acquire_lease("missing")


def test_two_host_handover(make_leaser, clock):
    host_a = make_leaser("A")
    host_b = make_leaser("B")
    host_a.ensure_store()

    host_a.ensure_lease("0")
    lease, acquired = host_a.acquire_lease("0")
    assert (lease.epoch, lease.owner, acquired) == (1, "A", True)

    _, acquired = host_b.acquire_lease("0")
    assert acquired is False

    _, ok = host_b.renew_lease("0")
    assert ok is False
    assert host_a.get_leases()[0].expires_at == lease.expires_at

    clock.advance(1)
    renewed, ok = host_a.renew_lease("0")
    assert ok is True
    assert renewed.expires_at > lease.expires_at

    clock.advance(31)
    lease, acquired = host_b.acquire_lease("0")
    assert (lease.epoch, lease.owner, acquired) == (2, "B", True)


def test_release_and_update(make_leaser):
    host_a = make_leaser("A")
    host_b = make_leaser("B")
    host_a.ensure_store()
    host_a.ensure_lease("0")
    host_a.acquire_lease("0")

    lease, ok = host_a.update_lease("0")
    assert ok is True
    assert lease.epoch == 2

    assert host_b.release_lease("0") is False
    assert host_a.release_lease("0") is True

    lease, acquired = host_b.acquire_lease("0")
    assert acquired is True
    assert lease.epoch == 3


def test_concurrent_acquire_has_one_winner(make_leaser):
    hosts = [make_leaser(f"host-{i}") for i in range(8)]
    hosts[0].ensure_store()
    hosts[0].ensure_lease("0")

    barrier = threading.Barrier(len(hosts))
    winners = []
    lock = threading.Lock()

    def compete(host):
        barrier.wait()
        _, acquired = host.acquire_lease("0")
        if acquired:
            with lock:
                winners.append(host.owner_name)

    threads = [threading.Thread(target=compete, args=(h,)) for h in hosts]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10.0)

    assert len(winners) == 1
    assert hosts[0].get_leases()[0].owner == winners[0]
