"""Lease storage: per-partition ownership with expiration and fencing epochs.

Two engines satisfy the same Leaser contract:

- InMemoryLeaser keeps the lease table in process, guarded by one lock.
  Several leasers bound to different host names can share a table to model
  competing hosts inside one process (tests, single-node deployments).
- RedisLeaser keeps one hash per partition in Redis and resolves every
  ownership decision inside a Lua script, so two hosts in different
  processes can never both believe they hold the same partition.

Losing or never holding a lease is reported through the boolean half of a
result. Only sequencing mistakes (unknown partition, uninitialized store)
raise.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

import redis

from partition_leases.connection import RedisConnection
from partition_leases.context import OperationContext, ensure_context
from partition_leases.exceptions import (
    LeaseNotFoundError,
    PartitionLeasesError,
    RedisConnectionError,
    StoreNotInitializedError,
    ValidationError,
)
from partition_leases.models import Lease

logger = logging.getLogger(__name__)

DEFAULT_LEASE_DURATION = 30.0

# Released leases are back-dated so they read as expired immediately.
RELEASE_BACKDATE = 1.0


def validate_partition_id(partition_id: str) -> None:
    """Reject partition identifiers that cannot key a store."""
    if not isinstance(partition_id, str) or not partition_id:
        raise ValidationError(f"Invalid partition id: {partition_id!r}")


class Leaser(ABC):
    """Contract shared by every lease store."""

    def __init__(
        self,
        owner_name: str,
        lease_duration: float = DEFAULT_LEASE_DURATION,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize Leaser.

        Args:
            owner_name: Host identity used for every ownership comparison
            lease_duration: Seconds a lease stays valid after acquire or renew
            clock: Returns the current Unix time in seconds
        """
        if not owner_name:
            raise ValidationError("owner_name must not be empty")
        if lease_duration <= 0:
            raise ValidationError("lease_duration must be > 0")
        self.owner_name = owner_name
        self.lease_duration = lease_duration
        self._clock = clock

    def is_available(self, lease: Lease) -> bool:
        """A lease is available when unowned or expired."""
        return lease.owner == "" or self._clock() > lease.expires_at

    def is_expired(self, lease: Lease) -> bool:
        return self._clock() > lease.expires_at

    @abstractmethod
    def store_exists(self, ctx: Optional[OperationContext] = None) -> bool:
        """Return True once the store has been initialized."""

    @abstractmethod
    def ensure_store(self, ctx: Optional[OperationContext] = None) -> None:
        """Initialize the store. Idempotent."""

    @abstractmethod
    def delete_store(self, ctx: Optional[OperationContext] = None) -> None:
        """Remove every lease and the store itself. Idempotent."""

    @abstractmethod
    def get_leases(self, ctx: Optional[OperationContext] = None) -> List[Lease]:
        """Snapshot of every tracked lease, in no particular order."""

    @abstractmethod
    def ensure_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Lease:
        """Create an unowned lease for the partition if none exists."""

    @abstractmethod
    def delete_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> None:
        """Remove the partition's lease. Idempotent."""

    @abstractmethod
    def acquire_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        """Take ownership if the lease is unowned, expired, or already ours.

        Returns:
            (lease, True) on success. (current lease, False) when another
            host holds an unexpired lease.

        Raises:
            LeaseNotFoundError: If ensure_lease was never called for it
        """

    @abstractmethod
    def renew_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        """Extend an unexpired lease held by this host.

        Returns:
            (lease, True) when extended, (None, False) otherwise
        """

    @abstractmethod
    def release_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> bool:
        """Give up an unexpired lease held by this host.

        Returns:
            True if the lease was released
        """

    @abstractmethod
    def update_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        """Renew and publish a fresh epoch in one step."""

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class MemoryLeaseTable:
    """Lease records shared by every InMemoryLeaser bound to it."""

    def __init__(self):
        self.leases: Optional[Dict[str, Lease]] = None
        self.lock = threading.Lock()


class InMemoryLeaser(Leaser):
    """In-process lease store (reference engine and testing)."""

    def __init__(
        self,
        owner_name: str,
        lease_duration: float = DEFAULT_LEASE_DURATION,
        clock: Callable[[], float] = time.time,
        table: Optional[MemoryLeaseTable] = None,
    ):
        """Initialize in-memory leaser.

        Args:
            owner_name: Host identity
            lease_duration: Lease validity in seconds
            clock: Returns the current Unix time in seconds
            table: Shared table; a private one is created when omitted
        """
        super().__init__(owner_name, lease_duration, clock)
        self._table = table if table is not None else MemoryLeaseTable()

    def bind(self, owner_name: str) -> "InMemoryLeaser":
        """Leaser for another host sharing this leaser's table and settings."""
        return InMemoryLeaser(
            owner_name,
            lease_duration=self.lease_duration,
            clock=self._clock,
            table=self._table,
        )

    def _leases(self) -> Dict[str, Lease]:
        # Caller must hold the table lock.
        if self._table.leases is None:
            raise StoreNotInitializedError("lease")
        return self._table.leases

    def _lookup(self, partition_id: str) -> Lease:
        lease = self._leases().get(partition_id)
        if lease is None:
            raise LeaseNotFoundError(partition_id)
        return lease

    def store_exists(self, ctx: Optional[OperationContext] = None) -> bool:
        with self._table.lock:
            return self._table.leases is not None

    def ensure_store(self, ctx: Optional[OperationContext] = None) -> None:
        with self._table.lock:
            if self._table.leases is None:
                self._table.leases = {}

    def delete_store(self, ctx: Optional[OperationContext] = None) -> None:
        with self._table.lock:
            self._table.leases = None

    def get_leases(self, ctx: Optional[OperationContext] = None) -> List[Lease]:
        with self._table.lock:
            return [replace(lease) for lease in self._leases().values()]

    def ensure_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Lease:
        validate_partition_id(partition_id)
        with self._table.lock:
            leases = self._leases()
            lease = leases.get(partition_id)
            if lease is None:
                lease = Lease(partition_id=partition_id)
                leases[partition_id] = lease
            return replace(lease)

    def delete_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> None:
        with self._table.lock:
            self._leases().pop(partition_id, None)

    def acquire_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        with self._table.lock:
            lease = self._lookup(partition_id)
            if not self.is_available(lease) and lease.owner != self.owner_name:
                logger.debug(
                    f"Partition {partition_id} held by {lease.owner}, "
                    f"{self.owner_name} not acquiring"
                )
                return replace(lease), False

            previous_owner = lease.owner
            lease.owner = self.owner_name
            lease.expires_at = self._clock() + self.lease_duration
            lease.epoch += 1
            if previous_owner != self.owner_name:
                logger.info(
                    f"{self.owner_name} acquired partition {partition_id} "
                    f"(epoch {lease.epoch}, previous owner {previous_owner or 'none'})"
                )
            return replace(lease), True

    def _extend(self, partition_id: str, bump_epoch: bool) -> Tuple[Optional[Lease], bool]:
        with self._table.lock:
            lease = self._lookup(partition_id)
            if lease.owner != self.owner_name or self.is_expired(lease):
                logger.debug(f"{self.owner_name} does not hold partition {partition_id}")
                return None, False

            lease.expires_at = self._clock() + self.lease_duration
            if bump_epoch:
                lease.epoch += 1
            return replace(lease), True

    def renew_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        return self._extend(partition_id, bump_epoch=False)

    def update_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        return self._extend(partition_id, bump_epoch=True)

    def release_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> bool:
        with self._table.lock:
            lease = self._lookup(partition_id)
            if lease.owner != self.owner_name or self.is_expired(lease):
                return False

            lease.owner = ""
            lease.expires_at = self._clock() - RELEASE_BACKDATE
            logger.info(f"{self.owner_name} released partition {partition_id}")
            return True


# KEYS[1] lease hash, KEYS[2] store marker. Returns {-2} when the store is
# missing and {-1} when the lease is missing; otherwise {ok, owner, expires, epoch}.
_LEASE_PREAMBLE = """
if redis.call('EXISTS', KEYS[2]) == 0 then return {-2} end
if redis.call('EXISTS', KEYS[1]) == 0 then return {-1} end
local owner = redis.call('HGET', KEYS[1], 'owner') or ''
local expires = tonumber(redis.call('HGET', KEYS[1], 'expires_at') or '0')
local epoch = tonumber(redis.call('HGET', KEYS[1], 'epoch') or '0')
local now = tonumber(ARGV[2])
"""

# ARGV: owner, now, duration
ACQUIRE_SCRIPT = _LEASE_PREAMBLE + """
if owner == '' or now > expires or owner == ARGV[1] then
  epoch = epoch + 1
  expires = now + tonumber(ARGV[3])
  redis.call('HSET', KEYS[1], 'owner', ARGV[1], 'expires_at', tostring(expires), 'epoch', tostring(epoch))
  return {1, ARGV[1], tostring(expires), tostring(epoch)}
end
return {0, owner, tostring(expires), tostring(epoch)}
"""

# ARGV: owner, now, duration, bump epoch (0/1)
EXTEND_SCRIPT = _LEASE_PREAMBLE + """
if owner ~= ARGV[1] or now > expires then
  return {0, owner, tostring(expires), tostring(epoch)}
end
expires = now + tonumber(ARGV[3])
if ARGV[4] == '1' then epoch = epoch + 1 end
redis.call('HSET', KEYS[1], 'expires_at', tostring(expires), 'epoch', tostring(epoch))
return {1, owner, tostring(expires), tostring(epoch)}
"""

# ARGV: owner, now, backdate
RELEASE_SCRIPT = _LEASE_PREAMBLE + """
if owner ~= ARGV[1] or now > expires then
  return {0, owner, tostring(expires), tostring(epoch)}
end
expires = now - tonumber(ARGV[3])
redis.call('HSET', KEYS[1], 'owner', '', 'expires_at', tostring(expires))
return {1, '', tostring(expires), tostring(epoch)}
"""

# KEYS[1] lease hash, KEYS[2] store marker, KEYS[3] index set; ARGV[1] partition id
ENSURE_SCRIPT = """
if redis.call('EXISTS', KEYS[2]) == 0 then return {-2} end
if redis.call('EXISTS', KEYS[1]) == 0 then
  redis.call('HSET', KEYS[1], 'owner', '', 'expires_at', '0', 'epoch', '0')
end
redis.call('SADD', KEYS[3], ARGV[1])
local owner = redis.call('HGET', KEYS[1], 'owner') or ''
return {1, owner, redis.call('HGET', KEYS[1], 'expires_at'), redis.call('HGET', KEYS[1], 'epoch')}
"""


class RedisLeaser(Leaser):
    """Lease store backed by Redis hashes and Lua scripts."""

    # Key prefix for leases
    KEY_PREFIX = "partition_leases"

    def __init__(
        self,
        owner_name: str,
        lease_duration: float = DEFAULT_LEASE_DURATION,
        redis_url: str = "redis://localhost:6379",
        key_prefix: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        connection: Optional[RedisConnection] = None,
    ):
        """Initialize RedisLeaser.

        Args:
            owner_name: Host identity
            lease_duration: Lease validity in seconds
            redis_url: Redis connection URL
            key_prefix: Namespace for every key this store writes
            clock: Returns the current Unix time in seconds
            connection: Shared connection; one is opened from redis_url if omitted
        """
        super().__init__(owner_name, lease_duration, clock)
        self._connection = connection or RedisConnection(redis_url)
        self._owns_connection = connection is None
        self.key_prefix = key_prefix or self.KEY_PREFIX
        self._acquire = self.client.register_script(ACQUIRE_SCRIPT)
        self._extend_script = self.client.register_script(EXTEND_SCRIPT)
        self._release = self.client.register_script(RELEASE_SCRIPT)
        self._ensure = self.client.register_script(ENSURE_SCRIPT)

    @property
    def client(self) -> redis.Redis:
        """Get Redis client."""
        return self._connection.client

    @property
    def _marker_key(self) -> str:
        return f"{self.key_prefix}:lease-store"

    @property
    def _index_key(self) -> str:
        return f"{self.key_prefix}:leases"

    def _lease_key(self, partition_id: str) -> str:
        return f"{self.key_prefix}:lease:{partition_id}"

    def _run(self, action: str, ctx: Optional[OperationContext], func, *args):
        """Check the context, then run one Redis round trip."""
        ensure_context(ctx).check()
        try:
            return func(*args)
        except redis.ConnectionError as e:
            raise RedisConnectionError(f"Failed to {action}: {e}") from e
        except redis.RedisError as e:
            raise PartitionLeasesError(f"Failed to {action}: {e}") from e

    def _decode(self, partition_id: str, result) -> Tuple[Lease, bool]:
        status = int(result[0])
        if status == -2:
            raise StoreNotInitializedError("lease")
        if status == -1:
            raise LeaseNotFoundError(partition_id)
        lease = Lease(
            partition_id=partition_id,
            owner=result[1] or "",
            expires_at=float(result[2]),
            epoch=int(result[3]),
        )
        return lease, status == 1

    def _call_script(self, action: str, script, partition_id: str, args: list, ctx):
        keys = [self._lease_key(partition_id), self._marker_key]
        result = self._run(action, ctx, lambda: script(keys=keys, args=args))
        return self._decode(partition_id, result)

    def store_exists(self, ctx: Optional[OperationContext] = None) -> bool:
        return bool(self._run("check lease store", ctx, self.client.exists, self._marker_key))

    def ensure_store(self, ctx: Optional[OperationContext] = None) -> None:
        self._run("create lease store", ctx, self.client.set, self._marker_key, "1")

    def delete_store(self, ctx: Optional[OperationContext] = None) -> None:
        partition_ids = self._run(
            "list leases", ctx, self.client.smembers, self._index_key
        )
        keys = [self._lease_key(p) for p in partition_ids]
        keys += [self._index_key, self._marker_key]
        self._run("delete lease store", ctx, self.client.delete, *keys)
        logger.info(f"Deleted lease store {self.key_prefix}")

    def get_leases(self, ctx: Optional[OperationContext] = None) -> List[Lease]:
        if not self.store_exists(ctx):
            raise StoreNotInitializedError("lease")
        partition_ids = sorted(
            self._run("list leases", ctx, self.client.smembers, self._index_key)
        )
        pipe = self.client.pipeline()
        for partition_id in partition_ids:
            pipe.hgetall(self._lease_key(partition_id))
        values = self._run("read leases", ctx, pipe.execute)
        return [
            Lease.from_redis(partition_id, fields)
            for partition_id, fields in zip(partition_ids, values)
            if fields
        ]

    def ensure_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Lease:
        validate_partition_id(partition_id)
        keys = [self._lease_key(partition_id), self._marker_key, self._index_key]
        result = self._run(
            "ensure lease", ctx, lambda: self._ensure(keys=keys, args=[partition_id])
        )
        lease, _ = self._decode(partition_id, result)
        return lease

    def delete_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> None:
        if not self.store_exists(ctx):
            raise StoreNotInitializedError("lease")
        pipe = self.client.pipeline()
        pipe.delete(self._lease_key(partition_id))
        pipe.srem(self._index_key, partition_id)
        self._run("delete lease", ctx, pipe.execute)

    def acquire_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        args = [self.owner_name, repr(self._clock()), repr(float(self.lease_duration))]
        lease, acquired = self._call_script(
            "acquire lease", self._acquire, partition_id, args, ctx
        )
        if acquired:
            logger.info(
                f"{self.owner_name} acquired partition {partition_id} (epoch {lease.epoch})"
            )
        else:
            logger.debug(f"Partition {partition_id} held by {lease.owner}")
        return lease, acquired

    def _extend(self, partition_id: str, bump_epoch: bool, ctx) -> Tuple[Optional[Lease], bool]:
        args = [
            self.owner_name,
            repr(self._clock()),
            repr(float(self.lease_duration)),
            "1" if bump_epoch else "0",
        ]
        lease, ok = self._call_script(
            "renew lease", self._extend_script, partition_id, args, ctx
        )
        if not ok:
            logger.debug(f"{self.owner_name} does not hold partition {partition_id}")
            return None, False
        return lease, True

    def renew_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        return self._extend(partition_id, False, ctx)

    def update_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Optional[Lease], bool]:
        return self._extend(partition_id, True, ctx)

    def release_lease(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> bool:
        args = [self.owner_name, repr(self._clock()), repr(RELEASE_BACKDATE)]
        _, released = self._call_script(
            "release lease", self._release, partition_id, args, ctx
        )
        if released:
            logger.info(f"{self.owner_name} released partition {partition_id}")
        return released

    def close(self) -> None:
        """Close connection if this store opened it."""
        if self._owns_connection:
            self._connection.close()
