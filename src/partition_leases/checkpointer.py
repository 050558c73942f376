"""Checkpoint storage for per-partition consumption progress."""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Optional, Tuple

import redis

from partition_leases.connection import RedisConnection
from partition_leases.context import OperationContext, ensure_context
from partition_leases.exceptions import (
    PartitionLeasesError,
    RedisConnectionError,
    StoreNotInitializedError,
    ValidationError,
)
from partition_leases.leaser import validate_partition_id
from partition_leases.models import Checkpoint

logger = logging.getLogger(__name__)


def validate_checkpoint(partition_id: str, checkpoint: Checkpoint) -> None:
    """Check a proposed checkpoint before it replaces the stored one.

    Raises:
        ValidationError: If the checkpoint does not belong to the partition
            or carries a negative sequence number
    """
    validate_partition_id(partition_id)
    if checkpoint.partition_id != partition_id:
        raise ValidationError(
            f"Checkpoint for partition {checkpoint.partition_id} "
            f"cannot be stored under {partition_id}"
        )
    if checkpoint.sequence_number < 0:
        raise ValidationError(
            f"Sequence number must be >= 0, got {checkpoint.sequence_number}"
        )


class Checkpointer(ABC):
    """Contract shared by every checkpoint store."""

    def __init__(self, owner_name: str = ""):
        """Initialize Checkpointer.

        Args:
            owner_name: Host identity, used in log messages
        """
        self.owner_name = owner_name

    @abstractmethod
    def store_exists(self, ctx: Optional[OperationContext] = None) -> bool:
        """Return True once the store has been initialized."""

    @abstractmethod
    def ensure_store(self, ctx: Optional[OperationContext] = None) -> None:
        """Initialize the store. Idempotent."""

    @abstractmethod
    def delete_store(self, ctx: Optional[OperationContext] = None) -> None:
        """Remove every checkpoint and the store itself. Idempotent."""

    @abstractmethod
    def get_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Checkpoint, bool]:
        """Look up a checkpoint without raising when it is missing.

        Returns:
            (checkpoint, True) if stored, (start-of-stream checkpoint, False) if not
        """

    @abstractmethod
    def ensure_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Checkpoint:
        """Create a start-of-stream checkpoint if none exists."""

    @abstractmethod
    def update_checkpoint(
        self,
        partition_id: str,
        checkpoint: Checkpoint,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        """Store the proposed checkpoint as the partition's position."""

    @abstractmethod
    def delete_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> None:
        """Remove the partition's checkpoint. Idempotent."""

    def close(self) -> None:
        """Release resources held by the store."""

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class InMemoryCheckpointer(Checkpointer):
    """In-memory checkpoint storage (reference engine and testing)."""

    def __init__(self, owner_name: str = ""):
        """Initialize in-memory store."""
        super().__init__(owner_name)
        self._checkpoints: Optional[Dict[str, Checkpoint]] = None
        self._lock = threading.Lock()

    def _table(self) -> Dict[str, Checkpoint]:
        if self._checkpoints is None:
            raise StoreNotInitializedError("checkpoint")
        return self._checkpoints

    def store_exists(self, ctx: Optional[OperationContext] = None) -> bool:
        with self._lock:
            return self._checkpoints is not None

    def ensure_store(self, ctx: Optional[OperationContext] = None) -> None:
        with self._lock:
            if self._checkpoints is None:
                self._checkpoints = {}

    def delete_store(self, ctx: Optional[OperationContext] = None) -> None:
        with self._lock:
            self._checkpoints = None

    def get_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Checkpoint, bool]:
        with self._lock:
            checkpoint = self._table().get(partition_id)
            if checkpoint is None:
                return Checkpoint.start_of_stream(partition_id), False
            return replace(checkpoint), True

    def ensure_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Checkpoint:
        validate_partition_id(partition_id)
        with self._lock:
            checkpoints = self._table()
            checkpoint = checkpoints.get(partition_id)
            if checkpoint is None:
                checkpoint = Checkpoint.start_of_stream(partition_id)
                checkpoints[partition_id] = checkpoint
            return replace(checkpoint)

    def update_checkpoint(
        self,
        partition_id: str,
        checkpoint: Checkpoint,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        validate_checkpoint(partition_id, checkpoint)
        with self._lock:
            self._table()[partition_id] = replace(checkpoint)
        logger.debug(
            f"Saved checkpoint {checkpoint.sequence_number}@{checkpoint.offset!r} "
            f"for partition {partition_id}"
        )

    def delete_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> None:
        with self._lock:
            self._table().pop(partition_id, None)


class RedisCheckpointer(Checkpointer):
    """Stores partition checkpoints in Redis hashes."""

    # Key prefix for checkpoints
    KEY_PREFIX = "partition_leases"

    def __init__(
        self,
        owner_name: str = "",
        redis_url: str = "redis://localhost:6379",
        key_prefix: Optional[str] = None,
        connection: Optional[RedisConnection] = None,
    ):
        """Initialize RedisCheckpointer.

        Args:
            owner_name: Host identity, used in log messages
            redis_url: Redis connection URL
            key_prefix: Namespace for every key this store writes
            connection: Shared connection; one is opened from redis_url if omitted
        """
        super().__init__(owner_name)
        self._connection = connection or RedisConnection(redis_url)
        self._owns_connection = connection is None
        self.key_prefix = key_prefix or self.KEY_PREFIX

    @property
    def client(self) -> redis.Redis:
        """Get Redis client."""
        return self._connection.client

    @property
    def _marker_key(self) -> str:
        return f"{self.key_prefix}:checkpoint-store"

    @property
    def _index_key(self) -> str:
        return f"{self.key_prefix}:checkpoints"

    def _make_key(self, partition_id: str) -> str:
        """Generate Redis key for checkpoint."""
        return f"{self.key_prefix}:checkpoint:{partition_id}"

    def _run(self, action: str, ctx: Optional[OperationContext], func, *args):
        ensure_context(ctx).check()
        try:
            return func(*args)
        except redis.ConnectionError as e:
            raise RedisConnectionError(f"Failed to {action}: {e}") from e
        except redis.RedisError as e:
            raise PartitionLeasesError(f"Failed to {action}: {e}") from e

    def _require_store(self, ctx: Optional[OperationContext]) -> None:
        if not self.store_exists(ctx):
            raise StoreNotInitializedError("checkpoint")

    def store_exists(self, ctx: Optional[OperationContext] = None) -> bool:
        return bool(
            self._run("check checkpoint store", ctx, self.client.exists, self._marker_key)
        )

    def ensure_store(self, ctx: Optional[OperationContext] = None) -> None:
        self._run("create checkpoint store", ctx, self.client.set, self._marker_key, "1")

    def delete_store(self, ctx: Optional[OperationContext] = None) -> None:
        partition_ids = self._run(
            "list checkpoints", ctx, self.client.smembers, self._index_key
        )
        keys = [self._make_key(p) for p in partition_ids]
        keys += [self._index_key, self._marker_key]
        self._run("delete checkpoint store", ctx, self.client.delete, *keys)
        logger.info(f"Deleted checkpoint store {self.key_prefix}")

    def get_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Tuple[Checkpoint, bool]:
        self._require_store(ctx)
        values = self._run(
            "load checkpoint", ctx, self.client.hgetall, self._make_key(partition_id)
        )
        if not values:
            return Checkpoint.start_of_stream(partition_id), False
        return Checkpoint.from_redis(partition_id, values), True

    def ensure_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> Checkpoint:
        validate_partition_id(partition_id)
        self._require_store(ctx)
        key = self._make_key(partition_id)
        sentinel = Checkpoint.start_of_stream(partition_id).to_dict()

        pipe = self.client.pipeline()
        # HSETNX per field keeps an existing checkpoint untouched.
        for name, value in sentinel.items():
            pipe.hsetnx(key, name, value)
        pipe.sadd(self._index_key, partition_id)
        pipe.hgetall(key)
        results = self._run("ensure checkpoint", ctx, pipe.execute)
        return Checkpoint.from_redis(partition_id, results[-1])

    def update_checkpoint(
        self,
        partition_id: str,
        checkpoint: Checkpoint,
        ctx: Optional[OperationContext] = None,
    ) -> None:
        validate_checkpoint(partition_id, checkpoint)
        self._require_store(ctx)
        pipe = self.client.pipeline()
        pipe.hset(self._make_key(partition_id), mapping=checkpoint.to_dict())
        pipe.sadd(self._index_key, partition_id)
        self._run("save checkpoint", ctx, pipe.execute)
        logger.debug(
            f"Saved checkpoint {checkpoint.sequence_number}@{checkpoint.offset!r} "
            f"for partition {partition_id}"
        )

    def delete_checkpoint(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> None:
        self._require_store(ctx)
        pipe = self.client.pipeline()
        pipe.delete(self._make_key(partition_id))
        pipe.srem(self._index_key, partition_id)
        self._run("delete checkpoint", ctx, pipe.execute)
        logger.debug(f"Deleted checkpoint for partition {partition_id}")

    def close(self):
        """Close connection if this store opened it."""
        if self._owns_connection:
            self._connection.close()
