"""Build stores and collaborators from a LeaseConfig."""

import time
from typing import Callable, Optional, Tuple

from partition_leases.checkpointer import Checkpointer, InMemoryCheckpointer, RedisCheckpointer
from partition_leases.config import LeaseConfig
from partition_leases.connection import RedisConnection
from partition_leases.leaser import InMemoryLeaser, Leaser, RedisLeaser
from partition_leases.management import (
    ManagementClient,
    RedisStreamsManagementClient,
    StaticManagementClient,
)


def create_stores(
    config: LeaseConfig,
    host_name: str,
    connection: Optional[RedisConnection] = None,
    clock: Callable[[], float] = time.time,
) -> Tuple[Leaser, Checkpointer]:
    """Create the lease and checkpoint stores the config selects.

    Args:
        config: Lease configuration
        host_name: Identity the leaser is bound to
        connection: Shared Redis connection for the redis backend
        clock: Returns the current Unix time in seconds

    Returns:
        (leaser, checkpointer)
    """
    if config.backend == "memory":
        return (
            InMemoryLeaser(host_name, lease_duration=config.lease_duration, clock=clock),
            InMemoryCheckpointer(host_name),
        )

    connection = connection or RedisConnection(config.redis_url)
    leaser = RedisLeaser(
        host_name,
        lease_duration=config.lease_duration,
        key_prefix=config.key_prefix,
        clock=clock,
        connection=connection,
    )
    checkpointer = RedisCheckpointer(
        host_name,
        key_prefix=config.key_prefix,
        connection=connection,
    )
    return leaser, checkpointer


def create_management_client(
    config: LeaseConfig,
    connection: Optional[RedisConnection] = None,
) -> ManagementClient:
    """Create the management collaborator the config selects."""
    if config.backend == "memory":
        return StaticManagementClient(
            config.hub_name, partition_count=config.partition_count
        )

    return RedisStreamsManagementClient(
        config.hub_name,
        config.partition_count,
        redis_url=config.redis_url,
        attempts=config.management_attempts,
        retry_delay=config.management_retry_delay,
        connection=connection,
    )
