# Partition Leases
#
# Lease and checkpoint coordination for hosts consuming a partitioned,
# append-only event stream.
#
# Key features:
# - Time-bounded partition ownership with fencing epochs
# - Per-partition checkpoints so reassigned hosts resume where work stopped
# - In-memory engine for tests, Redis engine for hosts in separate processes
# - Bootstrap from a management collaborator that lists partitions

from partition_leases.models import (
    Lease,
    Checkpoint,
    HubRuntimeInformation,
    PartitionRuntimeInformation,
)
from partition_leases.context import OperationContext
from partition_leases.leaser import Leaser, InMemoryLeaser, MemoryLeaseTable, RedisLeaser
from partition_leases.checkpointer import Checkpointer, InMemoryCheckpointer, RedisCheckpointer
from partition_leases.management import (
    ManagementClient,
    StaticManagementClient,
    RedisStreamsManagementClient,
)
from partition_leases.bootstrap import bootstrap
from partition_leases.host import PartitionHost
from partition_leases.config import LeaseConfig, load_lease_config
from partition_leases.factory import create_stores, create_management_client
from partition_leases.exceptions import (
    PartitionLeasesError,
    LeaseNotFoundError,
    StoreNotInitializedError,
    OperationCancelledError,
    DeadlineExceededError,
    LeaseLostError,
    ManagementError,
    ValidationError,
)

__version__ = "0.1.0"

__all__ = [
    "Lease",
    "Checkpoint",
    "HubRuntimeInformation",
    "PartitionRuntimeInformation",
    "OperationContext",
    "Leaser",
    "InMemoryLeaser",
    "MemoryLeaseTable",
    "RedisLeaser",
    "Checkpointer",
    "InMemoryCheckpointer",
    "RedisCheckpointer",
    "ManagementClient",
    "StaticManagementClient",
    "RedisStreamsManagementClient",
    "bootstrap",
    "PartitionHost",
    "LeaseConfig",
    "load_lease_config",
    "create_stores",
    "create_management_client",
    "PartitionLeasesError",
    "LeaseNotFoundError",
    "StoreNotInitializedError",
    "OperationCancelledError",
    "DeadlineExceededError",
    "LeaseLostError",
    "ManagementError",
    "ValidationError",
]
