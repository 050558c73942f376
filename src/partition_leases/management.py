"""Management collaborator: partition enumeration and runtime metadata.

The lease core only needs two read-only answers at startup: which partitions
exist, and where each one currently ends. Implementations own any network,
retry, or authentication concerns.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

import redis
from redis.exceptions import ConnectionError, ResponseError, TimeoutError as RedisTimeoutError

from partition_leases.connection import RedisConnection, retry_with_exponential_backoff
from partition_leases.context import OperationContext, ensure_context
from partition_leases.exceptions import ManagementError, ValidationError
from partition_leases.models import HubRuntimeInformation, PartitionRuntimeInformation

logger = logging.getLogger(__name__)

# Fixed retry policy for management queries
DEFAULT_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 1.0


class ManagementClient(ABC):
    """Read-only queries used once to seed the lease and checkpoint stores."""

    @abstractmethod
    def get_hub_runtime_information(
        self, ctx: Optional[OperationContext] = None
    ) -> HubRuntimeInformation:
        """Return the stream's partition set."""

    @abstractmethod
    def get_partition_runtime_information(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> PartitionRuntimeInformation:
        """Return the partition's high-water mark."""

    def close(self) -> None:
        """Release resources held by the client."""


class StaticManagementClient(ManagementClient):
    """Answers management queries from a fixed partition table."""

    def __init__(
        self,
        hub_name: str,
        partitions: Optional[Dict[str, PartitionRuntimeInformation]] = None,
        partition_count: int = 0,
    ):
        """Initialize StaticManagementClient.

        Args:
            hub_name: Stream name reported as the hub path
            partitions: Runtime information keyed by partition id
            partition_count: When partitions is omitted, create empty
                partitions "0" .. "partition_count - 1"
        """
        self.hub_name = hub_name
        if partitions is None:
            partitions = {
                str(i): PartitionRuntimeInformation(
                    hub_path=hub_name, partition_id=str(i), last_sequence_number=-1
                )
                for i in range(partition_count)
            }
        self._partitions = dict(partitions)

    def get_hub_runtime_information(
        self, ctx: Optional[OperationContext] = None
    ) -> HubRuntimeInformation:
        ensure_context(ctx).check()
        partition_ids = list(self._partitions)
        return HubRuntimeInformation(
            path=self.hub_name,
            partition_count=len(partition_ids),
            partition_ids=partition_ids,
        )

    def get_partition_runtime_information(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> PartitionRuntimeInformation:
        ensure_context(ctx).check()
        try:
            return self._partitions[partition_id]
        except KeyError:
            raise ManagementError(
                f"Unknown partition {partition_id} for hub {self.hub_name}"
            ) from None


def _time_from_stream_id(stream_id: str) -> Optional[datetime]:
    """Redis stream IDs start with the entry's Unix time in milliseconds."""
    millis = int(stream_id.split("-", 1)[0])
    if millis == 0:
        return None
    return datetime.fromtimestamp(millis / 1000.0, tz=timezone.utc)


class RedisStreamsManagementClient(ManagementClient):
    """Treats Redis streams `{hub_name}:{partition_id}` as partitions."""

    def __init__(
        self,
        hub_name: str,
        partition_count: int,
        redis_url: str = "redis://localhost:6379",
        attempts: int = DEFAULT_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        connection: Optional[RedisConnection] = None,
    ):
        """Initialize RedisStreamsManagementClient.

        Args:
            hub_name: Stream name prefix
            partition_count: Number of partition streams
            redis_url: Redis connection URL
            attempts: Calls made for each query before giving up
            retry_delay: Fixed delay between attempts in seconds
            connection: Shared connection; one is opened from redis_url if omitted
        """
        if attempts < 1:
            raise ValidationError("attempts must be >= 1")
        self.hub_name = hub_name
        self.partition_count = partition_count
        self._connection = connection or RedisConnection(redis_url)
        self._owns_connection = connection is None
        self._read_stream_info = retry_with_exponential_backoff(
            max_retries=attempts - 1,
            base_delay=retry_delay,
            max_delay=retry_delay,
            exponential_base=1.0,
        )(self._xinfo)

    @property
    def client(self) -> redis.Redis:
        """Get Redis client."""
        return self._connection.client

    def stream_key(self, partition_id: str) -> str:
        return f"{self.hub_name}:{partition_id}"

    def _partition_ids(self) -> List[str]:
        return [str(i) for i in range(self.partition_count)]

    def _xinfo(self, partition_id: str, ctx: OperationContext) -> Optional[dict]:
        # Checked on every attempt so a cancelled query stops retrying.
        ctx.check()
        try:
            return self.client.xinfo_stream(self.stream_key(partition_id))
        except ResponseError as e:
            if "no such key" in str(e).lower():
                return None
            raise

    def get_hub_runtime_information(
        self, ctx: Optional[OperationContext] = None
    ) -> HubRuntimeInformation:
        ensure_context(ctx).check()
        partition_ids = self._partition_ids()
        return HubRuntimeInformation(
            path=self.hub_name,
            partition_count=len(partition_ids),
            partition_ids=partition_ids,
        )

    def get_partition_runtime_information(
        self, partition_id: str, ctx: Optional[OperationContext] = None
    ) -> PartitionRuntimeInformation:
        ctx = ensure_context(ctx)
        ctx.check()
        if partition_id not in self._partition_ids():
            raise ManagementError(
                f"Unknown partition {partition_id} for hub {self.hub_name}"
            )
        try:
            info = self._read_stream_info(partition_id, ctx)
        except (ConnectionError, RedisTimeoutError, ResponseError) as e:
            raise ManagementError(
                f"Failed to read runtime information for partition {partition_id}: {e}"
            ) from e

        if not info:
            logger.debug(f"Partition stream {self.stream_key(partition_id)} is empty")
            return PartitionRuntimeInformation(
                hub_path=self.hub_name,
                partition_id=partition_id,
                last_sequence_number=-1,
            )

        length = int(info.get("length", 0))
        entries_added = int(info.get("entries-added", length))
        last_id = info.get("last-generated-id") or "0-0"
        return PartitionRuntimeInformation(
            hub_path=self.hub_name,
            partition_id=partition_id,
            beginning_sequence_number=max(0, entries_added - length),
            last_sequence_number=entries_added - 1,
            last_enqueued_offset="" if last_id == "0-0" else last_id,
            last_enqueued_time_utc=_time_from_stream_id(last_id),
        )

    def close(self) -> None:
        """Close connection if this client opened it."""
        if self._owns_connection:
            self._connection.close()
