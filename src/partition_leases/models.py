"""Data models for partition leases and checkpoints."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional


def _parse_time(value: Any) -> Optional[datetime]:
    """Parse a timestamp from a datetime, ISO string, or epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    return datetime.fromisoformat(str(value))


@dataclass
class Lease:
    """Ownership record for one partition.

    An empty owner means the partition is unowned. expires_at is a Unix
    timestamp in seconds; epoch is the fencing token and only ever grows.
    """

    partition_id: str
    owner: str = ""
    expires_at: float = 0.0
    epoch: int = 0

    @classmethod
    def from_redis(cls, partition_id: str, values: dict) -> "Lease":
        """Create Lease from a Redis hash.

        Args:
            partition_id: Partition identifier
            values: Hash fields as returned by HGETALL

        Returns:
            Lease instance
        """
        return cls(
            partition_id=partition_id,
            owner=values.get("owner", ""),
            expires_at=float(values.get("expires_at", 0) or 0),
            epoch=int(values.get("epoch", 0) or 0),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for Redis storage."""
        return {
            "owner": self.owner,
            "expires_at": repr(self.expires_at),
            "epoch": str(self.epoch),
        }


@dataclass
class Checkpoint:
    """Last durably processed position of a partition."""

    partition_id: str
    sequence_number: int = 0
    offset: str = ""
    enqueued_time_utc: Optional[datetime] = None

    @classmethod
    def start_of_stream(cls, partition_id: str) -> "Checkpoint":
        """Checkpoint pointing at the beginning of the partition."""
        return cls(partition_id=partition_id, sequence_number=0, offset="")

    @classmethod
    def from_redis(cls, partition_id: str, values: dict) -> "Checkpoint":
        """Create Checkpoint from a Redis hash."""
        return cls(
            partition_id=partition_id,
            sequence_number=int(values.get("sequence_number", 0) or 0),
            offset=values.get("offset", ""),
            enqueued_time_utc=_parse_time(values.get("enqueued_time_utc")),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for Redis storage."""
        return {
            "sequence_number": str(self.sequence_number),
            "offset": self.offset,
            "enqueued_time_utc": (
                self.enqueued_time_utc.isoformat() if self.enqueued_time_utc else ""
            ),
        }


@dataclass
class HubRuntimeInformation:
    """Management node information about a stream."""

    path: str
    created_at: Optional[datetime] = None
    partition_count: int = 0
    partition_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, values: dict) -> "HubRuntimeInformation":
        """Create from a management response keyed by management field names."""
        partition_ids = [str(p) for p in values.get("partition_ids", [])]
        return cls(
            path=values.get("name", ""),
            created_at=_parse_time(values.get("created_at")),
            partition_count=int(values.get("partition_count", len(partition_ids))),
            partition_ids=partition_ids,
        )


@dataclass
class PartitionRuntimeInformation:
    """Management node information about a single partition."""

    hub_path: str
    partition_id: str
    beginning_sequence_number: int = 0
    last_sequence_number: int = 0
    last_enqueued_offset: str = ""
    last_enqueued_time_utc: Optional[datetime] = None

    @classmethod
    def from_dict(cls, values: dict) -> "PartitionRuntimeInformation":
        """Create from a management response keyed by management field names."""
        return cls(
            hub_path=values.get("name", ""),
            partition_id=str(values.get("partition", "")),
            beginning_sequence_number=int(values.get("begin_sequence_number", 0)),
            last_sequence_number=int(values.get("last_enqueued_sequence_number", 0)),
            last_enqueued_offset=str(values.get("last_enqueued_offset", "")),
            last_enqueued_time_utc=_parse_time(values.get("last_enqueued_time_utc")),
        )
