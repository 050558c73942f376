"""Unit tests for lease and checkpoint models."""

from datetime import datetime, timezone

import pytest
from partition_leases.models import (
    Checkpoint,
    HubRuntimeInformation,
    Lease,
    PartitionRuntimeInformation,
)


class TestLease:
    """Tests for Lease model."""

    def test_from_redis(self):
        """Test creating Lease from a Redis hash."""
        values = {"owner": "host-a", "expires_at": "1700000030.5", "epoch": "3"}

        lease = Lease.from_redis("2", values)

        assert lease.partition_id == "2"
        assert lease.owner == "host-a"
        assert lease.expires_at == 1700000030.5
        assert lease.epoch == 3

    def test_from_redis_defaults(self):
        lease = Lease.from_redis("0", {})

        assert lease == Lease(partition_id="0")

    def test_to_dict(self):
        lease = Lease(partition_id="0", owner="host-a", expires_at=12.5, epoch=2)

        assert lease.to_dict() == {"owner": "host-a", "expires_at": "12.5", "epoch": "2"}


class TestCheckpoint:
    """Tests for Checkpoint model."""

    def test_start_of_stream(self):
        checkpoint = Checkpoint.start_of_stream("4")

        assert checkpoint.partition_id == "4"
        assert checkpoint.sequence_number == 0
        assert checkpoint.offset == ""
        assert checkpoint.enqueued_time_utc is None

    def test_to_dict_and_from_redis(self):
        """Test the Redis hash layout of a checkpoint."""
        enqueued = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        checkpoint = Checkpoint("1", sequence_number=17, offset="1234", enqueued_time_utc=enqueued)

        values = checkpoint.to_dict()

        assert values == {
            "sequence_number": "17",
            "offset": "1234",
            "enqueued_time_utc": "2024-01-01T12:00:00+00:00",
        }
        assert Checkpoint.from_redis("1", values) == checkpoint

    def test_from_redis_without_enqueued_time(self):
        checkpoint = Checkpoint.from_redis(
            "1", {"sequence_number": "0", "offset": "", "enqueued_time_utc": ""}
        )

        assert checkpoint.enqueued_time_utc is None


class TestRuntimeInformation:
    """Tests for management node response models."""

    def test_hub_from_dict(self):
        values = {
            "name": "events",
            "created_at": "2024-01-01T00:00:00+00:00",
            "partition_count": 2,
            "partition_ids": ["0", "1"],
            "unknown": "ignored",
        }

        info = HubRuntimeInformation.from_dict(values)

        assert info.path == "events"
        assert info.partition_count == 2
        assert info.partition_ids == ["0", "1"]
        assert info.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)

    def test_hub_partition_count_defaults_to_ids(self):
        info = HubRuntimeInformation.from_dict({"name": "events", "partition_ids": [0, 1, 2]})

        assert info.partition_count == 3
        assert info.partition_ids == ["0", "1", "2"]

    def test_partition_from_dict(self):
        values = {
            "name": "events",
            "partition": "3",
            "begin_sequence_number": 10,
            "last_enqueued_sequence_number": 99,
            "last_enqueued_offset": "8800",
            "last_enqueued_time_utc": 1704067200000,
        }

        info = PartitionRuntimeInformation.from_dict(values)

        assert info.hub_path == "events"
        assert info.partition_id == "3"
        assert info.beginning_sequence_number == 10
        assert info.last_sequence_number == 99
        assert info.last_enqueued_offset == "8800"
        assert info.last_enqueued_time_utc == datetime(2024, 1, 1, tzinfo=timezone.utc)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
