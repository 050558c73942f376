"""Unit tests for store bootstrap."""

from unittest.mock import MagicMock

import pytest

from partition_leases.bootstrap import bootstrap
from partition_leases.checkpointer import InMemoryCheckpointer
from partition_leases.exceptions import ManagementError
from partition_leases.leaser import InMemoryLeaser
from partition_leases.management import StaticManagementClient
from partition_leases.models import Checkpoint


@pytest.fixture
def stores(clock):
    return InMemoryLeaser("A", clock=clock), InMemoryCheckpointer("A")


def test_bootstrap_creates_stores_and_records(stores):
    leaser, checkpointer = stores
    management = StaticManagementClient("events", partition_count=3)

    partitions = bootstrap(leaser, checkpointer, management)

    assert sorted(partitions) == ["0", "1", "2"]
    assert leaser.store_exists() and checkpointer.store_exists()
    assert sorted(l.partition_id for l in leaser.get_leases()) == ["0", "1", "2"]
    for partition_id in partitions:
        checkpoint, found = checkpointer.get_checkpoint(partition_id)
        assert found is True
        assert checkpoint == Checkpoint.start_of_stream(partition_id)


def test_bootstrap_is_idempotent(stores):
    leaser, checkpointer = stores
    management = StaticManagementClient("events", partition_count=2)
    bootstrap(leaser, checkpointer, management)
    leaser.acquire_lease("0")
    checkpointer.update_checkpoint("0", Checkpoint("0", sequence_number=9, offset="90"))

    bootstrap(leaser, checkpointer, management)

    lease = next(l for l in leaser.get_leases() if l.partition_id == "0")
    assert lease.owner == "A"
    assert lease.epoch == 1
    checkpoint, _ = checkpointer.get_checkpoint("0")
    assert checkpoint.sequence_number == 9


def test_management_errors_propagate(stores):
    leaser, checkpointer = stores
    management = MagicMock()
    management.get_hub_runtime_information.side_effect = ManagementError("down")

    with pytest.raises(ManagementError):
        bootstrap(leaser, checkpointer, management)
