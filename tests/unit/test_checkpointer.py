"""Unit tests for the in-memory checkpoint store."""

from datetime import datetime, timezone

import pytest

from partition_leases.checkpointer import InMemoryCheckpointer
from partition_leases.exceptions import StoreNotInitializedError, ValidationError
from partition_leases.models import Checkpoint


class TestCheckpointStore:
    """Tests for store lifecycle."""

    def test_store_exists_after_ensure(self):
        checkpointer = InMemoryCheckpointer()
        assert checkpointer.store_exists() is False

        checkpointer.ensure_store()
        assert checkpointer.store_exists() is True

        checkpointer.delete_store()
        assert checkpointer.store_exists() is False

    def test_uninitialized_store_raises(self):
        checkpointer = InMemoryCheckpointer()

        with pytest.raises(StoreNotInitializedError):
            checkpointer.ensure_checkpoint("0")


class TestEnsureCheckpoint:
    """Tests for ensure_checkpoint and get_checkpoint."""

    def test_first_call_returns_start_of_stream(self, checkpointer):
        checkpoint = checkpointer.ensure_checkpoint("0")

        assert checkpoint.partition_id == "0"
        assert checkpoint.sequence_number == 0
        assert checkpoint.offset == ""

    def test_second_call_returns_identical_values(self, checkpointer):
        first = checkpointer.ensure_checkpoint("0")
        second = checkpointer.ensure_checkpoint("0")

        assert first == second

    def test_ensure_keeps_existing_progress(self, checkpointer):
        checkpointer.ensure_checkpoint("0")
        checkpointer.update_checkpoint(
            "0", Checkpoint("0", sequence_number=12, offset="1200")
        )

        checkpoint = checkpointer.ensure_checkpoint("0")

        assert checkpoint.sequence_number == 12
        assert checkpoint.offset == "1200"

    def test_get_missing_checkpoint_does_not_raise(self, checkpointer):
        checkpoint, found = checkpointer.get_checkpoint("7")

        assert found is False
        assert checkpoint == Checkpoint.start_of_stream("7")

    def test_get_existing_checkpoint(self, checkpointer):
        checkpointer.ensure_checkpoint("0")

        checkpoint, found = checkpointer.get_checkpoint("0")

        assert found is True
        assert checkpoint.sequence_number == 0


class TestUpdateCheckpoint:
    """Tests for update_checkpoint."""

    def test_persists_proposed_values(self, checkpointer):
        checkpointer.ensure_checkpoint("0")
        enqueued = datetime(2024, 1, 1, tzinfo=timezone.utc)

        checkpointer.update_checkpoint(
            "0",
            Checkpoint("0", sequence_number=41, offset="4096", enqueued_time_utc=enqueued),
        )

        checkpoint, found = checkpointer.get_checkpoint("0")
        assert found is True
        assert checkpoint.sequence_number == 41
        assert checkpoint.offset == "4096"
        assert checkpoint.enqueued_time_utc == enqueued

    def test_caller_mutation_does_not_leak_into_store(self, checkpointer):
        proposed = Checkpoint("0", sequence_number=5, offset="50")
        checkpointer.update_checkpoint("0", proposed)

        proposed.sequence_number = 99

        checkpoint, _ = checkpointer.get_checkpoint("0")
        assert checkpoint.sequence_number == 5

    def test_rejects_mismatched_partition(self, checkpointer):
        with pytest.raises(ValidationError):
            checkpointer.update_checkpoint("0", Checkpoint("1", sequence_number=1))

    def test_rejects_negative_sequence_number(self, checkpointer):
        with pytest.raises(ValidationError):
            checkpointer.update_checkpoint("0", Checkpoint("0", sequence_number=-1))


class TestDeleteCheckpoint:
    """Tests for delete_checkpoint."""

    def test_delete_is_idempotent(self, checkpointer):
        checkpointer.ensure_checkpoint("0")

        checkpointer.delete_checkpoint("0")
        checkpointer.delete_checkpoint("0")

        _, found = checkpointer.get_checkpoint("0")
        assert found is False
