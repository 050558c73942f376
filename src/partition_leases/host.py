"""Processing host: competes for partition leases and records progress."""

import logging
import math
import threading
from typing import Callable, Dict, List, Optional

from partition_leases.bootstrap import bootstrap
from partition_leases.checkpointer import Checkpointer
from partition_leases.context import OperationContext, ensure_context
from partition_leases.exceptions import (
    LeaseLostError,
    LeaseNotFoundError,
    PartitionLeasesError,
    ValidationError,
)
from partition_leases.leaser import Leaser
from partition_leases.management import ManagementClient
from partition_leases.models import Checkpoint, Lease, PartitionRuntimeInformation

logger = logging.getLogger(__name__)

PartitionAcquiredCallback = Callable[[str, Checkpoint], None]
PartitionLostCallback = Callable[[str], None]


class PartitionHost:
    """Holds a share of the stream's partitions for one host identity.

    Every balancing pass renews the leases this host holds, then takes
    available leases until the host owns its fair share
    (ceil(partitions / active hosts)). Live leases held by other hosts are
    never taken.
    """

    def __init__(
        self,
        leaser: Leaser,
        checkpointer: Checkpointer,
        management: ManagementClient,
        renew_interval: float = 10.0,
        on_partition_acquired: Optional[PartitionAcquiredCallback] = None,
        on_partition_lost: Optional[PartitionLostCallback] = None,
    ):
        """Initialize PartitionHost.

        Args:
            leaser: Lease store bound to this host's identity
            checkpointer: Checkpoint store shared by all hosts
            management: Source of the partition set
            renew_interval: Seconds between balancing passes. Must be well
                below the leaser's lease duration.
            on_partition_acquired: Called with the partition id and the
                checkpoint to resume from
            on_partition_lost: Called with the partition id when a lease is
                lost or released
        """
        if renew_interval <= 0:
            raise ValidationError("renew_interval must be > 0")
        if renew_interval >= leaser.lease_duration:
            raise ValidationError("renew_interval must be < lease duration")

        self.leaser = leaser
        self.checkpointer = checkpointer
        self.management = management
        self.renew_interval = renew_interval
        self.on_partition_acquired = on_partition_acquired
        self.on_partition_lost = on_partition_lost
        self.partitions: Dict[str, PartitionRuntimeInformation] = {}

        self._owned: Dict[str, Lease] = {}
        self._lock = threading.Lock()
        self._running = False
        self._stop_event = threading.Event()
        self._balance_thread: Optional[threading.Thread] = None

    @property
    def name(self) -> str:
        return self.leaser.owner_name

    def owned_partitions(self) -> List[str]:
        """Partition ids this host currently holds, sorted."""
        with self._lock:
            return sorted(self._owned)

    def lease_for(self, partition_id: str) -> Optional[Lease]:
        with self._lock:
            return self._owned.get(partition_id)

    def start(self, ctx: Optional[OperationContext] = None) -> None:
        """Seed the stores, take an initial share, and start balancing."""
        self.partitions = bootstrap(self.leaser, self.checkpointer, self.management, ctx)
        self._running = True
        self._stop_event.clear()
        self.balance_once(ctx)

        def balance_worker():
            while self._running:
                self._stop_event.wait(timeout=self.renew_interval)
                if not self._running:
                    break
                try:
                    self.balance_once()
                except PartitionLeasesError as e:
                    logger.error(f"Error in balancing loop for {self.name}: {e}")

        self._balance_thread = threading.Thread(target=balance_worker, daemon=True)
        self._balance_thread.start()
        logger.info(
            f"Host {self.name} started with renew interval {self.renew_interval}s"
        )

    def balance_once(self, ctx: Optional[OperationContext] = None) -> List[str]:
        """Renew held leases, then acquire available ones up to a fair share.

        Returns:
            Partition ids held after the pass
        """
        ctx = ensure_context(ctx)

        for partition_id in self.owned_partitions():
            try:
                lease, ok = self.leaser.renew_lease(partition_id, ctx)
            except LeaseNotFoundError:
                logger.warning(f"Lease for partition {partition_id} was deleted")
                lease, ok = None, False
            if ok:
                with self._lock:
                    self._owned[partition_id] = lease
            else:
                self._lose(partition_id)

        leases = self.leaser.get_leases(ctx)
        active_hosts = {
            lease.owner for lease in leases if not self.leaser.is_available(lease)
        }
        active_hosts.add(self.name)
        target = math.ceil(len(leases) / len(active_hosts)) if leases else 0

        for lease in leases:
            owned = self.owned_partitions()
            if len(owned) >= target:
                break
            if lease.partition_id in owned or not self.leaser.is_available(lease):
                continue
            self._try_acquire(lease.partition_id, ctx)

        return self.owned_partitions()

    def _try_acquire(self, partition_id: str, ctx: OperationContext) -> bool:
        lease, acquired = self.leaser.acquire_lease(partition_id, ctx)
        if not acquired:
            return False

        try:
            checkpoint, _ = self.checkpointer.get_checkpoint(partition_id, ctx)
        except PartitionLeasesError:
            # Not tracked in _owned yet, so hand the lease back.
            try:
                self.leaser.release_lease(partition_id, ctx)
            except PartitionLeasesError as e:
                logger.error(f"Failed to release partition {partition_id}: {e}")
            raise
        with self._lock:
            self._owned[partition_id] = lease
        if self.on_partition_acquired:
            try:
                self.on_partition_acquired(partition_id, checkpoint)
            except Exception as e:
                logger.error(f"Error in acquired callback for partition {partition_id}: {e}")
        return True

    def _lose(self, partition_id: str) -> None:
        with self._lock:
            if self._owned.pop(partition_id, None) is None:
                return
        logger.info(f"Host {self.name} no longer holds partition {partition_id}")
        if self.on_partition_lost:
            try:
                self.on_partition_lost(partition_id)
            except Exception as e:
                logger.error(f"Error in lost callback for partition {partition_id}: {e}")

    def checkpoint(
        self,
        partition_id: str,
        sequence_number: int,
        offset: str,
        enqueued_time_utc=None,
        ctx: Optional[OperationContext] = None,
    ) -> Checkpoint:
        """Record progress for a held partition.

        The lease is updated first, so a host whose lease has lapsed is
        fenced out before it can overwrite the new owner's progress.

        Raises:
            LeaseLostError: If this host does not hold the partition
        """
        ctx = ensure_context(ctx)
        if self.lease_for(partition_id) is None:
            raise LeaseLostError(partition_id, self.name)

        try:
            lease, ok = self.leaser.update_lease(partition_id, ctx)
        except LeaseNotFoundError:
            lease, ok = None, False
        if not ok:
            self._lose(partition_id)
            raise LeaseLostError(partition_id, self.name)

        checkpoint = Checkpoint(
            partition_id=partition_id,
            sequence_number=sequence_number,
            offset=offset,
            enqueued_time_utc=enqueued_time_utc,
        )
        self.checkpointer.update_checkpoint(partition_id, checkpoint, ctx)
        with self._lock:
            self._owned[partition_id] = lease
        return checkpoint

    def stop(self, ctx: Optional[OperationContext] = None) -> None:
        """Stop balancing and release every held lease."""
        self._running = False
        self._stop_event.set()

        if self._balance_thread and self._balance_thread.is_alive():
            self._balance_thread.join(timeout=2.0)

        for partition_id in self.owned_partitions():
            try:
                self.leaser.release_lease(partition_id, ctx)
            except PartitionLeasesError as e:
                logger.error(f"Failed to release partition {partition_id}: {e}")
            self._lose(partition_id)

        logger.info(f"Host {self.name} stopped")

    def __enter__(self):
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.stop()
