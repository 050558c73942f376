"""Seed lease and checkpoint stores from the management collaborator."""

import logging
from typing import Dict, Optional

from partition_leases.checkpointer import Checkpointer
from partition_leases.context import OperationContext, ensure_context
from partition_leases.leaser import Leaser
from partition_leases.management import ManagementClient
from partition_leases.models import PartitionRuntimeInformation

logger = logging.getLogger(__name__)


def bootstrap(
    leaser: Leaser,
    checkpointer: Checkpointer,
    management: ManagementClient,
    ctx: Optional[OperationContext] = None,
) -> Dict[str, PartitionRuntimeInformation]:
    """Make sure both stores track every partition the stream reports.

    Safe to run from every host on every start: stores are created only when
    missing and existing leases and checkpoints are left untouched.

    Args:
        leaser: Lease store to seed
        checkpointer: Checkpoint store to seed
        management: Source of the partition set and high-water marks
        ctx: Cancellation/deadline signal

    Returns:
        Runtime information keyed by partition id
    """
    ctx = ensure_context(ctx)

    if not leaser.store_exists(ctx):
        leaser.ensure_store(ctx)
    if not checkpointer.store_exists(ctx):
        checkpointer.ensure_store(ctx)

    hub = management.get_hub_runtime_information(ctx)
    logger.info(f"Hub {hub.path} reports {len(hub.partition_ids)} partitions")

    partitions: Dict[str, PartitionRuntimeInformation] = {}
    for partition_id in hub.partition_ids:
        partitions[partition_id] = management.get_partition_runtime_information(
            partition_id, ctx
        )
        leaser.ensure_lease(partition_id, ctx)
        checkpointer.ensure_checkpoint(partition_id, ctx)

    return partitions
