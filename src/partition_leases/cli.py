"""Command line access to lease and checkpoint stores.

Usage:
    partition-leases status                     # Leases and checkpoints
    partition-leases bootstrap --host worker1   # Seed stores for every partition
    partition-leases reset                      # Delete both stores
    partition-leases status --config my.yaml
"""

import argparse
import logging
import socket
import sys
from datetime import datetime, timezone
from typing import List, Optional

from partition_leases.bootstrap import bootstrap
from partition_leases.config import load_lease_config
from partition_leases.connection import RedisConnection
from partition_leases.context import OperationContext
from partition_leases.exceptions import PartitionLeasesError, StoreNotInitializedError
from partition_leases.factory import create_management_client, create_stores

logger = logging.getLogger("partition_leases")


def _format_expiry(expires_at: float) -> str:
    if not expires_at:
        return "-"
    return datetime.fromtimestamp(expires_at, tz=timezone.utc).isoformat()


def print_status(leaser, checkpointer, ctx: OperationContext) -> None:
    """Print one line per partition with owner, epoch and checkpoint."""
    try:
        leases = leaser.get_leases(ctx)
    except StoreNotInitializedError:
        print("Lease store not initialized (run 'bootstrap' first)")
        return

    print(f"{'PARTITION':<10} {'OWNER':<20} {'EPOCH':>6} {'EXPIRES':<32} {'SEQUENCE':>10} OFFSET")
    for lease in sorted(leases, key=lambda l: l.partition_id):
        checkpoint, _ = checkpointer.get_checkpoint(lease.partition_id, ctx)
        owner = lease.owner if not leaser.is_available(lease) else "-"
        print(
            f"{lease.partition_id:<10} {owner:<20} {lease.epoch:>6} "
            f"{_format_expiry(lease.expires_at):<32} {checkpoint.sequence_number:>10} "
            f"{checkpoint.offset or '-'}"
        )


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Partition lease and checkpoint stores")
    parser.add_argument("command", choices=["status", "bootstrap", "reset"], help="Action to run")
    parser.add_argument("--config", default="config.yaml", help="Path to config file")
    parser.add_argument("--host", default=socket.gethostname(), help="Host identity")
    parser.add_argument("--timeout", type=float, default=30.0, help="Deadline in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    config = load_lease_config(args.config)
    connection = RedisConnection(config.redis_url) if config.backend == "redis" else None
    leaser, checkpointer = create_stores(config, args.host, connection=connection)
    management = create_management_client(config, connection=connection)
    ctx = OperationContext.with_timeout(args.timeout)

    try:
        if args.command == "bootstrap":
            partitions = bootstrap(leaser, checkpointer, management, ctx)
            logger.info(f"Seeded {len(partitions)} partitions for hub {config.hub_name}")
            print_status(leaser, checkpointer, ctx)
        elif args.command == "reset":
            leaser.delete_store(ctx)
            checkpointer.delete_store(ctx)
            logger.info(f"Deleted lease and checkpoint stores under {config.key_prefix}")
        else:
            print_status(leaser, checkpointer, ctx)
    except PartitionLeasesError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        management.close()
        leaser.close()
        checkpointer.close()
        if connection:
            connection.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
