"""Partition lease exception classes."""


class PartitionLeasesError(Exception):
    """Base exception for partition lease errors."""
    pass


class LeaseNotFoundError(PartitionLeasesError):
    """Raised when an operation references a partition with no lease record."""
    def __init__(self, partition_id: str):
        self.partition_id = partition_id
        super().__init__(f"Lease is not in the store: {partition_id}")


class StoreNotInitializedError(PartitionLeasesError):
    """Raised when a store is used before ensure_store()."""
    def __init__(self, store: str):
        self.store = store
        super().__init__(f"Store not initialized: {store}")


class OperationCancelledError(PartitionLeasesError):
    """Raised when an operation's context has been cancelled."""
    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


class DeadlineExceededError(OperationCancelledError):
    """Raised when an operation's context deadline has passed."""
    def __init__(self, message: str = "Operation deadline exceeded"):
        super().__init__(message)


class LeaseLostError(PartitionLeasesError):
    """Raised when a host writes progress for a partition it no longer owns."""
    def __init__(self, partition_id: str, owner: str = None):
        self.partition_id = partition_id
        self.owner = owner
        msg = f"Lease lost for partition: {partition_id}"
        if owner:
            msg += f" (host: {owner})"
        super().__init__(msg)


class ManagementError(PartitionLeasesError):
    """Raised when the management collaborator cannot answer a query."""
    pass


class RedisConnectionError(PartitionLeasesError):
    """Raised when connection to Redis fails."""
    def __init__(self, message: str = "Failed to connect to Redis"):
        super().__init__(message)


class ValidationError(PartitionLeasesError):
    """Raised when validation fails."""
    pass
