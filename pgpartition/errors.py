"""Exception hierarchy for partition management."""

from typing import Optional


class PartitionError(Exception):
    """Base class for all partition management errors."""


class CatalogFetchError(PartitionError):
    """Listing the child partitions of a table failed.

    Never raised to callers of partition listing; carried inside a
    ``CatalogFetchFailure`` so the cache can fall back to an empty list.
    """

    def __init__(self, table: str, cause: Optional[BaseException] = None):
        self.table = table
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not list partitions of {table}{detail}")


class PartitionDefinitionError(PartitionError):
    """The database rejected the bound of a new partition.

    Raised for overlapping value sets or ranges and for malformed bounds,
    after any intermediate table has been dropped.
    """

    def __init__(self, table: str, partition: str, message: Optional[str] = None):
        self.table = table
        self.partition = partition
        super().__init__(
            message or f"Invalid partition definition for {partition} of {table}"
        )


class UnresolvableTableReferenceError(PartitionError):
    """The current query does not target the partitioned table or an alias of it."""

    def __init__(self, message: str = "could not find a resolvable table reference in the current query"):
        super().__init__(message)
