"""
Partition list caching.

This module keeps the child partitions of each partitioned table between
calls and converts catalog read failures into empty results.
"""

from .manager import (
    CatalogFetchFailure,
    CatalogFetchSuccess,
    FetchResult,
    PartitionCache,
    PartitionCatalogEntry,
    get_partition_cache,
    reset_partition_cache,
    set_partition_cache,
)

__all__ = [
    "CatalogFetchFailure",
    "CatalogFetchSuccess",
    "FetchResult",
    "PartitionCache",
    "PartitionCatalogEntry",
    "get_partition_cache",
    "reset_partition_cache",
    "set_partition_cache",
]
