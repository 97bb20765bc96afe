"""Partition-related Pydantic schemas."""

from .partition import (
    ChildPartition,
    DefaultBound,
    ListBound,
    PartitionBound,
    PartitionedTable,
    PartitionStrategy,
    RangeBound,
    RoutingResult,
)

__all__ = [
    "ChildPartition",
    "DefaultBound",
    "ListBound",
    "PartitionBound",
    "PartitionedTable",
    "PartitionStrategy",
    "RangeBound",
    "RoutingResult",
]
