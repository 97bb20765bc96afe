"""Partition routing and partition-aware query services."""

from .resolver import PartitionKeyResolver, normalize_values
from .query import (
    PartitionHandle,
    PartitionQuery,
    QuerySource,
    child_table,
    resolve_source,
    routed_from_clause,
)

__all__ = [
    "PartitionKeyResolver",
    "normalize_values",
    "PartitionHandle",
    "PartitionQuery",
    "QuerySource",
    "child_table",
    "resolve_source",
    "routed_from_clause",
]
