"""Routing of partition key predicates to candidate child partitions."""

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence
from uuid import UUID

from pgpartition.cache.manager import PartitionCache, get_partition_cache
from pgpartition.database.session import Bind
from pgpartition.schemas.partition import (
    ChildPartition,
    DefaultBound,
    ListBound,
    PartitionedTable,
    RangeBound,
    RoutingResult,
)

logger = logging.getLogger(__name__)


class PartitionKeyResolver:
    """
    Determines which child partitions can hold rows for given key values.

    List partitions are candidates when their value set intersects the
    predicate values; range partitions when their interval intersects the
    span ``[min(values), max(values)]``. The default partition is a
    candidate when some value is claimed by no other partition, and a
    partition whose bound could not be parsed is always a candidate.
    """

    def __init__(self, cache: Optional[PartitionCache] = None):
        self._cache = cache

    @property
    def cache(self) -> PartitionCache:
        return self._cache or get_partition_cache()

    def resolve_candidates(self, table: PartitionedTable, values: Any, bind: Bind) -> RoutingResult:
        """
        Resolve the partitions that may contain rows whose key is in ``values``.

        Args:
            table: Partitioned parent table
            values: One key value or an iterable of key values
            bind: Session, connection or engine used on a cache miss

        Returns:
            RoutingResult: Candidate names in catalog discovery order
        """
        partitions = self.cache.fetch_entries(table, bind)
        result = self.select_candidates(table, partitions, values)
        logger.debug(
            f"Routed {table.name}.{table.partition_key} to "
            f"{len(result)} of {len(partitions)} partitions"
        )
        return result

    def select_candidates(
        self,
        table: PartitionedTable,
        partitions: Sequence[ChildPartition],
        values: Any,
    ) -> RoutingResult:
        """Select candidates from a partition snapshot without touching the database."""
        values = normalize_values(values)
        if not values or not partitions:
            return RoutingResult(table=table.name, candidates=())

        claimed = [False] * len(values)
        matches = []
        for partition in partitions:
            bound = partition.bound
            if bound is None or isinstance(bound, DefaultBound):
                matches.append(bound is None)
                continue

            if isinstance(bound, ListBound):
                hits = [_in_list(bound, value) for value in values]
                matched = any(hits)
            else:
                hits = [_in_range(bound, value) for value in values]
                matched = _range_intersects(bound, values)

            claimed = [was or hit for was, hit in zip(claimed, hits)]
            matches.append(matched)

        unclaimed = not all(claimed)
        candidates = tuple(
            partition.name
            for partition, matched in zip(partitions, matches)
            if matched or (unclaimed and partition.is_default)
        )
        return RoutingResult(table=table.name, candidates=candidates)


def normalize_values(values: Any) -> List[Any]:
    """Turn a scalar or an iterable of key values into a duplicate-free list."""
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        values = [values]
    unique = []
    for value in values:
        if value not in unique:
            unique.append(value)
    return unique


def _in_list(bound: ListBound, value: Any) -> bool:
    return any(_coerce(raw, value) == value for raw in bound.values)


def _in_range(bound: RangeBound, value: Any) -> bool:
    try:
        if bound.start is not None and value < _coerce(bound.start, value):
            return False
        if bound.end is not None and not value < _coerce(bound.end, value):
            return False
    except TypeError:
        return False
    return True


def _range_intersects(bound: RangeBound, values: List[Any]) -> bool:
    try:
        low = min(values)
        high = max(values)
        if bound.start is not None and high < _coerce(bound.start, high):
            return False
        if bound.end is not None and not low < _coerce(bound.end, low):
            return False
    except TypeError:
        # Mixed or incomparable values, keep the partition
        return True
    return True


def _coerce(raw: Any, sample: Any) -> Any:
    """Convert a catalog bound literal to the type of a predicate value."""
    if raw is None or sample is None or type(raw) is type(sample):
        return raw

    try:
        if isinstance(sample, Enum):
            return type(sample)(raw)
        if isinstance(sample, bool):
            if isinstance(raw, bool):
                return raw
            return str(raw).lower() in ("true", "t", "1", "yes", "on")
        if isinstance(sample, (int, float, Decimal)):
            # Numeric bounds are compared without truncation
            if isinstance(raw, (int, float, Decimal)):
                return raw
            number = Decimal(str(raw))
            if isinstance(sample, float):
                return float(number)
            if isinstance(sample, int) and number == number.to_integral_value():
                return int(number)
            return number
        if isinstance(sample, datetime):
            parsed = datetime.fromisoformat(str(raw))
            if sample.tzinfo is None and parsed.tzinfo is not None:
                return parsed.replace(tzinfo=None)
            if sample.tzinfo is not None and parsed.tzinfo is None:
                return parsed.replace(tzinfo=sample.tzinfo)
            return parsed
        if isinstance(sample, date):
            return date.fromisoformat(str(raw)[:10])
        if isinstance(sample, UUID):
            return UUID(str(raw))
        if isinstance(sample, str):
            return str(raw)
    except (TypeError, ValueError, ArithmeticError):
        return str(raw)
    return raw
