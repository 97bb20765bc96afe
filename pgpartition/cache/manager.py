"""
Process-wide cache of child partition lists.

The cache maps a parent table name to the child partitions last read from
the database catalog. Reads are fail-open: when the catalog cannot be
queried the caller sees an empty list instead of an exception.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy.engine import Connection

from pgpartition.config import PartitionSettings, get_settings
from pgpartition.database.catalog import fetch_child_partitions
from pgpartition.database.session import Bind, as_connection
from pgpartition.errors import CatalogFetchError
from pgpartition.schemas.partition import ChildPartition, PartitionedTable

logger = logging.getLogger(__name__)

PartitionFetcher = Callable[[Connection, str], List[ChildPartition]]
TableRef = Union[str, PartitionedTable]


@dataclass(frozen=True)
class CatalogFetchSuccess:
    """Partitions read from the catalog."""

    partitions: Tuple[ChildPartition, ...]


@dataclass(frozen=True)
class CatalogFetchFailure:
    """The catalog could not be read."""

    error: CatalogFetchError


FetchResult = Union[CatalogFetchSuccess, CatalogFetchFailure]


@dataclass(frozen=True)
class PartitionCatalogEntry:
    """Cached partitions of one parent table."""

    partitions: Tuple[ChildPartition, ...]
    fetched_at: float
    stale: bool = False


class PartitionCache:
    """
    Cache of child partitions keyed by parent table name.

    Entries are replaced whole, never mutated. A registry lock guards the
    entry map and a per-table lock serialises fetch-on-miss, so concurrent
    callers for one table issue a single catalog query.
    """

    def __init__(
        self,
        fetcher: Optional[PartitionFetcher] = fetch_child_partitions,
        ttl_seconds: Optional[float] = None,
        enabled: bool = True,
    ):
        """
        Initialize partition cache.

        Args:
            fetcher: Callable listing the children of a table; None disables fetching
            ttl_seconds: Age after which an entry is refetched (never if None)
            enabled: Whether fetched lists are kept between calls
        """
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

        self._entries: Dict[str, PartitionCatalogEntry] = {}
        self._generations: Dict[str, int] = {}
        self._table_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "failures": 0,
            "invalidations": 0,
        }

    @classmethod
    def from_settings(
        cls,
        settings: Optional[PartitionSettings] = None,
        fetcher: Optional[PartitionFetcher] = fetch_child_partitions,
    ) -> "PartitionCache":
        """Build a cache configured from settings."""
        settings = settings or get_settings()
        return cls(
            fetcher=fetcher,
            ttl_seconds=settings.cache_ttl_seconds,
            enabled=settings.cache_enabled,
        )

    def fetch_partitions(self, table: TableRef, bind: Bind) -> List[str]:
        """
        Get the names of the child partitions of a table.

        Args:
            table: Parent table or its name
            bind: Session, connection or engine used on a cache miss

        Returns:
            Partition names in catalog discovery order, empty if the catalog
            could not be read
        """
        return [partition.name for partition in self.fetch_entries(table, bind)]

    def fetch_entries(self, table: TableRef, bind: Bind) -> List[ChildPartition]:
        """Get the child partitions of a table, including their bounds."""
        name = _table_name(table)

        entry = self._fresh_entry(name)
        if entry is not None:
            return list(entry.partitions)

        with self._table_lock(name):
            entry = self._fresh_entry(name)
            if entry is not None:
                return list(entry.partitions)

            with self._lock:
                self._stats["misses"] += 1
                generation = self._generations.get(name, 0)

            result = self.load(name, bind)

        if isinstance(result, CatalogFetchFailure):
            with self._lock:
                self._stats["failures"] += 1
            logger.warning(f"Could not list partitions of {name}, assuming none: {result.error.cause}")
            return []

        self._store(name, result.partitions, generation)
        return list(result.partitions)

    def load(self, table: TableRef, bind: Bind) -> FetchResult:
        """
        Read the partitions of a table from the catalog, bypassing the cache.

        Args:
            table: Parent table or its name
            bind: Session, connection or engine to query through

        Returns:
            CatalogFetchSuccess with the partitions, or CatalogFetchFailure
        """
        name = _table_name(table)
        if self.fetcher is None:
            return CatalogFetchFailure(
                CatalogFetchError(name, RuntimeError("no partition fetcher registered"))
            )

        try:
            with as_connection(bind) as connection:
                partitions = self.fetcher(connection, name)
        except Exception as e:
            return CatalogFetchFailure(CatalogFetchError(name, e))

        logger.debug(f"Fetched {len(partitions)} partitions of {name}")
        return CatalogFetchSuccess(tuple(partitions))

    def invalidate(self, table: TableRef) -> None:
        """Mark a table's entry stale so the next fetch queries the catalog."""
        name = _table_name(table)
        with self._lock:
            self._generations[name] = self._generations.get(name, 0) + 1
            entry = self._entries.get(name)
            if entry is not None:
                self._entries[name] = PartitionCatalogEntry(
                    partitions=entry.partitions,
                    fetched_at=entry.fetched_at,
                    stale=True,
                )
            self._stats["invalidations"] += 1
        logger.debug(f"Invalidated partition cache for {name}")

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            for name in self._entries:
                self._generations[name] = self._generations.get(name, 0) + 1
            self._entries.clear()
        logger.debug("Cleared partition cache")

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            return {
                "enabled": self.enabled,
                "ttl_seconds": self.ttl_seconds,
                "entries": len(self._entries),
                **self._stats,
            }

    def _fresh_entry(self, name: str) -> Optional[PartitionCatalogEntry]:
        with self._lock:
            entry = self._entries.get(name)
            if entry is None or entry.stale or self._expired(entry):
                return None
            self._stats["hits"] += 1
            return entry

    def _expired(self, entry: PartitionCatalogEntry) -> bool:
        if self.ttl_seconds is None:
            return False
        return time.monotonic() - entry.fetched_at > self.ttl_seconds

    def _store(self, name: str, partitions: Tuple[ChildPartition, ...], generation: int) -> None:
        if not self.enabled:
            return
        with self._lock:
            # An invalidation raced with this fetch; keep the entry stale
            if self._generations.get(name, 0) != generation:
                return
            self._entries[name] = PartitionCatalogEntry(
                partitions=partitions,
                fetched_at=time.monotonic(),
            )

    def _table_lock(self, name: str) -> threading.Lock:
        with self._lock:
            lock = self._table_locks.get(name)
            if lock is None:
                lock = self._table_locks[name] = threading.Lock()
            return lock


def _table_name(table: TableRef) -> str:
    return table.name if isinstance(table, PartitionedTable) else table


# Global partition cache instance
_partition_cache: Optional[PartitionCache] = None


def get_partition_cache() -> PartitionCache:
    """Get the global partition cache, building it from settings on first use."""
    global _partition_cache
    if _partition_cache is None:
        _partition_cache = PartitionCache.from_settings()
    return _partition_cache


def set_partition_cache(cache: PartitionCache):
    """Replace the global partition cache."""
    global _partition_cache
    _partition_cache = cache


def reset_partition_cache():
    """Discard the global partition cache."""
    global _partition_cache
    _partition_cache = None
