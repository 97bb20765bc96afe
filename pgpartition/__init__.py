"""
pgpartition - Declarative PostgreSQL partition management for SQLAlchemy.

This library creates list and range partitions under a parent table,
caches the set of known partitions, and routes partition key predicates
to the partitions that can contain matching rows.
"""

__version__ = "1.0.0"

from .config import (
    PartitionSettings,
    configure_logging,
    get_settings,
    reset_settings,
    set_settings,
)
from .errors import (
    CatalogFetchError,
    PartitionDefinitionError,
    PartitionError,
    UnresolvableTableReferenceError,
)
from .schemas import (
    ChildPartition,
    DefaultBound,
    ListBound,
    PartitionedTable,
    PartitionStrategy,
    RangeBound,
    RoutingResult,
)
from .cache import PartitionCache, get_partition_cache, reset_partition_cache, set_partition_cache
from .database.partitioning import PartitionCreator
from .services import PartitionHandle, PartitionKeyResolver, PartitionQuery
from .models import PartitionedMixin

__all__ = [
    # Configuration
    "PartitionSettings",
    "configure_logging",
    "get_settings",
    "reset_settings",
    "set_settings",
    # Errors
    "CatalogFetchError",
    "PartitionDefinitionError",
    "PartitionError",
    "UnresolvableTableReferenceError",
    # Schemas
    "ChildPartition",
    "DefaultBound",
    "ListBound",
    "PartitionedTable",
    "PartitionStrategy",
    "RangeBound",
    "RoutingResult",
    # Services
    "PartitionCache",
    "get_partition_cache",
    "reset_partition_cache",
    "set_partition_cache",
    "PartitionCreator",
    "PartitionHandle",
    "PartitionKeyResolver",
    "PartitionQuery",
    "PartitionedMixin",
]
