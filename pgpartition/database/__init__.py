"""
Database access for partitioned tables.

This module provides engine and session management and catalog queries
for child partitions. Partition DDL lives in ``partitioning``.
"""

from .session import (
    Base,
    as_connection,
    atomic,
    build_session_factory,
    create_engine_from_settings,
    get_session,
)
from .catalog import fetch_child_partitions, parse_partition_bound, table_exists

__all__ = [
    "Base",
    "as_connection",
    "atomic",
    "build_session_factory",
    "create_engine_from_settings",
    "get_session",
    "fetch_child_partitions",
    "parse_partition_bound",
    "table_exists",
]
