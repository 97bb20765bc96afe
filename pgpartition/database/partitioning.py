"""
Creation and removal of declarative child partitions.

A partition is created in two steps: a standalone table shaped like the
parent is created, then attached to the parent with the requested bound.
If the database rejects the bound the standalone table is dropped again
before the error is raised, so a failed attempt leaves nothing behind.
"""

import logging
import secrets
from typing import Any, Iterable, Optional, Union

from sqlalchemy import literal, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError

from pgpartition.cache.manager import PartitionCache, get_partition_cache
from pgpartition.config import PartitionSettings, get_settings
from pgpartition.database.session import Bind, as_connection, atomic
from pgpartition.errors import PartitionDefinitionError
from pgpartition.schemas.partition import (
    DefaultBound,
    ListBound,
    PartitionBound,
    PartitionedTable,
    PartitionStrategy,
    RangeBound,
)

logger = logging.getLogger(__name__)

# invalid_object_definition (overlap, bad bound) and invalid_table_definition
INVALID_DEFINITION_SQLSTATES = frozenset({"42P17", "42P16"})

# PostgreSQL truncates longer identifiers (NAMEDATALEN - 1)
MAX_IDENTIFIER_BYTES = 63

TableRef = Union[str, PartitionedTable]


class PartitionCreator:
    """Issues the DDL that creates, detaches and drops child partitions."""

    def __init__(
        self,
        cache: Optional[PartitionCache] = None,
        settings: Optional[PartitionSettings] = None,
    ):
        """
        Initialize partition creator.

        Args:
            cache: Cache to invalidate after DDL (the global cache if None)
            settings: Settings providing the generated name suffix length
        """
        self._cache = cache
        self.settings = settings or get_settings()

    @property
    def cache(self) -> PartitionCache:
        return self._cache or get_partition_cache()

    def generate_name(self, table: TableRef) -> str:
        """Generate ``<table>_<random hex suffix>``."""
        length = self.settings.name_suffix_length
        suffix = secrets.token_hex((length + 1) // 2)[:length]
        return f"{_table_name(table)}_{suffix}"

    def create_partition(
        self,
        bind: Bind,
        table: TableRef,
        bound: PartitionBound,
        name: Optional[str] = None,
    ) -> str:
        """
        Create a child partition of ``table`` bound to ``bound``.

        Args:
            bind: Session, connection or engine to issue DDL through
            table: Parent table or its name
            bound: List, range or default bound of the new partition
            name: Child table name, generated if omitted

        Returns:
            str: Name of the created partition

        Raises:
            PartitionDefinitionError: If the database rejects the bound
            ValueError: If the bound does not fit the table's strategy or the
                name is too long to be an identifier
        """
        parent = _table_name(table)
        _check_strategy(table, bound)
        child = name or self.generate_name(parent)
        _check_identifier(child)

        with as_connection(bind) as connection:
            attach_sql = self._attach_sql(connection, parent, child, bound)

            with atomic(connection):
                connection.execute(text(
                    f"CREATE TABLE {_quote(connection, child)} "
                    f"(LIKE {_quote(connection, parent)} INCLUDING DEFAULTS INCLUDING CONSTRAINTS)"
                ))

            try:
                with atomic(connection):
                    connection.execute(text(attach_sql))
            except Exception as e:
                self._drop_intermediate(connection, child)
                if isinstance(e, DBAPIError) and is_invalid_definition(e):
                    logger.warning(f"Rejected partition {child} of {parent}: {e.orig}")
                    raise PartitionDefinitionError(
                        parent, child, f"Invalid partition definition for {child} of {parent}: {e.orig}"
                    ) from e
                raise

        self.cache.invalidate(parent)
        logger.info(f"Created partition {child} of {parent}")
        return child

    def create_list_partition(
        self,
        bind: Bind,
        table: TableRef,
        values: Iterable[Any],
        name: Optional[str] = None,
    ) -> str:
        """Create a list partition holding ``values``."""
        return self.create_partition(bind, table, ListBound(values=tuple(values)), name=name)

    def create_range_partition(
        self,
        bind: Bind,
        table: TableRef,
        start: Any = None,
        end: Any = None,
        name: Optional[str] = None,
    ) -> str:
        """Create a range partition for ``[start, end)``; None means unbounded."""
        return self.create_partition(bind, table, RangeBound(start=start, end=end), name=name)

    def create_default_partition(
        self,
        bind: Bind,
        table: TableRef,
        name: Optional[str] = None,
    ) -> str:
        """Create the default partition of ``table``."""
        return self.create_partition(bind, table, DefaultBound(), name=name)

    def detach_partition(self, bind: Bind, table: TableRef, name: str) -> None:
        """Detach a partition, keeping it as a standalone table."""
        parent = _table_name(table)
        with as_connection(bind) as connection:
            with atomic(connection):
                connection.execute(text(
                    f"ALTER TABLE {_quote(connection, parent)} DETACH PARTITION {_quote(connection, name)}"
                ))
        self.cache.invalidate(parent)
        logger.info(f"Detached partition {name} from {parent}")

    def drop_partition(self, bind: Bind, table: TableRef, name: str) -> None:
        """Drop a partition together with its rows."""
        parent = _table_name(table)
        with as_connection(bind) as connection:
            with atomic(connection):
                connection.execute(text(f"DROP TABLE IF EXISTS {_quote(connection, name)}"))
        self.cache.invalidate(parent)
        logger.info(f"Dropped partition {name} of {parent}")

    def _attach_sql(self, connection: Connection, parent: str, child: str, bound: PartitionBound) -> str:
        clause = bound.render(lambda value: _literal(connection, value))
        return (
            f"ALTER TABLE {_quote(connection, parent)} "
            f"ATTACH PARTITION {_quote(connection, child)} {clause}"
        )

    def _drop_intermediate(self, connection: Connection, child: str) -> None:
        """Drop the table created before a failed attach."""
        try:
            with atomic(connection):
                connection.execute(text(f"DROP TABLE IF EXISTS {_quote(connection, child)}"))
            logger.debug(f"Dropped intermediate table {child}")
        except DBAPIError:
            logger.exception(f"Failed to drop intermediate table {child}")


def is_invalid_definition(error: DBAPIError) -> bool:
    """Check whether a database error reports an invalid partition definition."""
    orig = getattr(error, "orig", None)
    # psycopg 3 exposes sqlstate, psycopg2 pgcode
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code in INVALID_DEFINITION_SQLSTATES


def _check_strategy(table: TableRef, bound: PartitionBound) -> None:
    if not isinstance(table, PartitionedTable) or isinstance(bound, DefaultBound):
        return
    expected = ListBound if table.strategy == PartitionStrategy.LIST else RangeBound
    if not isinstance(bound, expected):
        raise ValueError(
            f"{table.name} is partitioned by {table.strategy.value}, got a {bound.kind} bound"
        )


def _check_identifier(name: str) -> None:
    if not name:
        raise ValueError("Partition name must not be empty")
    if len(name.encode("utf-8")) > MAX_IDENTIFIER_BYTES:
        raise ValueError(
            f"Partition name {name!r} exceeds {MAX_IDENTIFIER_BYTES} bytes"
        )


def _table_name(table: TableRef) -> str:
    return table.name if isinstance(table, PartitionedTable) else table


def _quote(connection: Connection, name: str) -> str:
    preparer = connection.dialect.identifier_preparer
    return ".".join(preparer.quote(part) for part in name.split("."))


def _literal(connection: Connection, value: Any) -> str:
    compiled = literal(value).compile(
        dialect=connection.dialect,
        compile_kwargs={"literal_binds": True},
    )
    return str(compiled)
