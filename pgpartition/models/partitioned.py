"""Declarative mixin for partitioned models."""

from typing import Any, Iterable, List, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import declared_attr

from pgpartition.cache.manager import PartitionCache, get_partition_cache
from pgpartition.database.partitioning import PartitionCreator
from pgpartition.database.session import Bind
from pgpartition.schemas.partition import (
    DefaultBound,
    ListBound,
    PartitionBound,
    PartitionedTable,
    PartitionStrategy,
    RangeBound,
)
from pgpartition.services.query import PartitionHandle, PartitionQuery


class PartitionedMixin:
    """
    Mixin for models mapped to a declaratively partitioned table.

    Models declare the strategy and key; the parent table is created with
    ``PARTITION BY`` through ``postgresql_partition_by``.

    Example:
        ```python
        class Reading(PartitionedMixin, Base):
            __tablename__ = "readings"
            __partition_strategy__ = PartitionStrategy.RANGE
            __partition_key__ = "taken_on"

            id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
            taken_on = Column(Date, primary_key=True)

        Reading.create_partition(session, start=date(2024, 1, 1), end=date(2024, 2, 1))
        Reading.partition_key_eq(date(2024, 1, 15)).all(session)
        ```
    """

    __partition_strategy__: PartitionStrategy = PartitionStrategy.LIST
    __partition_key__: Optional[str] = None
    __partition_primary_key__: Optional[str] = None

    @declared_attr
    def __table_args__(cls):
        return partition_table_args(cls.__partition_strategy__, cls.__partition_key__)

    @classmethod
    def primary_key(cls) -> str:
        """
        Get the primary key column name.

        PostgreSQL requires the partition key in every unique constraint, so
        for composite keys the first column other than the partition key is
        reported.
        """
        if cls.__partition_primary_key__:
            return cls.__partition_primary_key__

        columns = [col.name for col in inspect(cls).primary_key]
        others = [name for name in columns if name != cls.__partition_key__]
        return (others or columns)[0]

    @classmethod
    def partitioned_table(cls) -> PartitionedTable:
        return PartitionedTable(
            name=cls.__table__.name,
            primary_key=cls.primary_key(),
            strategy=cls.__partition_strategy__,
            partition_key=cls.__partition_key__,
        )

    @classmethod
    def partitions(cls, bind: Bind, cache: Optional[PartitionCache] = None) -> List[str]:
        """Get the names of the child partitions, empty if they cannot be listed."""
        cache = cache or get_partition_cache()
        return cache.fetch_partitions(cls.partitioned_table(), bind)

    @classmethod
    def create_partition(
        cls,
        bind: Bind,
        values: Optional[Iterable[Any]] = None,
        start: Any = None,
        end: Any = None,
        default: bool = False,
        name: Optional[str] = None,
        creator: Optional[PartitionCreator] = None,
    ) -> str:
        """
        Create a child partition.

        Args:
            bind: Session, connection or engine to issue DDL through
            values: Values of a list partition
            start: Inclusive lower bound of a range partition (None for MINVALUE)
            end: Exclusive upper bound of a range partition (None for MAXVALUE)
            default: Create the default partition instead
            name: Partition name, ``<table>_<random suffix>`` if omitted
            creator: Creator to use (one bound to the global cache if None)

        Returns:
            str: Name of the created partition

        Raises:
            PartitionDefinitionError: If the bound overlaps an existing partition
        """
        creator = creator or PartitionCreator()
        bound = cls._partition_bound(values=values, start=start, end=end, default=default)
        return creator.create_partition(bind, cls.partitioned_table(), bound, name=name)

    @classmethod
    def in_partition(cls, name: str) -> PartitionHandle:
        """Get a query entry point pinned to the partition ``name``."""
        return PartitionHandle(cls, name)

    @classmethod
    def query(cls) -> PartitionQuery:
        return PartitionQuery(cls)

    @classmethod
    def partition_key_in(cls, values: Iterable[Any]) -> PartitionQuery:
        return cls.query().partition_key_in(values)

    @classmethod
    def partition_key_eq(cls, value: Any) -> PartitionQuery:
        return cls.query().partition_key_eq(value)

    @classmethod
    def _partition_bound(
        cls,
        values: Optional[Iterable[Any]],
        start: Any,
        end: Any,
        default: bool,
    ) -> PartitionBound:
        if default:
            return DefaultBound()
        if cls.__partition_strategy__ == PartitionStrategy.LIST:
            if values is None:
                raise ValueError(f"{cls.__name__} is list partitioned, values are required")
            return ListBound(values=tuple(values))
        if values is not None:
            raise ValueError(f"{cls.__name__} is range partitioned, use start and end")
        return RangeBound(start=start, end=end)


def partition_table_args(strategy: PartitionStrategy, partition_key: Optional[str]) -> dict:
    """Build ``__table_args__`` declaring the PostgreSQL partitioning of a table."""
    if not partition_key:
        return {}
    return {"postgresql_partition_by": f"{strategy.name} ({partition_key})"}
