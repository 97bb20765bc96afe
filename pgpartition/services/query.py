"""
Partition-aware query construction.

``PartitionHandle`` pins queries to one physical partition while keeping
the mapped model class, and ``PartitionQuery`` narrows queries on the
partition key to the partitions the resolver selects. Both build ordinary
SQLAlchemy statements, so results load as instances of the mapped model.
"""

import copy
import logging
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from sqlalchemy import column, delete, func, insert, inspect, select, table, union_all, update
from sqlalchemy.orm import Session, aliased
from sqlalchemy.orm.util import AliasedClass
from sqlalchemy.sql.elements import ClauseElement, ColumnElement
from sqlalchemy.sql.expression import Alias, Delete, FromClause, Insert, Select, TableClause, Update
from sqlalchemy.sql.util import ClauseAdapter

from pgpartition.database.session import Bind
from pgpartition.errors import UnresolvableTableReferenceError
from pgpartition.services.resolver import PartitionKeyResolver, normalize_values

logger = logging.getLogger(__name__)

Criterion = Union[ColumnElement, Callable[[Any], ColumnElement]]

PARENT = "parent"
ALIAS = "alias"
PARTITION = "partition"
OPAQUE = "opaque"


def child_table(model: Any, name: str) -> TableClause:
    """Build a lightweight table named ``name`` with the columns of ``model``'s table."""
    parent = model.__table__
    columns = [column(col.name, col.type) for col in parent.columns]
    return table(name, *columns, schema=parent.schema)


def routed_from_clause(model: Any, partitions: Iterable[str], visible_name: str) -> FromClause:
    """
    Build a FROM element scanning exactly ``partitions`` under ``visible_name``.

    A single partition is scanned directly; several are combined with
    ``UNION ALL``.
    """
    tables = [child_table(model, name) for name in partitions]
    if not tables:
        raise ValueError("At least one partition is required")
    if len(tables) == 1:
        return tables[0].alias(visible_name)
    return union_all(*(select(*t.c) for t in tables)).subquery(visible_name)


@dataclass(frozen=True)
class QuerySource:
    """The table a query currently reads from."""

    kind: str
    name: str
    from_clause: FromClause
    entity: Any

    @property
    def is_resolvable(self) -> bool:
        return self.kind != OPAQUE


@dataclass(frozen=True)
class PartitionHandle:
    """
    Query entry point pinned to one child partition.

    Handles compare by model and partition name. The mapped class is
    shared with the parent, so ``new()`` and loaded rows are instances of
    the model itself.
    """

    model: Any
    partition_name: str

    @property
    def table_name(self) -> str:
        return self.partition_name

    @property
    def name(self) -> str:
        """Name of the logical model class."""
        return self.model.__name__

    @cached_property
    def table(self) -> TableClause:
        return child_table(self.model, self.partition_name)

    @cached_property
    def from_clause(self) -> FromClause:
        return self.table.alias(self.partition_name)

    @cached_property
    def entity(self) -> AliasedClass:
        return aliased(self.model, self.from_clause, adapt_on_names=True)

    def new(self, **kwargs: Any) -> Any:
        """Instantiate the model."""
        return self.model(**kwargs)

    def query(self) -> "PartitionQuery":
        return PartitionQuery(self.model, source=self)

    def where(self, *criteria: Criterion) -> "PartitionQuery":
        return self.query().where(*criteria)

    def filter_by(self, **kwargs: Any) -> "PartitionQuery":
        return self.query().filter_by(**kwargs)

    def unscoped(self) -> "PartitionQuery":
        return self.query().unscoped()

    def partition_key_in(self, values: Any) -> "PartitionQuery":
        return self.query().partition_key_in(values)

    def partition_key_eq(self, value: Any) -> "PartitionQuery":
        return self.query().partition_key_eq(value)

    def all(self, session: Session) -> List[Any]:
        return self.query().all(session)

    def insert(self, **values: Any) -> Insert:
        """
        Build an INSERT into this partition.

        Python-side column defaults of the model are applied to missing values.
        """
        return insert(self.table).values(**_with_defaults(self.model, values))

    def update(self) -> Update:
        return update(self.table)

    def delete(self) -> Delete:
        return delete(self.table)

    def __repr__(self) -> str:
        return f"<PartitionHandle({self.name}, table_name='{self.partition_name}')>"


def resolve_source(model: Any, source: Any = None) -> QuerySource:
    """
    Work out which table ``source`` refers to.

    Args:
        model: Partitioned model class
        source: None, the model, its table or table name, an alias of its
            table (Core alias or ORM ``aliased``), a PartitionHandle, or any
            other table name or FROM element

    Returns:
        QuerySource: Resolved source; unrelated sources have kind ``opaque``
    """
    parent = model.__table__

    if source is None or source is model or source is parent:
        return QuerySource(PARENT, parent.name, parent, model)
    if isinstance(source, str) and source == parent.name:
        return QuerySource(PARENT, parent.name, parent, model)

    if isinstance(source, PartitionHandle):
        return QuerySource(PARTITION, source.partition_name, source.from_clause, source.entity)

    if isinstance(source, AliasedClass):
        insp = inspect(source)
        selectable = insp.selectable
        if insp.mapper.class_ is model and isinstance(selectable, Alias) and selectable.element is parent:
            return QuerySource(ALIAS, selectable.name, selectable, source)
        return QuerySource(OPAQUE, insp.name, selectable, source)

    if isinstance(source, Alias) and source.element is parent:
        return QuerySource(ALIAS, source.name, source, aliased(model, source))

    if isinstance(source, str):
        from_clause = child_table(model, source).alias(source)
        return QuerySource(OPAQUE, source, from_clause, aliased(model, from_clause, adapt_on_names=True))

    if isinstance(source, FromClause):
        name = getattr(source, "name", None) or str(source)
        return QuerySource(OPAQUE, name, source, aliased(model, source, adapt_on_names=True))

    raise TypeError(f"Unsupported query source: {source!r}")


class PartitionQuery:
    """
    Generative query over a partitioned model.

    Every method returns a new query. Criteria are stored apart from the
    source table and applied when the statement is built. Callable
    criteria receive the entity the statement finally selects from, e.g.
    ``query.where(lambda m: m.id == some_id)``. Column expressions on the
    model, its table or the source alias, e.g. ``Model.id == some_id``, are
    adapted onto the partition or partitions actually scanned.
    """

    def __init__(
        self,
        model: Any,
        source: Any = None,
        resolver: Optional[PartitionKeyResolver] = None,
    ):
        self.model = model
        self.resolver = resolver or PartitionKeyResolver()
        self._source = resolve_source(model, source)
        self._criteria: Tuple[Criterion, ...] = ()
        self._filters: Tuple[Tuple[str, Any], ...] = ()
        self._order_by: Tuple[Criterion, ...] = ()
        self._limit: Optional[int] = None
        self._key_values: Optional[Tuple[Any, ...]] = None

    @property
    def source(self) -> QuerySource:
        """The table this query currently targets."""
        return self._source

    @property
    def key_values(self) -> Optional[Tuple[Any, ...]]:
        return self._key_values

    def from_(self, source: Any) -> "PartitionQuery":
        """Replace the source table, keeping criteria."""
        return self._clone(_source=resolve_source(self.model, source))

    def alias(self, name: Optional[str] = None) -> "PartitionQuery":
        """Read from an alias of the parent table."""
        return self.from_(self.model.__table__.alias(name))

    def in_partition(self, name: str) -> "PartitionQuery":
        return self.from_(PartitionHandle(self.model, name))

    def where(self, *criteria: Criterion) -> "PartitionQuery":
        return self._clone(_criteria=self._criteria + criteria)

    def filter_by(self, **kwargs: Any) -> "PartitionQuery":
        return self._clone(_filters=self._filters + tuple(kwargs.items()))

    def order_by(self, *criteria: Criterion) -> "PartitionQuery":
        return self._clone(_order_by=self._order_by + criteria)

    def limit(self, limit: Optional[int]) -> "PartitionQuery":
        return self._clone(_limit=limit)

    def unscoped(self) -> "PartitionQuery":
        """Drop all criteria, keeping the source table."""
        return self._clone(_criteria=(), _filters=(), _order_by=(), _limit=None, _key_values=None)

    def partition_key_in(self, values: Any) -> "PartitionQuery":
        """
        Restrict the query to rows whose partition key is in ``values``.

        Raises:
            UnresolvableTableReferenceError: If the source is not the
                partitioned table, an alias of it or one of its partitions
        """
        if not self._source.is_resolvable:
            raise UnresolvableTableReferenceError()

        values = tuple(normalize_values(values))
        if self._key_values is not None:
            values = tuple(value for value in self._key_values if value in values)
        return self._clone(_key_values=values)

    def partition_key_eq(self, value: Any) -> "PartitionQuery":
        return self.partition_key_in([value])

    def statement(self, bind: Optional[Bind] = None) -> Select:
        """
        Build the SELECT statement.

        Args:
            bind: Session, connection or engine used to look up partitions;
                required when the query is routed by partition key

        Returns:
            Select: Statement selecting model instances
        """
        from_clause, entity = self._route(bind)
        adapter = ClauseAdapter(
            from_clause,
            adapt_on_names=True,
            adapt_from_selectables=[self.model.__table__, self._source.from_clause],
        )
        stmt = select(entity)

        if self._key_values is not None:
            key = self.model.partitioned_table().partition_key
            stmt = stmt.where(from_clause.c[key].in_(self._key_values))

        for criterion in self._criteria:
            stmt = stmt.where(_apply(criterion, entity, adapter))
        if self._filters:
            stmt = stmt.filter_by(**dict(self._filters))
        if self._order_by:
            stmt = stmt.order_by(*(_apply(criterion, entity, adapter) for criterion in self._order_by))
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt

    def all(self, session: Session) -> List[Any]:
        return list(session.scalars(self.statement(session)).all())

    def first(self, session: Session) -> Optional[Any]:
        return session.scalars(self.statement(session).limit(1)).first()

    def count(self, session: Session) -> int:
        stmt = select(func.count()).select_from(self.statement(session).subquery())
        return session.execute(stmt).scalar_one()

    def _route(self, bind: Optional[Bind]) -> Tuple[FromClause, Any]:
        source = self._source
        if self._key_values is None or source.kind in (PARTITION, OPAQUE):
            return source.from_clause, source.entity

        if bind is None:
            raise ValueError("A bind is required to route a query by partition key")

        routing = self.resolver.resolve_candidates(
            self.model.partitioned_table(), self._key_values, bind
        )
        if not routing:
            # Nothing known to match; let the database prune the parent
            return source.from_clause, source.entity

        from_clause = routed_from_clause(self.model, routing.candidates, source.name)
        return from_clause, aliased(self.model, from_clause, adapt_on_names=True)

    def _clone(self, **changes: Any) -> "PartitionQuery":
        clone = copy.copy(self)
        clone.__dict__.update(changes)
        return clone

    def __repr__(self) -> str:
        return f"<PartitionQuery({self.model.__name__}, source={self._source.kind}:{self._source.name})>"


def _apply(criterion: Criterion, entity: Any, adapter: ClauseAdapter) -> ColumnElement:
    if isinstance(criterion, ClauseElement):
        return adapter.traverse(criterion)
    return criterion(entity)


def _with_defaults(model: Any, values: dict) -> dict:
    row = dict(values)
    for col in model.__table__.columns:
        if col.name in row or col.default is None:
            continue
        if col.default.is_scalar:
            row[col.name] = col.default.arg
        elif col.default.is_callable:
            row[col.name] = col.default.arg(None)
        elif col.default.is_clause_element:
            row[col.name] = col.default.arg
    return row
