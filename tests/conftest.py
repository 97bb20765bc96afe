"""Shared fixtures: a list-partitioned model backed by in-memory SQLite.

SQLite has no declarative partitioning, so each child partition is a plain
table with the parent's columns and the catalog is replaced by a stub
fetcher returning the seeded partitions.
"""

import uuid
from typing import Dict, List

import pytest
from sqlalchemy import Column, MetaData, String, create_engine
from sqlalchemy.orm import Session, declarative_base

from pgpartition.cache import PartitionCache, reset_partition_cache, set_partition_cache
from pgpartition.config import PartitionSettings, reset_settings, set_settings
from pgpartition.models import PartitionedMixin
from pgpartition.schemas import ChildPartition, ListBound, PartitionStrategy

TestBase = declarative_base()


class UuidStringList(PartitionedMixin, TestBase):
    """List partitioned on ``some_string``."""

    __tablename__ = "uuid_string_lists"
    __partition_strategy__ = PartitionStrategy.LIST
    __partition_key__ = "some_string"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    some_string = Column(String(50), nullable=False)


TABLE_NAME = UuidStringList.__tablename__
PARTITION_A = f"{TABLE_NAME}_a"
PARTITION_B = f"{TABLE_NAME}_b"

SEEDED_PARTITIONS = [
    ChildPartition(name=PARTITION_A, parent=TABLE_NAME, bound=ListBound(values=("a", "b"))),
    ChildPartition(name=PARTITION_B, parent=TABLE_NAME, bound=ListBound(values=("c", "d"))),
]


class StubCatalog:
    """Stands in for the PostgreSQL catalog, counting lookups."""

    def __init__(self, partitions: List[ChildPartition]):
        self.partitions = list(partitions)
        self.calls: Dict[str, int] = {}

    def __call__(self, connection, table_name: str) -> List[ChildPartition]:
        self.calls[table_name] = self.calls.get(table_name, 0) + 1
        return [p for p in self.partitions if p.parent == table_name]


@pytest.fixture(autouse=True)
def isolated_settings():
    """Use default settings and a fresh global cache for every test."""
    set_settings(PartitionSettings(_env_file=None))
    yield
    reset_settings()
    reset_partition_cache()


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    TestBase.metadata.create_all(engine)

    children = MetaData()
    for partition in SEEDED_PARTITIONS:
        UuidStringList.__table__.to_metadata(children, name=partition.name)
    children.create_all(engine)

    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def catalog():
    return StubCatalog(SEEDED_PARTITIONS)


@pytest.fixture
def partition_cache(catalog):
    cache = PartitionCache(fetcher=catalog)
    set_partition_cache(cache)
    return cache


@pytest.fixture
def seed(session, partition_cache):
    """Insert a row straight into the partition that owns its key."""

    def _seed(value: str) -> str:
        owner = next(p.name for p in SEEDED_PARTITIONS if value in p.bound.values)
        row_id = str(uuid.uuid4())
        session.execute(
            UuidStringList.in_partition(owner).insert(id=row_id, some_string=value)
        )
        session.commit()
        return row_id

    return _seed


def ids(records) -> set:
    return {record.id for record in records}
