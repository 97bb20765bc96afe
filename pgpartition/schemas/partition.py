"""Pydantic schemas describing partitioned tables and their children."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


LiteralRenderer = Callable[[Any], str]


class PartitionStrategy(str, Enum):
    """Supported declarative partitioning strategies."""

    LIST = "list"
    RANGE = "range"


class PartitionedTable(BaseModel):
    """Identity of a logical parent relation."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Parent table name")
    primary_key: str = Field(default="id", description="Primary key column name")
    strategy: PartitionStrategy = Field(..., description="Partitioning strategy")
    partition_key: str = Field(..., min_length=1, description="Partition key column")


class ListBound(BaseModel):
    """Discrete value set owned by a list partition."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["list"] = "list"
    values: Tuple[Any, ...] = Field(..., description="Values stored in the partition")

    @field_validator("values")
    def validate_values(cls, v: Tuple[Any, ...]) -> Tuple[Any, ...]:
        """Reject empty sets and drop duplicates, keeping first occurrence."""
        if not v:
            raise ValueError("A list partition needs at least one value")
        unique = []
        for value in v:
            if value not in unique:
                unique.append(value)
        return tuple(unique)

    def render(self, literal: LiteralRenderer) -> str:
        rendered = ", ".join(literal(value) for value in self.values)
        return f"FOR VALUES IN ({rendered})"


class RangeBound(BaseModel):
    """
    Half-open interval ``[start, end)`` owned by a range partition.

    A ``None`` start stands for ``MINVALUE`` and a ``None`` end for
    ``MAXVALUE``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["range"] = "range"
    start: Optional[Any] = Field(default=None, description="Inclusive lower bound")
    end: Optional[Any] = Field(default=None, description="Exclusive upper bound")

    @model_validator(mode="after")
    def validate_order(self) -> "RangeBound":
        """Ensure the interval is not empty when both ends are concrete."""
        if self.start is not None and self.end is not None:
            try:
                ordered = self.start < self.end
            except TypeError as e:
                raise ValueError(f"Range bounds are not comparable: {e}") from e
            if not ordered:
                raise ValueError("Range start must be lower than range end")
        return self

    def render(self, literal: LiteralRenderer) -> str:
        lower = "MINVALUE" if self.start is None else literal(self.start)
        upper = "MAXVALUE" if self.end is None else literal(self.end)
        return f"FOR VALUES FROM ({lower}) TO ({upper})"


class DefaultBound(BaseModel):
    """Catch-all partition for values no other partition claims."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["default"] = "default"

    def render(self, literal: LiteralRenderer) -> str:
        return "DEFAULT"


PartitionBound = Union[ListBound, RangeBound, DefaultBound]


class ChildPartition(BaseModel):
    """A physical partition as reported by the database catalog."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Child table name")
    parent: str = Field(..., description="Parent table name")
    bound: Optional[PartitionBound] = Field(
        default=None,
        description="Parsed bound, None when the catalog expression was not understood",
    )

    @property
    def is_default(self) -> bool:
        return isinstance(self.bound, DefaultBound)


@dataclass(frozen=True)
class RoutingResult:
    """Candidate partitions for one predicate, in catalog discovery order."""

    table: str
    candidates: Tuple[str, ...]

    def __iter__(self) -> Iterator[str]:
        return iter(self.candidates)

    def __len__(self) -> int:
        return len(self.candidates)

    def __bool__(self) -> bool:
        return bool(self.candidates)
