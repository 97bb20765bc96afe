"""
PostgreSQL catalog queries for declarative partitions.

Child partitions are discovered through ``pg_inherits`` and their bounds
are read back with ``pg_get_expr(relpartbound, oid)``, which renders
expressions such as ``FOR VALUES IN ('a', 'b')`` or
``FOR VALUES FROM ('2024-01-01') TO ('2024-02-01')``.
"""

import logging
import re
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection

from pgpartition.database.session import atomic
from pgpartition.schemas.partition import (
    ChildPartition,
    DefaultBound,
    ListBound,
    PartitionBound,
    RangeBound,
)

logger = logging.getLogger(__name__)

LIST_PARTITIONS_SQL = """
SELECT
    child.relname AS partition_name,
    pg_get_expr(child.relpartbound, child.oid) AS bound
FROM pg_inherits
JOIN pg_class parent ON parent.oid = pg_inherits.inhparent
JOIN pg_class child ON child.oid = pg_inherits.inhrelid
WHERE parent.oid = CAST(:table_name AS regclass)
ORDER BY child.oid
"""

TABLE_EXISTS_SQL = "SELECT to_regclass(:table_name) IS NOT NULL"

_LIST_BOUND = re.compile(r"^FOR VALUES IN \((?P<values>.*)\)$", re.DOTALL)
_RANGE_BOUND = re.compile(
    r"^FOR VALUES FROM \((?P<start>.*)\) TO \((?P<end>.*)\)$", re.DOTALL
)
_QUOTED = re.compile(r"^'(?P<body>(?:[^']|'')*)'(?:::.+)?$", re.DOTALL)
_INTEGER = re.compile(r"^-?\d+$")
_NUMERIC = re.compile(r"^-?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")


def fetch_child_partitions(connection: Connection, table_name: str) -> List[ChildPartition]:
    """
    List the direct child partitions of ``table_name``.

    Args:
        connection: Open connection; a SAVEPOINT is used if a transaction is active
        table_name: Parent table name, optionally schema qualified

    Returns:
        Child partitions in catalog discovery order (may be empty)
    """
    with atomic(connection):
        result = connection.execute(text(LIST_PARTITIONS_SQL), {"table_name": table_name})
        rows = result.fetchall()

    partitions = []
    for name, bound in rows:
        parsed = parse_partition_bound(bound)
        if parsed is None:
            logger.debug(f"Unrecognised bound for partition {name}: {bound!r}")
        partitions.append(ChildPartition(name=name, parent=table_name, bound=parsed))
    return partitions


def table_exists(connection: Connection, table_name: str) -> bool:
    """Check whether a relation called ``table_name`` exists."""
    result = connection.execute(text(TABLE_EXISTS_SQL), {"table_name": table_name})
    return bool(result.scalar())


def parse_partition_bound(expression: Optional[str]) -> Optional[PartitionBound]:
    """
    Parse a ``pg_get_expr`` partition bound.

    Args:
        expression: Bound expression as rendered by PostgreSQL

    Returns:
        The parsed bound, or None for hash bounds, multi-column range
        bounds and anything else that is not understood
    """
    if not expression:
        return None

    expression = expression.strip()
    if expression.upper() == "DEFAULT":
        return DefaultBound()

    try:
        match = _LIST_BOUND.match(expression)
        if match:
            values = [_parse_literal(token) for token in _split_literals(match.group("values"))]
            # Values come from the catalog, the database already validated them
            return ListBound.model_construct(values=tuple(values))

        match = _RANGE_BOUND.match(expression)
        if match:
            start = _split_literals(match.group("start"))
            end = _split_literals(match.group("end"))
            if len(start) != 1 or len(end) != 1:
                return None
            return RangeBound.model_construct(
                start=_parse_literal(start[0]), end=_parse_literal(end[0])
            )
    except ValueError:
        return None

    return None


def _split_literals(body: str) -> List[str]:
    """Split a comma separated literal list, honouring single quotes."""
    items = []
    current = []
    in_quote = False
    i = 0
    while i < len(body):
        char = body[i]
        if char == "'":
            if in_quote and body[i + 1:i + 2] == "'":
                current.append("''")
                i += 2
                continue
            in_quote = not in_quote
        if char == "," and not in_quote:
            items.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    if in_quote:
        raise ValueError(f"Unterminated literal in {body!r}")
    items.append("".join(current).strip())
    return items


def _parse_literal(token: str) -> Any:
    """Convert one SQL literal into a Python value.

    Quoted literals stay strings; MINVALUE, MAXVALUE and NULL become None.
    """
    match = _QUOTED.match(token)
    if match:
        return match.group("body").replace("''", "'")

    upper = token.upper()
    if upper in ("MINVALUE", "MAXVALUE", "NULL"):
        return None
    if upper in ("TRUE", "FALSE"):
        return upper == "TRUE"
    if _INTEGER.match(token):
        return int(token)
    if _NUMERIC.match(token):
        return Decimal(token)
    raise ValueError(f"Unsupported literal in partition bound: {token!r}")
