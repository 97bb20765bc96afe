"""Tests for catalog bound parsing and partition listing."""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from sqlalchemy.engine import Connection

from pgpartition.database.catalog import fetch_child_partitions, parse_partition_bound, table_exists
from pgpartition.schemas import DefaultBound, ListBound, RangeBound


class TestParsePartitionBound:
    """Tests for parse_partition_bound."""

    def test_list_of_strings(self) -> None:
        bound = parse_partition_bound("FOR VALUES IN ('a', 'b')")

        assert isinstance(bound, ListBound)
        assert bound.values == ("a", "b")

    def test_list_with_escaped_quote_and_comma(self) -> None:
        bound = parse_partition_bound("FOR VALUES IN ('it''s', 'x,y')")

        assert bound.values == ("it's", "x,y")

    def test_list_of_numbers_and_null(self) -> None:
        bound = parse_partition_bound("FOR VALUES IN (1, 2.5, NULL)")

        assert bound.values == (1, Decimal("2.5"), None)

    def test_list_with_type_cast(self) -> None:
        bound = parse_partition_bound("FOR VALUES IN ('a'::character varying)")

        assert bound.values == ("a",)

    def test_range(self) -> None:
        bound = parse_partition_bound("FOR VALUES FROM ('2024-01-01') TO ('2024-02-01')")

        assert isinstance(bound, RangeBound)
        assert bound.start == "2024-01-01"
        assert bound.end == "2024-02-01"

    def test_range_unbounded(self) -> None:
        bound = parse_partition_bound("FOR VALUES FROM (MINVALUE) TO (100)")

        assert bound.start is None
        assert bound.end == 100

    def test_default(self) -> None:
        assert isinstance(parse_partition_bound("DEFAULT"), DefaultBound)

    @pytest.mark.parametrize(
        "expression",
        [
            None,
            "",
            "FOR VALUES WITH (modulus 4, remainder 0)",
            "FOR VALUES FROM (1, 'a') TO (2, 'b')",
            "FOR VALUES IN ('unterminated)",
            "FOR VALUES IN (some_function())",
        ],
    )
    def test_unsupported_bounds(self, expression) -> None:
        assert parse_partition_bound(expression) is None


class TestFetchChildPartitions:
    """Tests for fetch_child_partitions with a mocked connection."""

    def _connection(self, rows) -> MagicMock:
        connection = MagicMock(spec=Connection)
        connection.in_transaction.return_value = True
        connection.execute.return_value.fetchall.return_value = rows
        return connection

    def test_rows_become_partitions_in_order(self) -> None:
        connection = self._connection([
            ("events_b", "FOR VALUES IN ('c', 'd')"),
            ("events_a", "FOR VALUES IN ('a', 'b')"),
            ("events_h", "FOR VALUES WITH (modulus 2, remainder 1)"),
        ])

        partitions = fetch_child_partitions(connection, "events")

        assert [p.name for p in partitions] == ["events_b", "events_a", "events_h"]
        assert all(p.parent == "events" for p in partitions)
        assert partitions[0].bound.values == ("c", "d")
        assert partitions[2].bound is None

    def test_uses_savepoint_inside_transaction(self) -> None:
        connection = self._connection([])

        assert fetch_child_partitions(connection, "events") == []
        connection.begin_nested.assert_called_once()
        params = connection.execute.call_args.args[1]
        assert params == {"table_name": "events"}

    def test_own_transaction_outside_transaction(self) -> None:
        connection = self._connection([])
        connection.in_transaction.return_value = False

        fetch_child_partitions(connection, "events")

        connection.begin.assert_called_once()
        connection.begin_nested.assert_not_called()


class TestTableExists:
    def test_reads_scalar(self) -> None:
        connection = MagicMock(spec=Connection)
        connection.execute.return_value.scalar.return_value = False

        assert table_exists(connection, "events_c") is False
