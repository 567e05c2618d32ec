"""
Unit tests for aggregation functions.
"""
import pytest

from report_engine.core.aggregator import AggregateKind, Aggregator, aggregate
from report_engine.core.error_taxonomy import UnknownAggregateError


class TestAggregate:
    """Tests for each aggregate kind."""

    VALUES = [10.0, -5.0, 30.0, 5.0]

    @pytest.mark.parametrize("kind,expected", [
        ("sum", 40.0),
        ("average", 10.0),
        ("count", 4.0),
        ("min", -5.0),
        ("max", 30.0),
        ("first", 10.0),
        ("last", 5.0),
    ])
    def test_kinds(self, kind, expected):
        assert aggregate(self.VALUES, kind) == pytest.approx(expected)

    def test_avg_alias(self):
        assert aggregate(self.VALUES, "avg") == pytest.approx(10.0)
        assert AggregateKind.parse("AVG") is AggregateKind.AVERAGE


class TestEmptyAndNull:
    """Tests for empty match sets and None values."""

    def test_empty_sum_and_count_are_zero(self):
        assert aggregate([], "sum") == 0
        assert aggregate([], "count") == 0

    @pytest.mark.parametrize("kind", ["average", "min", "max", "first", "last"])
    def test_empty_others_are_none(self, kind):
        assert aggregate([], kind) is None

    def test_none_values_skipped_by_numeric_aggregates(self):
        values = [None, 4.0, None, 8.0]
        assert aggregate(values, "sum") == 12.0
        assert aggregate(values, "average") == 6.0
        assert aggregate(values, "min") == 4.0
        assert aggregate(values, "max") == 8.0

    def test_none_values_counted(self):
        assert aggregate([None, 4.0], "count") == 2

    def test_first_last_return_none_as_is(self):
        assert aggregate([None, 4.0], "first") is None
        assert aggregate([4.0, None], "last") is None

    def test_all_none_average_is_none(self):
        assert aggregate([None, None], "average") is None


class TestUnknownAggregate:
    """Unknown kinds are definition-time errors."""

    def test_unknown_kind_raises(self):
        with pytest.raises(UnknownAggregateError) as exc_info:
            aggregate([1.0], "median")
        assert "median" in str(exc_info.value)

    def test_is_supported(self):
        assert Aggregator.is_supported("sum") is True
        assert Aggregator.is_supported("median") is False
