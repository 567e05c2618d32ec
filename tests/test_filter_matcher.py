"""
Unit tests for the Filter Matcher.

Tests cover:
- Literal equality without type coercion
- List membership (OR) and multi-field AND
- Pattern objects (contains, startsWith, endsWith, regex)
- Range objects (gte, lte, gt, lt)
- Definition-time validation of fields and pattern keys
"""
import pytest

from report_engine.core.error_taxonomy import InvalidFilterError
from report_engine.core.filter_matcher import (
    FilterMatcher,
    describe_filter,
    get_filter_matcher,
    matches,
)
from report_engine.data.dataset import Row


@pytest.fixture
def row():
    return Row(amount=100.0, year=2024, period=3,
               code1="700", code2="70010", name1="Omzet", name2="Omzet binnenland",
               statement_type="Winst & verlies", account_code="8000")


class TestLiteralMatching:
    """Tests for literal and list filters."""

    def test_empty_spec_matches_every_row(self, row):
        """An absent or empty filter matches everything."""
        assert matches(row, {}) is True
        assert matches(row, None) is True

    def test_literal_equality(self, row):
        assert matches(row, {"code1": "700"}) is True
        assert matches(row, {"code1": "710"}) is False

    def test_literal_has_no_type_coercion(self, row):
        """The string '700' never equals the number 700."""
        assert matches(row, {"code1": 700}) is False

    def test_list_is_or_membership(self, row):
        assert matches(row, {"code1": ["710", "700"]}) is True
        assert matches(row, {"code1": ["710", "720"]}) is False

    def test_fields_combine_with_and(self, row):
        assert matches(row, {"code1": "700", "statement_type": "Winst & verlies"}) is True
        assert matches(row, {"code1": "700", "statement_type": "Balans"}) is False

    def test_none_field_does_not_match_literal(self):
        row = Row(amount=1.0, year=2024, period=1, code1="700")
        assert matches(row, {"code3": "700"}) is False


class TestPatternMatching:
    """Tests for pattern objects."""

    def test_contains(self, row):
        assert matches(row, {"name2": {"contains": "binnen"}}) is True
        assert matches(row, {"name2": {"contains": "buiten"}}) is False

    def test_starts_and_ends_with(self, row):
        assert matches(row, {"code2": {"startsWith": "700"}}) is True
        assert matches(row, {"code2": {"endsWith": "10"}}) is True
        assert matches(row, {"code2": {"endsWith": "20"}}) is False

    def test_patterns_are_case_sensitive(self, row):
        assert matches(row, {"name1": {"contains": "omzet"}}) is False

    def test_regex_uses_search(self, row):
        """Regex matches anywhere in the value unless anchored."""
        assert matches(row, {"account_code": {"regex": "00"}}) is True
        assert matches(row, {"account_code": {"regex": "^8\\d{3}$"}}) is True
        assert matches(row, {"account_code": {"regex": "^9"}}) is False

    def test_multiple_pattern_keys_and_together(self, row):
        spec = {"code2": {"startsWith": "70", "endsWith": "10"}}
        assert matches(row, spec) is True
        spec = {"code2": {"startsWith": "70", "endsWith": "99"}}
        assert matches(row, spec) is False

    def test_pattern_never_matches_none_field(self):
        row = Row(amount=1.0, year=2024, period=1)
        assert matches(row, {"name3": {"contains": ""}}) is False


class TestRangeMatching:
    """Tests for range objects."""

    def test_inclusive_code_range(self, row):
        assert matches(row, {"code1": {"gte": "700", "lte": "799"}}) is True
        assert matches(row, {"code1": {"gte": "710", "lte": "799"}}) is False

    def test_exclusive_bounds(self, row):
        assert matches(row, {"code1": {"gt": "700"}}) is False
        assert matches(row, {"code1": {"lt": "710"}}) is True

    def test_range_selects_revenue_variable(self, movements):
        matcher = FilterMatcher()
        predicate = matcher.compile({"code1": {"gte": "700", "lte": "709"}})
        selected = [r for r in movements if predicate(r)]
        assert {r.code1 for r in selected} == {"700"}
        assert len(selected) == 24

    def test_range_mixes_with_pattern_keys(self, row):
        assert matches(row, {"code2": {"gte": "70000", "startsWith": "700"}}) is True

    def test_range_never_matches_none_field(self):
        row = Row(amount=1.0, year=2024, period=1)
        assert matches(row, {"code1": {"gte": "000"}}) is False

    def test_range_keys_are_valid(self):
        assert FilterMatcher().validate_filter({"code1": {"gte": "700", "lt": 800}}) == []

    def test_bad_range_bound_reported(self):
        errors = FilterMatcher().validate_filter({"code1": {"gte": ["700"]}})
        assert errors == ["Range bound for code1.gte must be a string or number"]


class TestValidation:
    """Tests for definition-time validation."""

    def test_unknown_field_reported(self):
        errors = FilterMatcher().validate_filter({"department": "Sales"})
        assert len(errors) == 1
        assert "Invalid filter field: department" in errors[0]

    def test_unknown_pattern_key_reported(self):
        errors = FilterMatcher().validate_filter({"name1": {"like": "Omzet%"}})
        assert "Invalid pattern key for name1: like" in errors[0]

    def test_empty_list_and_null_reported(self):
        errors = FilterMatcher().validate_filter({"code1": [], "code2": None})
        assert len(errors) == 2

    def test_bad_regex_reported(self):
        errors = FilterMatcher().validate_filter({"name1": {"regex": "("}})
        assert errors and "Invalid regex" in errors[0]

    def test_valid_spec_has_no_errors(self):
        spec = {"code1": ["700", "710"], "name1": {"contains": "Omzet"}, "account_code": "8000"}
        assert FilterMatcher().validate_filter(spec) == []

    def test_compile_raises_for_invalid_spec(self, row):
        with pytest.raises(InvalidFilterError):
            get_filter_matcher().compile({"region": "EU"})

    def test_invalid_spec_raises_even_on_match(self, row):
        """Unknown fields are definition errors, never silent non-matches."""
        with pytest.raises(InvalidFilterError):
            matches(row, {"region": "EU"})


class TestDescribeFilter:
    """Tests for log descriptions."""

    def test_describe(self):
        text = describe_filter({"code1": ["700", "710"], "name1": {"contains": "Omzet"}})
        assert "code1 in [700, 710]" in text
        assert "name1 contains 'Omzet'" in text

    def test_describe_empty(self):
        assert describe_filter({}) == "all rows"
