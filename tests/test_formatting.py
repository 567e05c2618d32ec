"""
Unit tests for value formatting.
"""
import pytest

from config.settings import FormattingConfig
from report_engine.core.report_definition import FormatRule, FormattingRules
from report_engine.tools.formatting import ValueFormatter, format_number, rules_from_config


class TestFormatNumber:
    """Tests for rounding and grouping."""

    @pytest.mark.parametrize("value,decimals,thousands,expected", [
        (1234567.891, 2, True, "1,234,567.89"),
        (1234567.891, 0, True, "1,234,568"),
        (1234.5, 0, False, "1235"),
        (2.5, 0, True, "3"),
        (-1234.5, 1, True, "-1,234.5"),
        (-0.004, 2, True, "0.00"),
    ])
    def test_format_number(self, value, decimals, thousands, expected):
        assert format_number(value, decimals, thousands) == expected


class TestValueFormatter:
    """Tests for format names."""

    def test_defaults(self):
        formatter = ValueFormatter()
        assert formatter.format(100000, "currency") == "€ 100,000"
        assert formatter.format(25, "percent") == "25.0%"
        assert formatter.format(1234.56, "integer") == "1,235"
        assert formatter.format(1234.567, "decimal") == "1,234.57"
        assert formatter.format(1234.567) == "1,234.57"

    def test_none_is_blank(self):
        assert ValueFormatter().format(None, "currency") == ""

    def test_custom_rules(self):
        rules = FormattingRules(currency=FormatRule(decimals=2, symbol="$", thousands=False))
        assert ValueFormatter(rules).format(1234.5, "currency") == "$ 1234.50"

    def test_rules_from_config(self):
        config = FormattingConfig(currency_symbol="£", currency_decimals=1, percent_decimals=2)
        formatter = ValueFormatter(rules_from_config(config))
        assert formatter.format(1000, "currency") == "£ 1,000.0"
        assert formatter.format(12.345, "percent") == "12.35%"
