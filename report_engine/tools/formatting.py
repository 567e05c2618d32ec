"""
Value Formatting

Display strings for resolved report values.

Formats:
- currency: "€ 100,000" (symbol prefix, 0 decimals by default)
- percent:  "25.0%"     (value is already a percentage, never multiplied)
- integer:  "1,235"
- decimal:  "1,234.57"

None renders as an empty string (blank cell).
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from report_engine.core.report_definition import FormatRule, FormattingRules

logger = logging.getLogger(__name__)


def format_number(value: float, decimals: int = 2, thousands: bool = True) -> str:
    """Round half-up to `decimals` places, optionally grouping thousands."""
    quantum = Decimal(1).scaleb(-decimals)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if rounded == 0:
        rounded = abs(rounded)
    if thousands:
        return f"{rounded:,.{decimals}f}"
    return f"{rounded:.{decimals}f}"


class ValueFormatter:
    """
    Applies FormattingRules to raw values.

    Usage:
        formatter = ValueFormatter(report.formatting or FormattingRules())
        formatter.format(100000, "currency")   # "€ 100,000"
        formatter.format(None, "currency")     # ""
    """

    def __init__(self, rules: FormattingRules = None):
        self.rules = rules or FormattingRules()

    def format(self, value: Optional[float], format_name: Optional[str] = None) -> str:
        if value is None:
            return ""

        format_name = format_name or "decimal"
        rule: FormatRule = self.rules.rule_for(format_name)

        if format_name == "currency":
            return self._format_currency(value, rule)
        if format_name == "percent":
            return self._format_percent(value, rule)
        if format_name == "integer":
            return format_number(value, 0, rule.thousands)
        return format_number(value, rule.decimals, rule.thousands)

    @staticmethod
    def _format_currency(value: float, rule: FormatRule) -> str:
        formatted = format_number(value, rule.decimals, rule.thousands)
        symbol = rule.symbol or "€"
        return f"{symbol} {formatted}"

    @staticmethod
    def _format_percent(value: float, rule: FormatRule) -> str:
        formatted = format_number(value, rule.decimals, rule.thousands)
        return f"{formatted}{rule.symbol or '%'}"


def rules_from_config(formatting_config) -> FormattingRules:
    """Default FormattingRules built from the FormattingConfig section."""
    return FormattingRules(
        currency=FormatRule(
            decimals=formatting_config.currency_decimals,
            symbol=formatting_config.currency_symbol,
        ),
        percent=FormatRule(
            decimals=formatting_config.percent_decimals,
            thousands=False,
            symbol="%",
        ),
    )
