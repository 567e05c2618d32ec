"""
Filter Matcher

Tests movement rows against a filter specification.

A filter spec maps a row field to one of:
- a literal: strict equality ({"code1": "700"})
- a list of literals: OR-membership ({"code1": ["700", "710"]})
- a pattern object: substring/regex test on the stringified field value
  ({"name1": {"contains": "Omzet"}}, keys: contains, startsWith, endsWith, regex)
- a range object: inclusive or exclusive bounds on the field value
  ({"code1": {"gte": "700", "lte": "799"}}, keys: gte, lte, gt, lt)

All fields are combined with AND logic. An absent or empty spec matches
every row. Unknown fields and pattern keys are definition-time errors,
never per-row failures.
"""
import re
import logging
import operator
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional

from report_engine.core.error_taxonomy import InvalidFilterError

logger = logging.getLogger(__name__)

FilterSpec = Mapping[str, Any]
RowPredicate = Callable[[Any], bool]

VALID_FIELDS = (
    "code1", "code2", "code3",
    "name1", "name2", "name3",
    "statement_type",
    "account_code",
)


class PatternKind(Enum):
    """Pattern predicates supported inside a pattern object."""
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    REGEX = "regex"


class RangeKind(Enum):
    """Bound predicates supported inside a range object."""
    GTE = "gte"
    LTE = "lte"
    GT = "gt"
    LT = "lt"


_RANGE_OPERATORS = {
    RangeKind.GTE: operator.ge,
    RangeKind.LTE: operator.le,
    RangeKind.GT: operator.gt,
    RangeKind.LT: operator.lt,
}

VALID_PATTERN_KEYS = tuple(kind.value for kind in PatternKind)
VALID_RANGE_KEYS = tuple(kind.value for kind in RangeKind)


def _match_all(row) -> bool:
    return True


class FilterMatcher:
    """
    Row-level filter evaluation.

    Usage:
        matcher = FilterMatcher()
        matcher.matches(row, {"code1": ["700", "710"], "statement_type": "Winst & verlies"})

        predicate = matcher.compile(spec)   # validate once, test many rows
        selected = [r for r in rows if predicate(r)]
    """

    def matches(self, row, filter_spec: Optional[FilterSpec]) -> bool:
        """Check whether a single row satisfies the filter spec."""
        return self.compile(filter_spec)(row)

    def compile(self, filter_spec: Optional[FilterSpec]) -> RowPredicate:
        """
        Validate a filter spec and build a reusable row predicate.

        Regex patterns are compiled once here rather than per row.

        Raises:
            InvalidFilterError: If the spec names an unknown field or pattern key
        """
        if not filter_spec:
            return _match_all

        errors = self.validate_filter(filter_spec)
        if errors:
            raise InvalidFilterError(
                f"Invalid filter specification: {'; '.join(errors)}",
                context={"filter": dict(filter_spec)},
            )

        conditions = [
            self._build_condition(field_name, value)
            for field_name, value in filter_spec.items()
        ]

        def predicate(row) -> bool:
            return all(condition(row) for condition in conditions)

        return predicate

    def _build_condition(self, field_name: str, value: Any) -> RowPredicate:
        """Build the predicate for one field of the spec."""
        if isinstance(value, (list, tuple)):
            options = list(value)
            return lambda row: row.get(field_name) in options

        if isinstance(value, Mapping):
            tests = [
                self._build_range_test(key, arg) if key in VALID_RANGE_KEYS
                else self._build_pattern_test(key, arg)
                for key, arg in value.items()
            ]

            def object_condition(row) -> bool:
                field_value = row.get(field_name)
                if field_value is None:
                    return False
                return all(test(field_value) for test in tests)

            return object_condition

        return lambda row: row.get(field_name) == value

    @staticmethod
    def _build_pattern_test(kind: str, argument: str) -> Callable[[Any], bool]:
        pattern = PatternKind(kind)
        if pattern is PatternKind.CONTAINS:
            return lambda field_value: argument in str(field_value)
        if pattern is PatternKind.STARTS_WITH:
            return lambda field_value: str(field_value).startswith(argument)
        if pattern is PatternKind.ENDS_WITH:
            return lambda field_value: str(field_value).endswith(argument)
        compiled = re.compile(argument)
        return lambda field_value: compiled.search(str(field_value)) is not None

    @staticmethod
    def _build_range_test(kind: str, bound: Any) -> Callable[[Any], bool]:
        """
        Compare a field value against one bound.

        Numbers compare numerically with numbers; anything else compares as
        text, so code ranges like {"gte": "700", "lte": "799"} follow the
        chart-of-accounts string order.
        """
        compare = _RANGE_OPERATORS[RangeKind(kind)]
        numeric_bound = isinstance(bound, (int, float))

        def test(field_value) -> bool:
            if numeric_bound and isinstance(field_value, (int, float)):
                return compare(field_value, bound)
            return compare(str(field_value), str(bound))

        return test

    def validate_filter(self, filter_spec: Optional[FilterSpec]) -> List[str]:
        """
        Collect every problem in a filter spec.

        Returns:
            List of error messages (empty when the spec is valid)
        """
        errors: List[str] = []

        if filter_spec is None:
            return errors

        if not isinstance(filter_spec, Mapping):
            return ["Filter specification must be an object"]

        for field_name, value in filter_spec.items():
            if field_name not in VALID_FIELDS:
                errors.append(
                    f"Invalid filter field: {field_name}. "
                    f"Valid fields are: {', '.join(VALID_FIELDS)}"
                )
                continue

            if value is None:
                errors.append(f"Filter value for {field_name} cannot be null")
            elif isinstance(value, (list, tuple)):
                if len(value) == 0:
                    errors.append(f"Filter array for {field_name} cannot be empty")
                elif any(v is None for v in value):
                    errors.append(f"Filter array for {field_name} contains null values")
            elif isinstance(value, Mapping):
                errors.extend(self._validate_pattern(field_name, value))

        return errors

    @staticmethod
    def _validate_pattern(field_name: str, pattern: Mapping[str, Any]) -> List[str]:
        errors = []
        if not pattern:
            return [f"Pattern match for {field_name} must have at least one property"]

        for key, argument in pattern.items():
            if key in VALID_RANGE_KEYS:
                if isinstance(argument, bool) or not isinstance(argument, (str, int, float)):
                    errors.append(f"Range bound for {field_name}.{key} must be a string or number")
            elif key not in VALID_PATTERN_KEYS:
                errors.append(
                    f"Invalid pattern key for {field_name}: {key}. "
                    f"Valid keys are: {', '.join(VALID_PATTERN_KEYS + VALID_RANGE_KEYS)}"
                )
            elif not isinstance(argument, str):
                errors.append(f"Pattern value for {field_name}.{key} must be a string")
            elif key == PatternKind.REGEX.value:
                try:
                    re.compile(argument)
                except re.error as e:
                    errors.append(f"Invalid regex for {field_name}: {e}")
        return errors


def describe_filter(filter_spec: Optional[FilterSpec]) -> str:
    """Readable one-line description of a filter spec, for logs."""
    if not filter_spec:
        return "all rows"
    parts = []
    for field_name, value in filter_spec.items():
        if isinstance(value, (list, tuple)):
            parts.append(f"{field_name} in [{', '.join(str(v) for v in value)}]")
        elif isinstance(value, Mapping):
            parts.append(" and ".join(f"{field_name} {k} '{v}'" for k, v in value.items()))
        else:
            parts.append(f"{field_name} = {value!r}")
    return " and ".join(parts)


# Singleton matcher instance
_matcher = FilterMatcher()


def get_filter_matcher() -> FilterMatcher:
    """Get the filter matcher instance."""
    return _matcher


def matches(row, filter_spec: Optional[FilterSpec]) -> bool:
    """Module-level shortcut for FilterMatcher().matches."""
    return _matcher.matches(row, filter_spec)
