"""
Variable Resolver

Turns named variable definitions (filter + aggregate) into scalar values
for one period selection.

The dataset is restricted to the selector's periods once; every variable
then filters and aggregates that restricted row set. Variables do not
depend on each other, so resolution can fan out to a thread pool.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Mapping, Optional, Sequence

from report_engine.core.aggregator import Aggregator, get_aggregator
from report_engine.core.filter_matcher import FilterMatcher, describe_filter, get_filter_matcher
from report_engine.core.period_selector import PeriodSelector, WindowPolicy

logger = logging.getLogger(__name__)

Value = Optional[float]


def _definition_parts(definition: Any):
    """(filter, aggregate) from a VariableDefinition model or a plain dict."""
    if isinstance(definition, Mapping):
        return definition.get("filter") or {}, definition.get("aggregate", "sum")
    return definition.filter or {}, definition.aggregate


class VariableResolver:
    """
    Resolves report variables against a dataset.

    Usage:
        resolver = VariableResolver(max_workers=4)
        values = resolver.resolve_all(report.variables, dataset, AllPeriods(2024))
        values["revenue"]   # 1250000.0
    """

    def __init__(
        self,
        matcher: FilterMatcher = None,
        aggregator: Aggregator = None,
        max_workers: int = 1,
        window_policy=WindowPolicy.PARTIAL,
    ):
        self.matcher = matcher or get_filter_matcher()
        self.aggregator = aggregator or get_aggregator()
        self.max_workers = max(1, int(max_workers or 1))
        self.window_policy = WindowPolicy.parse(window_policy)

    def restrict(self, dataset, period_selector: PeriodSelector) -> list:
        """Rows inside the period selection, in dataset order."""
        rows = period_selector.restrict(dataset, self.window_policy)
        logger.debug(f"{period_selector.label}: {len(rows)} of {len(dataset)} rows in period")
        return rows

    def resolve_all(
        self,
        variable_defs: Mapping[str, Any],
        dataset,
        period_selector: PeriodSelector,
    ) -> Dict[str, Value]:
        """
        Resolve every variable for a period selection.

        Args:
            variable_defs: name -> VariableDefinition (or dict with filter/aggregate)
            dataset: Dataset of movement rows
            period_selector: Which periods to include

        Returns:
            name -> aggregated value (None when unavailable)
        """
        rows = self.restrict(dataset, period_selector)
        return self.resolve_rows(variable_defs, rows, label=period_selector.label)

    def resolve_rows(
        self,
        variable_defs: Mapping[str, Any],
        rows: Sequence,
        label: str = "",
    ) -> Dict[str, Value]:
        """Resolve every variable against an already period-restricted row list."""
        names = list(variable_defs)

        if self.max_workers > 1 and len(names) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    name: executor.submit(self.resolve_one, name, variable_defs[name], rows)
                    for name in names
                }
                values = {name: futures[name].result() for name in names}
        else:
            values = {name: self.resolve_one(name, variable_defs[name], rows) for name in names}

        logger.info(f"Resolved {len(values)} variables for {label or 'selection'}")
        return values

    def resolve_one(self, name: str, definition: Any, rows: Sequence) -> Value:
        filter_spec, aggregate = _definition_parts(definition)
        value, matched = self._aggregate_filtered(filter_spec, rows, aggregate)
        if matched == 0:
            logger.warning(f"Variable '{name}' matched no rows ({describe_filter(filter_spec)})")
        else:
            logger.debug(f"Variable '{name}': {aggregate} over {matched} rows = {value}")
        return value

    def resolve_filter(self, filter_spec: Optional[Mapping[str, Any]], rows: Sequence,
                       aggregate: str = "sum") -> Value:
        """Aggregate an anonymous inline filter (category rows)."""
        value, _ = self._aggregate_filtered(filter_spec, rows, aggregate)
        return value

    def _aggregate_filtered(self, filter_spec, rows: Sequence, aggregate: str):
        predicate = self.matcher.compile(filter_spec)
        amounts = [row.amount for row in rows if predicate(row)]
        return self.aggregator.aggregate(amounts, aggregate), len(amounts)
