"""
Report Engine

Facade over the evaluation pipeline:

    definition -> validation -> variables -> layout -> variance -> formatting

One call evaluates one report definition against one immutable dataset
snapshot. Every run builds its own resolution context; the only state
that outlives a run is the optional, caller-owned result cache.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from config.settings import AppConfig, get_config
from report_engine.core.layout_processor import LayoutProcessor, ResolvedRow
from report_engine.core.period_selector import PeriodSelector
from report_engine.core.report_definition import ReportDefinition, coerce_report_definition
from report_engine.core.report_validator import ReportValidator, ValidationResult
from report_engine.core.variable_resolver import VariableResolver
from report_engine.core.variance import VarianceDeriver
from report_engine.data.dataset import Dataset
from report_engine.data.result_cache import ReportResultCache
from report_engine.tools.formatting import ValueFormatter, rules_from_config

logger = logging.getLogger(__name__)


@dataclass
class StatementData:
    """Resolved rows of one report plus the metadata a renderer needs."""
    report_id: str
    report_name: str
    report_version: str
    statement_type: str
    rows: List[ResolvedRow]
    generated_at: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "report_name": self.report_name,
            "report_version": self.report_version,
            "statement_type": self.statement_type,
            "generated_at": self.generated_at.isoformat(),
            "rows": [row.to_dict() for row in self.rows],
            "metadata": self.metadata,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One line per row: label, raw values and display strings."""
        records = []
        for row in self.rows:
            record = {
                "order": row.order,
                "label": row.label,
                "type": row.type,
                "indent": row.indent,
                "value": row.value,
                "formatted": row.formatted.get("value", ""),
            }
            if self.metadata.get("comparison_label"):
                record.update({
                    "comparison_value": row.comparison_value,
                    "variance_amount": row.variance_amount,
                    "variance_percent": row.variance_percent,
                    "formatted_comparison": row.formatted.get("comparison_value", ""),
                    "formatted_variance": row.formatted.get("variance_amount", ""),
                    "formatted_variance_percent": row.formatted.get("variance_percent", ""),
                })
            records.append(record)
        return pd.DataFrame(records)


class ReportEngine:
    """
    Evaluates report definitions against movement datasets.

    Usage:
        engine = ReportEngine(cache=ReportResultCache())
        rows = engine.evaluate(report, dataset, AllPeriods(2024),
                               comparison_period_selector=AllPeriods(2023))
    """

    def __init__(
        self,
        config: AppConfig = None,
        cache: ReportResultCache = None,
        validator: ReportValidator = None,
    ):
        self.config = config or get_config()
        self.cache = cache
        self.validator = validator or ReportValidator()
        self.resolver = VariableResolver(
            max_workers=self.config.engine.max_workers,
            window_policy=self.config.engine.rolling_window_policy,
        )
        self.layout_processor = LayoutProcessor(self.resolver)
        self.variance = VarianceDeriver()
        self.default_formatting = rules_from_config(self.config.formatting)

    def validate(self, report_definition: Any) -> ValidationResult:
        """Static validation without evaluation; never raises for definition problems."""
        return self.validator.validate(report_definition)

    def resolve_variables(
        self,
        variable_defs: Mapping[str, Any],
        dataset: Dataset,
        period_selector: PeriodSelector,
    ) -> Dict[str, Optional[float]]:
        """Resolve named variables for one period selection."""
        return self.resolver.resolve_all(variable_defs, dataset, period_selector)

    def evaluate(
        self,
        report_definition: Any,
        dataset: Dataset,
        period_selector: PeriodSelector,
        comparison_period_selector: Optional[PeriodSelector] = None,
    ) -> List[ResolvedRow]:
        """
        Evaluate a report into ordered, formatted rows.

        Args:
            report_definition: ReportDefinition, definition dict, or JSON text
            dataset: Movement rows
            period_selector: Base column periods
            comparison_period_selector: Optional comparison column; adds variance

        Returns:
            ResolvedRows in ascending order

        Raises:
            ReportValidationError: Collected definition problems
            CircularDependencyError: Reference cycle
            ForwardReferenceError: Calculated row referencing a later row
            InsufficientPeriodDataError: Strict rolling window without enough data
        """
        report = coerce_report_definition(report_definition)
        self.validator.check(report)

        cache_key = None
        if self.cache is not None:
            cache_key = self.cache.make_key(report.report_id, period_selector, comparison_period_selector)
            cached = self.cache.get(cache_key, dataset.fingerprint)
            if cached is not None:
                return cached

        logger.info(
            f"Evaluating '{report.report_id}' for {period_selector.label}"
            + (f" vs {comparison_period_selector.label}" if comparison_period_selector else "")
        )

        rows = self._evaluate_period(report, dataset, period_selector)
        if comparison_period_selector is not None:
            comparison_rows = self._evaluate_period(report, dataset, comparison_period_selector)
            rows = self.variance.apply(rows, comparison_rows)

        rows = self._format_rows(report, rows, comparison_period_selector is not None)

        if cache_key is not None:
            self.cache.set(cache_key, dataset.fingerprint, rows)
        return rows

    def render_statement(
        self,
        report_definition: Any,
        dataset: Dataset,
        period_selector: PeriodSelector,
        comparison_period_selector: Optional[PeriodSelector] = None,
    ) -> StatementData:
        """Evaluate and wrap the rows with report and period metadata."""
        report = coerce_report_definition(report_definition)
        rows = self.evaluate(report, dataset, period_selector, comparison_period_selector)

        metadata = {
            "period_label": period_selector.label,
            "comparison_label": comparison_period_selector.label if comparison_period_selector else None,
            "variable_count": len(report.variables),
            "layout_item_count": len(report.layout),
            "dataset_fingerprint": dataset.fingerprint,
        }
        return StatementData(
            report_id=report.report_id,
            report_name=report.name,
            report_version=report.version,
            statement_type=report.statement_type,
            rows=rows,
            metadata=metadata,
        )

    def _evaluate_period(
        self,
        report: ReportDefinition,
        dataset: Dataset,
        period_selector: PeriodSelector,
    ) -> List[ResolvedRow]:
        period_rows = self.resolver.restrict(dataset, period_selector)
        variables = self.resolver.resolve_rows(report.variables, period_rows, label=period_selector.label)
        return self.layout_processor.process(report, variables, period_rows)

    def _format_rows(
        self,
        report: ReportDefinition,
        rows: List[ResolvedRow],
        with_comparison: bool,
    ) -> List[ResolvedRow]:
        formatter = ValueFormatter(report.formatting or self.default_formatting)
        formatted_rows = []
        for row in rows:
            formatted = {"value": formatter.format(row.value, row.format)}
            if with_comparison:
                formatted["comparison_value"] = formatter.format(row.comparison_value, row.format)
                formatted["variance_amount"] = formatter.format(row.variance_amount, row.format)
                formatted["variance_percent"] = formatter.format(row.variance_percent, "percent")
            formatted_rows.append(replace(row, formatted=formatted))
        return formatted_rows


def get_report_engine(cache: ReportResultCache = None) -> ReportEngine:
    """Factory function to get a configured report engine."""
    config = get_config()
    if cache is None and config.cache.max_age_hours is not None:
        cache = ReportResultCache(max_age_hours=config.cache.max_age_hours)
    return ReportEngine(config=config, cache=cache)
