"""
Layout Processor

Walks the layout in ascending order and assigns every row its value.

The resolution context starts with the resolved variables only; each
processed row adds its value under its order, so a calculated row sees
every variable and every row above it.

Row handling by type:
- variable:   copy the pre-resolved variable value
- category:   inline filter, implicit sum over the period-restricted rows
- calculated: evaluate the expression against the context so far
- subtotal:   sum rows with order in [from, to], skipping spacers,
              subtotals and None values
- spacer:     blank row, contributes nothing
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from report_engine.core.error_taxonomy import ForwardReferenceError, UndefinedReferenceError
from report_engine.core.expression_evaluator import (
    ExpressionEvaluator,
    Reference,
    ResolutionContext,
    get_expression_evaluator,
)
from report_engine.core.report_definition import ReportDefinition
from report_engine.core.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)

Value = Optional[float]

_NON_SUMMABLE_TYPES = ("spacer", "subtotal")


@dataclass(frozen=True)
class ResolvedRow:
    """One fully resolved output row."""
    order: int
    label: str
    type: str
    indent: int
    style: str
    format: str
    value: Value
    comparison_value: Value = None
    variance_amount: Value = None
    variance_percent: Value = None
    formatted: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_spacer(self) -> bool:
        return self.type == "spacer"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "label": self.label,
            "type": self.type,
            "indent": self.indent,
            "style": self.style,
            "format": self.format,
            "value": self.value,
            "comparison_value": self.comparison_value,
            "variance_amount": self.variance_amount,
            "variance_percent": self.variance_percent,
            "formatted": dict(self.formatted),
            "metadata": dict(self.metadata),
        }


class _LayoutRun:
    """Mutable state of one layout pass; discarded when the pass ends."""

    def __init__(self, report: ReportDefinition, variables: Mapping[str, Value], rows: Sequence):
        self.report = report
        self.rows = rows
        self.layout = report.sorted_layout()
        self.types_by_order = {item.order: item.type for item in self.layout}
        self.current_order: Optional[int] = None
        self.context = ResolutionContext(variables=variables, resolver=self._resolve_missing)

    def _resolve_missing(self, ref: Reference) -> Value:
        if ref.is_order and ref.key in self.types_by_order:
            raise ForwardReferenceError(self.current_order, ref.key)
        raise LookupError(str(ref))


class LayoutProcessor:
    """
    Sequential layout evaluation.

    Usage:
        processor = LayoutProcessor(resolver)
        rows = processor.process(report, variable_values, period_rows)
    """

    def __init__(self, resolver: VariableResolver, evaluator: ExpressionEvaluator = None):
        self.resolver = resolver
        self.evaluator = evaluator or get_expression_evaluator()
        self._handlers: Dict[str, Callable[[Any, _LayoutRun], Value]] = {
            "variable": self._process_variable,
            "category": self._process_category,
            "calculated": self._process_calculated,
            "subtotal": self._process_subtotal,
            "spacer": self._process_spacer,
        }

    def process(
        self,
        report: ReportDefinition,
        variables: Mapping[str, Value],
        rows: Sequence,
    ) -> List[ResolvedRow]:
        """
        Resolve every layout item for one period selection.

        Args:
            report: Validated report definition
            variables: name -> resolved variable value
            rows: Period-restricted dataset rows (for category items)

        Returns:
            ResolvedRows in ascending order, without display strings

        Raises:
            ForwardReferenceError: A calculated row needs a row not yet processed
            UndefinedReferenceError: An expression names an unknown reference
            CircularDependencyError: A row (indirectly) references itself
        """
        run = _LayoutRun(report, variables, rows)
        resolved = []

        for item in run.layout:
            run.current_order = item.order
            value = self._handlers[item.type](item, run)
            if item.type != "spacer":
                run.context.set_order(item.order, value)
            resolved.append(self._build_row(item, value))
            logger.debug(f"@{item.order} ({item.type}) = {value}")

        logger.info(f"Processed {len(resolved)} layout items for '{report.report_id}'")
        return resolved

    @staticmethod
    def _build_row(item, value: Value) -> ResolvedRow:
        metadata: Dict[str, Any] = {}
        if item.type == "variable":
            metadata["variable"] = item.variable
        elif item.type == "calculated":
            metadata["expression"] = item.expression
        elif item.type == "category":
            metadata["filter"] = dict(item.filter)
        elif item.type == "subtotal":
            metadata["range"] = [item.from_, item.to]

        return ResolvedRow(
            order=item.order,
            label=item.label or "",
            type=item.type,
            indent=item.indent,
            style=item.style or ("spacer" if item.type == "spacer" else "normal"),
            format=item.format or "decimal",
            value=value,
            metadata=metadata,
        )

    def _process_variable(self, item, run: _LayoutRun) -> Value:
        if item.variable not in run.context.variables:
            raise UndefinedReferenceError(item.variable)
        return run.context.variables[item.variable]

    def _process_category(self, item, run: _LayoutRun) -> Value:
        return self.resolver.resolve_filter(item.filter, run.rows, "sum")

    def _process_calculated(self, item, run: _LayoutRun) -> Value:
        return self.evaluator.evaluate_as(Reference.order(item.order), item.expression, run.context)

    def _process_subtotal(self, item, run: _LayoutRun) -> Value:
        total = 0.0
        for order, value in run.context.orders.items():
            if not item.from_ <= order <= item.to:
                continue
            if run.types_by_order.get(order) in _NON_SUMMABLE_TYPES or value is None:
                continue
            total += value
        return total

    def _process_spacer(self, item, run: _LayoutRun) -> Value:
        return None
