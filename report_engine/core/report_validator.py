"""
Report Validator

Definition-time checks run before any data is touched.

Order of checks:
1. Structural issues are collected and raised together (ReportValidationError)
2. The dependency graph is searched for cycles (CircularDependencyError,
   first cycle found, full chain)
3. Calculated rows may only reference rows with a lower order
   (ForwardReferenceError)
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from report_engine.core.aggregator import Aggregator, SUPPORTED_AGGREGATES
from report_engine.core.error_taxonomy import (
    ClassifiedError,
    ExpressionSyntaxError,
    ForwardReferenceError,
    ReportEngineError,
    ReportValidationError,
    ValidationIssue,
    classify_error,
)
from report_engine.core.expression_evaluator import Reference, ResolutionStack, references
from report_engine.core.filter_matcher import FilterMatcher, get_filter_matcher
from report_engine.core.report_definition import (
    CalculatedItem,
    CategoryItem,
    ReportDefinition,
    SpacerItem,
    SubtotalItem,
    VariableItem,
    coerce_report_definition,
)

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

DependencyGraph = Dict[Reference, List[Reference]]


@dataclass
class ValidationResult:
    """Outcome of validating a report definition."""
    report_id: Optional[str]
    issues: List[ValidationIssue] = field(default_factory=list)
    error: Optional[ClassifiedError] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None and not self.issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "is_valid": self.is_valid,
            "issues": [str(issue) for issue in self.issues],
            "error": self.error.to_dict() if self.error else None,
        }


class ReportValidator:
    """
    Static validation of report definitions.

    Usage:
        validator = ReportValidator()
        validator.check(report)          # raises on the first failing phase
        result = validator.validate(report)
        if not result.is_valid: ...
    """

    def __init__(self, matcher: FilterMatcher = None):
        self.matcher = matcher or get_filter_matcher()

    def validate(self, report: Any) -> ValidationResult:
        """Validate without raising; the failure is returned classified."""
        report_id = getattr(report, "report_id", None)
        try:
            definition = coerce_report_definition(report)
            report_id = definition.report_id
            self.check(definition)
        except ReportValidationError as e:
            return ValidationResult(report_id or e.report_id, list(e.issues), classify_error(e, "validation"))
        except ReportEngineError as e:
            return ValidationResult(report_id, [], classify_error(e, "validation"))
        return ValidationResult(report_id)

    def check(self, report: ReportDefinition) -> None:
        """
        Run every check, raising on the first failing phase.

        Raises:
            ReportValidationError: Structural issues, all of them
            CircularDependencyError: A reference cycle
            ForwardReferenceError: A calculated row referencing a later row
        """
        issues = self.collect_issues(report)
        if issues:
            logger.warning(f"Report '{report.report_id}' has {len(issues)} validation issue(s)")
            raise ReportValidationError(issues, report_id=report.report_id)

        self.check_cycles(report)
        self.check_forward_references(report)
        logger.debug(f"Report '{report.report_id}' passed validation")

    # -------------------------------------------------------------------------
    # Phase 1: collected issues
    # -------------------------------------------------------------------------

    def collect_issues(self, report: ReportDefinition) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []

        for name, definition in report.variables.items():
            path = f"variables.{name}"
            if not _IDENTIFIER.match(name):
                issues.append(ValidationIssue(path, "Variable name must be a valid identifier"))
            for message in self.matcher.validate_filter(definition.filter):
                issues.append(ValidationIssue(f"{path}.filter", message))
            if not Aggregator.is_supported(definition.aggregate):
                issues.append(ValidationIssue(
                    f"{path}.aggregate",
                    f"Unsupported aggregate function: {definition.aggregate}. "
                    f"Valid functions are: {', '.join(SUPPORTED_AGGREGATES)}",
                ))

        if not report.layout:
            issues.append(ValidationIssue("layout", "Layout must contain at least one item"))

        seen_orders: Set[int] = set()
        for index, item in enumerate(report.layout):
            if item.order in seen_orders:
                issues.append(ValidationIssue(f"layout.{index}.order", f"Duplicate order: {item.order}"))
            seen_orders.add(item.order)

        items = report.items_by_order()
        spacer_orders = {item.order for item in report.layout if isinstance(item, SpacerItem)}

        for index, item in enumerate(report.layout):
            path = f"layout.{index}"
            if isinstance(item, VariableItem):
                if item.variable not in report.variables:
                    issues.append(ValidationIssue(
                        f"{path}.variable", f"Undefined variable: {item.variable}"
                    ))
            elif isinstance(item, CategoryItem):
                for message in self.matcher.validate_filter(item.filter):
                    issues.append(ValidationIssue(f"{path}.filter", message))
            elif isinstance(item, CalculatedItem):
                issues.extend(self._expression_issues(path, item, report, items, spacer_orders))
            elif isinstance(item, SubtotalItem):
                for bound_name, bound in (("from", item.from_), ("to", item.to)):
                    if bound not in items:
                        issues.append(ValidationIssue(
                            f"{path}.{bound_name}", f"Order number {bound} does not exist"
                        ))
                if item.from_ >= item.to:
                    issues.append(ValidationIssue(
                        path, f"Subtotal range invalid: from ({item.from_}) must be less than to ({item.to})"
                    ))
                elif item.to > item.order:
                    issues.append(ValidationIssue(
                        path, f"Subtotal range {item.from_}-{item.to} must not end after its own order ({item.order})"
                    ))

        return issues

    @staticmethod
    def _expression_issues(path, item, report, items, spacer_orders) -> List[ValidationIssue]:
        path = f"{path}.expression"
        try:
            refs = references(item.expression)
        except ExpressionSyntaxError as e:
            return [ValidationIssue(path, str(e))]

        issues = []
        for ref in sorted(refs, key=str):
            if ref.is_order:
                if ref.key not in items:
                    issues.append(ValidationIssue(path, f"Undefined order reference: {ref}"))
                elif ref.key in spacer_orders:
                    issues.append(ValidationIssue(path, f"Reference to spacer row: {ref}"))
            elif ref.key not in report.variables:
                issues.append(ValidationIssue(path, f"Undefined variable: {ref.key}"))
        return issues

    # -------------------------------------------------------------------------
    # Phase 2: cycles
    # -------------------------------------------------------------------------

    @staticmethod
    def dependency_graph(report: ReportDefinition) -> DependencyGraph:
        """
        Edges from each layout row to the references it needs.

        Variables are leaves. Subtotals depend on the non-spacer,
        non-subtotal rows inside their range.
        """
        graph: DependencyGraph = {}
        layout = report.sorted_layout()
        for item in layout:
            node = Reference.order(item.order)
            if isinstance(item, CalculatedItem):
                graph[node] = sorted(references(item.expression), key=str)
            elif isinstance(item, VariableItem):
                graph[node] = [Reference.var(item.variable)]
            elif isinstance(item, SubtotalItem):
                graph[node] = [
                    Reference.order(member.order)
                    for member in layout
                    if item.from_ <= member.order <= item.to
                    and not isinstance(member, (SpacerItem, SubtotalItem))
                ]
            else:
                graph[node] = []
        return graph

    def check_cycles(self, report: ReportDefinition) -> None:
        """Depth-first search; raises CircularDependencyError on the first cycle."""
        graph = self.dependency_graph(report)
        done: Set[Reference] = set()
        stack = ResolutionStack()

        def visit(node: Reference) -> None:
            if node in done:
                return
            with stack.enter(node):
                for dependency in graph.get(node, ()):
                    visit(dependency)
            done.add(node)

        for node in graph:
            visit(node)

    # -------------------------------------------------------------------------
    # Phase 3: forward references
    # -------------------------------------------------------------------------

    @staticmethod
    def check_forward_references(report: ReportDefinition) -> None:
        for item in report.sorted_layout():
            if not isinstance(item, CalculatedItem):
                continue
            for ref in sorted(references(item.expression), key=str):
                if ref.is_order and ref.key > item.order:
                    raise ForwardReferenceError(item.order, ref.key, item.expression)


# Singleton validator instance
_validator = ReportValidator()


def get_report_validator() -> ReportValidator:
    """Get the report validator instance."""
    return _validator
