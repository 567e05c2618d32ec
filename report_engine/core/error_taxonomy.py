"""
Error Taxonomy for Report Evaluation

Provides systematic classification of failure modes with:
- Error categories aligned to evaluation phases
- Severity indicators
- Structured error context for hosts that surface errors verbatim

Validation-time problems are collected and raised together. Circular
dependencies fail fast with the full reference chain.
"""

from enum import Enum, auto
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List, Sequence
import logging
import traceback

logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Systematic classification of failure modes."""
    # Phase 0: Definition structure
    INVALID_DEFINITION = auto()
    UNKNOWN_FILTER_FIELD = auto()
    UNKNOWN_AGGREGATE = auto()
    DUPLICATE_ORDER = auto()
    INVALID_SUBTOTAL_RANGE = auto()

    # Phase 1: Expressions and references
    EXPRESSION_SYNTAX = auto()
    UNDEFINED_REFERENCE = auto()
    FORWARD_REFERENCE = auto()
    CIRCULAR_DEPENDENCY = auto()

    # Phase 2: Period selection
    INVALID_PERIOD_SELECTOR = auto()
    INSUFFICIENT_PERIOD_DATA = auto()

    # System Errors
    CONFIGURATION_ERROR = auto()
    INTERNAL_ERROR = auto()
    UNKNOWN_ERROR = auto()


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ValidationIssue:
    """A single problem found in a report definition."""
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


@dataclass
class ClassifiedError:
    """A classified error with full context."""
    category: ErrorCategory
    severity: ErrorSeverity
    message: str

    original_exception: Optional[Exception] = None
    evaluation_phase: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    user_message: Optional[str] = None

    def __post_init__(self):
        if self.original_exception and not self.stack_trace:
            self.stack_trace = ''.join(traceback.format_exception(
                type(self.original_exception),
                self.original_exception,
                self.original_exception.__traceback__
            ))

        if not self.user_message:
            self.user_message = self._generate_user_message()

    def _generate_user_message(self) -> str:
        """Generate a user-facing message."""
        messages = {
            ErrorCategory.CIRCULAR_DEPENDENCY: "The report contains a circular reference",
            ErrorCategory.FORWARD_REFERENCE: "A calculated row refers to a row that comes after it",
            ErrorCategory.INSUFFICIENT_PERIOD_DATA: "Not enough periods in the data for the selected window",
        }
        prefix = messages.get(self.category)
        if prefix:
            return f"{prefix}: {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.name,
            "severity": self.severity.value,
            "message": self.message,
            "user_message": self.user_message,
            "evaluation_phase": self.evaluation_phase,
            "context": self.context,
        }


class ReportEngineError(Exception):
    """Base exception for report evaluation errors with classification."""

    default_category = ErrorCategory.UNKNOWN_ERROR
    default_severity = ErrorSeverity.HIGH

    def __init__(
        self,
        message: str,
        category: ErrorCategory = None,
        severity: ErrorSeverity = None,
        context: Dict[str, Any] = None,
    ):
        super().__init__(message)
        self.category = category or self.default_category
        self.severity = severity or self.default_severity
        self.context = context or {}

    def classify(self) -> ClassifiedError:
        return ClassifiedError(
            category=self.category,
            severity=self.severity,
            message=str(self),
            original_exception=self,
            context=dict(self.context),
        )


class ReportValidationError(ReportEngineError):
    """
    One or more definition-time problems.

    Carries every collected issue so hosts can show the whole list at once.
    """

    default_category = ErrorCategory.INVALID_DEFINITION

    def __init__(self, issues: Sequence[ValidationIssue], report_id: str = None):
        self.issues: List[ValidationIssue] = list(issues)
        self.report_id = report_id
        label = f"Report '{report_id}'" if report_id else "Report definition"
        lines = [f"{label} failed validation with {len(self.issues)} issue(s):"]
        lines.extend(f"  - {issue}" for issue in self.issues)
        super().__init__(
            "\n".join(lines),
            context={"report_id": report_id, "issues": [str(i) for i in self.issues]},
        )


class InvalidFilterError(ReportEngineError):
    """Filter specification uses an unknown field or pattern key."""
    default_category = ErrorCategory.UNKNOWN_FILTER_FIELD


class UnknownAggregateError(ReportEngineError):
    """Aggregate kind is not one of the supported functions."""
    default_category = ErrorCategory.UNKNOWN_AGGREGATE

    def __init__(self, kind: Any, supported: Sequence[str]):
        self.kind = kind
        super().__init__(
            f"Unsupported aggregate function: {kind!r}. Valid functions are: {', '.join(supported)}",
            context={"aggregate": kind},
        )


class ExpressionSyntaxError(ReportEngineError):
    """Malformed expression: bad token, unbalanced parentheses, trailing input."""

    default_category = ErrorCategory.EXPRESSION_SYNTAX

    def __init__(self, expression: str, position: int, reason: str):
        self.expression = expression
        self.position = position
        self.reason = reason
        super().__init__(
            f"{reason} at position {position} in expression '{expression}'",
            context={"expression": expression, "position": position},
        )


class UndefinedReferenceError(ReportEngineError):
    """Expression names a variable or order that does not exist."""

    default_category = ErrorCategory.UNDEFINED_REFERENCE

    def __init__(self, reference: str, expression: str = None, position: int = None):
        self.reference = reference
        self.expression = expression
        self.position = position
        if expression is not None:
            message = (
                f"Undefined reference '{reference}' at position {position} "
                f"in expression '{expression}'"
            )
        else:
            message = f"Undefined reference '{reference}'"
        super().__init__(
            message,
            context={"reference": reference, "expression": expression, "position": position},
        )


class ForwardReferenceError(ReportEngineError):
    """Calculated item references an order that has not been processed yet."""

    default_category = ErrorCategory.FORWARD_REFERENCE

    def __init__(self, order: int, referenced_order: int, expression: str = None):
        self.order = order
        self.referenced_order = referenced_order
        self.expression = expression
        super().__init__(
            f"Item @{order} references @{referenced_order}, which is not processed before it"
            + (f" (expression '{expression}')" if expression else ""),
            context={"order": order, "referenced_order": referenced_order, "expression": expression},
        )


class CircularDependencyError(ReportEngineError):
    """A reference chain re-enters a reference that is still being resolved."""

    default_category = ErrorCategory.CIRCULAR_DEPENDENCY
    default_severity = ErrorSeverity.CRITICAL

    def __init__(self, chain: Sequence[Any]):
        self.chain = [str(link) for link in chain]
        super().__init__(
            f"Circular dependency detected: {' → '.join(self.chain)}",
            context={"chain": self.chain},
        )


class InvalidPeriodSelectorError(ReportEngineError):
    """Period selector is malformed (period outside 1-12, unknown token)."""
    default_category = ErrorCategory.INVALID_PERIOD_SELECTOR


class InsufficientPeriodDataError(ReportEngineError):
    """Rolling window requested more periods than the dataset holds."""

    default_category = ErrorCategory.INSUFFICIENT_PERIOD_DATA
    default_severity = ErrorSeverity.MEDIUM

    def __init__(self, label: str, expected: int, available: int):
        self.expected = expected
        self.available = available
        super().__init__(
            f"{label}: only {available} of {expected} period(s) present in the dataset",
            context={"selector": label, "expected": expected, "available": available},
        )


def classify_error(
    exception: Exception,
    evaluation_phase: str = None,
    context: Dict[str, Any] = None,
) -> ClassifiedError:
    """Classify an exception into a structured error."""
    context = context or {}

    if isinstance(exception, ReportEngineError):
        classified = exception.classify()
        classified.evaluation_phase = evaluation_phase
        classified.context.update(context)
        return classified

    if isinstance(exception, (ValueError, TypeError, KeyError)):
        return ClassifiedError(
            category=ErrorCategory.INVALID_DEFINITION,
            severity=ErrorSeverity.HIGH,
            message=str(exception),
            original_exception=exception,
            evaluation_phase=evaluation_phase,
            context=context,
        )

    logger.error(f"Unclassified error during {evaluation_phase or 'evaluation'}: {exception}")
    return ClassifiedError(
        category=ErrorCategory.UNKNOWN_ERROR,
        severity=ErrorSeverity.HIGH,
        message=str(exception),
        original_exception=exception,
        evaluation_phase=evaluation_phase,
        context=context,
    )
