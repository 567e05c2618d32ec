"""
Report Definition Models

Pydantic models for the declarative report definition: named variables
(filter + aggregate) and an ordered layout of typed rows.

Structural problems (missing fields, unknown layout type, wrong value
types) surface as ReportValidationError with one issue per problem.
Semantic checks (references, cycles, subtotal ranges) live in
report_validator.py.
"""
import json
import logging
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from report_engine.core.error_taxonomy import ReportValidationError, ValidationIssue

logger = logging.getLogger(__name__)

FormatName = Literal["currency", "percent", "integer", "decimal"]
StyleName = Literal["normal", "metric", "subtotal", "total", "spacer"]
StatementType = Literal["balance", "income", "cashflow"]


class _DefinitionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class VariableDefinition(_DefinitionModel):
    """Named filtered aggregate over the period-restricted dataset."""
    filter: Dict[str, Any] = Field(default_factory=dict)
    aggregate: str = "sum"
    description: Optional[str] = None


class _LayoutItemBase(_DefinitionModel):
    order: int = Field(..., ge=0)
    label: Optional[str] = None
    format: Optional[FormatName] = None
    style: Optional[StyleName] = None
    indent: int = Field(0, ge=0, le=3)


class VariableItem(_LayoutItemBase):
    type: Literal["variable"] = "variable"
    variable: str


class CalculatedItem(_LayoutItemBase):
    type: Literal["calculated"] = "calculated"
    expression: str


class CategoryItem(_LayoutItemBase):
    type: Literal["category"] = "category"
    filter: Dict[str, Any] = Field(default_factory=dict)


class SubtotalItem(_LayoutItemBase):
    type: Literal["subtotal"] = "subtotal"
    from_: int = Field(..., alias="from")
    to: int


class SpacerItem(_LayoutItemBase):
    type: Literal["spacer"] = "spacer"


LayoutItem = Annotated[
    Union[VariableItem, CalculatedItem, CategoryItem, SubtotalItem, SpacerItem],
    Field(discriminator="type"),
]

LAYOUT_TYPES = ("variable", "calculated", "category", "subtotal", "spacer")


class FormatRule(_DefinitionModel):
    """Display rule for one value format."""
    decimals: int = Field(0, ge=0, le=4)
    thousands: bool = True
    symbol: Optional[str] = Field(None, max_length=5)


class FormattingRules(_DefinitionModel):
    """Per-format display defaults."""
    currency: FormatRule = Field(default_factory=lambda: FormatRule(decimals=0, symbol="€"))
    percent: FormatRule = Field(default_factory=lambda: FormatRule(decimals=1, thousands=False, symbol="%"))
    integer: FormatRule = Field(default_factory=lambda: FormatRule(decimals=0))
    decimal: FormatRule = Field(default_factory=lambda: FormatRule(decimals=2))

    def rule_for(self, format_name: Optional[str]) -> FormatRule:
        return getattr(self, format_name or "decimal")


class ReportDefinition(_DefinitionModel):
    """
    A complete report definition.

    Usage:
        report = ReportDefinition.from_file("reports/income_statement.yaml")
        report = ReportDefinition.from_dict({"reportId": "pl", ...})
    """
    report_id: str = Field(..., alias="reportId", pattern=r"^[a-z0-9_-]+$")
    name: str = Field(..., min_length=1)
    version: str = Field(..., pattern=r"^\d+\.\d+\.\d+$")
    statement_type: StatementType = Field(..., alias="statementType")
    description: Optional[str] = None
    variables: Dict[str, VariableDefinition] = Field(default_factory=dict)
    layout: List[LayoutItem] = Field(default_factory=list)
    formatting: Optional[FormattingRules] = None

    def sorted_layout(self) -> List[LayoutItem]:
        """Layout items in ascending order."""
        return sorted(self.layout, key=lambda item: item.order)

    def items_by_order(self) -> Dict[int, LayoutItem]:
        """Map order -> item (last one wins on duplicates)."""
        return {item.order: item for item in self.layout}

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportDefinition":
        """
        Parse a definition dict.

        Raises:
            ReportValidationError: With one issue per structural problem
        """
        if not isinstance(data, dict):
            raise ReportValidationError(
                [ValidationIssue("", "Report definition must be an object")]
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            issues = [
                ValidationIssue(".".join(str(part) for part in err["loc"]), err["msg"])
                for err in e.errors()
            ]
            raise ReportValidationError(issues, report_id=data.get("reportId")) from e

    @classmethod
    def from_json(cls, text: str) -> "ReportDefinition":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ReportValidationError(
                [ValidationIssue("", f"Invalid JSON at line {e.lineno}, column {e.colno}: {e.msg}")]
            ) from e
        return cls.from_dict(data)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ReportDefinition":
        """Load a definition from a .json, .yaml or .yml file."""
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            text = f.read()

        if path.suffix.lower() in (".yaml", ".yml"):
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as e:
                raise ReportValidationError(
                    [ValidationIssue(str(path), f"Invalid YAML: {e}")]
                ) from e
            report = cls.from_dict(data)
        else:
            report = cls.from_json(text)

        logger.info(f"Loaded report definition '{report.report_id}' v{report.version} from {path}")
        return report


def coerce_report_definition(report: Any) -> ReportDefinition:
    """Accept a ReportDefinition, a definition dict, or JSON text."""
    if isinstance(report, ReportDefinition):
        return report
    if isinstance(report, str):
        return ReportDefinition.from_json(report)
    return ReportDefinition.from_dict(report)
