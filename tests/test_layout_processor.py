"""
Unit tests for the Layout Processor.

Tests cover:
- Variable, calculated, category, subtotal and spacer rows
- Subtotals skipping spacers, nested subtotals and None values
- Forward references detected during the pass
"""
import pytest

from report_engine.core.error_taxonomy import ForwardReferenceError
from report_engine.core.layout_processor import LayoutProcessor, ResolvedRow
from report_engine.core.period_selector import AllPeriods
from report_engine.core.report_definition import ReportDefinition
from report_engine.core.variable_resolver import VariableResolver


VARIABLES = {
    "revenue": {"filter": {"code1": "700"}},
    "cogs": {"filter": {"code1": "710"}},
}


@pytest.fixture
def processor():
    return LayoutProcessor(VariableResolver())


def by_order(rows):
    return {row.order: row for row in rows}


class TestBasicRows:
    """Tests for individual row types."""

    def test_calculated_from_variables(self, processor, make_report):
        """@300 = @100 + @200 resolves to 90."""
        report = ReportDefinition.from_dict(make_report(VARIABLES, [
            {"order": 100, "type": "variable", "variable": "revenue", "label": "Omzet"},
            {"order": 200, "type": "variable", "variable": "cogs", "label": "Kostprijs"},
            {"order": 300, "type": "calculated", "expression": "@100 + @200", "label": "Brutomarge"},
        ]))

        rows = processor.process(report, {"revenue": 150.0, "cogs": -60.0}, [])

        assert [row.order for row in rows] == [100, 200, 300]
        assert by_order(rows)[300].value == pytest.approx(90.0)
        assert by_order(rows)[300].metadata == {"expression": "@100 + @200"}

    def test_layout_processed_in_ascending_order(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report(VARIABLES, [
            {"order": 30, "type": "calculated", "expression": "@10 * 2"},
            {"order": 10, "type": "variable", "variable": "revenue"},
        ]))
        rows = processor.process(report, {"revenue": 5.0}, [])
        assert [row.value for row in rows] == [5.0, 10.0]

    def test_category_uses_inline_filter(self, processor, make_report, movements):
        report = ReportDefinition.from_dict(make_report({}, [
            {"order": 10, "type": "category", "filter": {"code1": ["700", "710"]}},
        ]))
        rows = VariableResolver().restrict(movements, AllPeriods(2023))
        resolved = processor.process(report, {}, rows)
        assert resolved[0].value == pytest.approx(1200.0 - 480.0)

    def test_spacer_row_is_blank(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report({}, [{"order": 5, "type": "spacer"}]))
        row = processor.process(report, {}, [])[0]
        assert row.value is None
        assert row.style == "spacer"
        assert row.is_spacer

    def test_row_defaults(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report(VARIABLES, [
            {"order": 1, "type": "variable", "variable": "revenue"},
        ]))
        row = processor.process(report, {"revenue": 1.0}, [])[0]
        assert isinstance(row, ResolvedRow)
        assert (row.label, row.style, row.format, row.indent) == ("", "normal", "decimal", 0)

    def test_division_by_zero_renders_blank(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report(VARIABLES, [
            {"order": 1, "type": "variable", "variable": "revenue"},
            {"order": 2, "type": "calculated", "expression": "@1 / cogs"},
            {"order": 3, "type": "calculated", "expression": "@2 * 100"},
        ]))
        rows = processor.process(report, {"revenue": 10.0, "cogs": 0.0}, [])
        assert rows[1].value is None
        assert rows[2].value is None


class TestSubtotals:
    """Tests for positional subtotals."""

    LAYOUT = [
        {"order": 100, "type": "variable", "variable": "revenue"},
        {"order": 200, "type": "variable", "variable": "cogs"},
        {"order": 250, "type": "spacer"},
        {"order": 270, "type": "calculated", "expression": "@100 * 0.1"},
        {"order": 290, "type": "subtotal", "from": 100, "to": 200},
        {"order": 300, "type": "calculated", "expression": "@290 / 2"},
        {"order": 400, "type": "subtotal", "from": 100, "to": 300},
    ]

    def test_subtotal_excludes_spacer_and_nested_subtotal(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report(VARIABLES, self.LAYOUT))
        rows = by_order(processor.process(report, {"revenue": 150.0, "cogs": -60.0}, []))

        assert rows[290].value == pytest.approx(90.0)
        assert rows[300].value == pytest.approx(45.0)
        # 150 - 60 + 15 + 45; the nested subtotal (90) and spacer are skipped
        assert rows[400].value == pytest.approx(150.0)
        assert rows[400].metadata == {"range": [100, 300]}

    def test_subtotal_skips_none_members(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report(VARIABLES, [
            {"order": 1, "type": "variable", "variable": "revenue"},
            {"order": 2, "type": "calculated", "expression": "@1 / 0"},
            {"order": 3, "type": "subtotal", "from": 1, "to": 2},
        ]))
        rows = processor.process(report, {"revenue": 10.0}, [])
        assert rows[2].value == pytest.approx(10.0)

    def test_empty_range_is_zero(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report({}, [
            {"order": 1, "type": "spacer"},
            {"order": 50, "type": "subtotal", "from": 10, "to": 20},
        ]))
        rows = processor.process(report, {}, [])
        assert rows[1].value == 0.0


class TestForwardReferences:
    """A calculated row may only see rows above it."""

    def test_forward_reference_raises(self, processor, make_report):
        report = ReportDefinition.from_dict(make_report(VARIABLES, [
            {"order": 10, "type": "calculated", "expression": "@20 + 1"},
            {"order": 20, "type": "variable", "variable": "revenue"},
        ]))
        with pytest.raises(ForwardReferenceError) as exc_info:
            processor.process(report, {"revenue": 1.0}, [])
        assert exc_info.value.order == 10
        assert exc_info.value.referenced_order == 20
