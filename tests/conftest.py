"""
Shared fixtures: a small Dutch chart-of-accounts movement set and a
report-definition factory.
"""
import pytest

from report_engine.data.dataset import Dataset, Row


def make_rows():
    """Two years of movements across revenue, cost of sales and opex."""
    rows = []
    for year, scale in ((2023, 1.0), (2024, 1.2)):
        for period in range(1, 13):
            rows.append(Row(amount=100.0 * scale, year=year, period=period,
                            code1="700", name1="Omzet", code2="70010", name2="Omzet binnenland",
                            statement_type="Winst & verlies", account_code="8000"))
            rows.append(Row(amount=-40.0 * scale, year=year, period=period,
                            code1="710", name1="Kostprijs van de omzet", code2="71010",
                            name2="Inkoopwaarde", statement_type="Winst & verlies",
                            account_code="7000"))
            rows.append(Row(amount=-25.0, year=year, period=period,
                            code1="720", name1="Personeelskosten", code2="72010",
                            name2="Lonen en salarissen", statement_type="Winst & verlies",
                            account_code="4000"))
    return rows


@pytest.fixture
def movements():
    return Dataset(make_rows(), source="fixture")


@pytest.fixture
def make_report():
    """Build a report definition dict from variables and layout."""
    def _make(variables=None, layout=None, **overrides):
        definition = {
            "reportId": "test_report",
            "name": "Test Report",
            "version": "1.0.0",
            "statementType": "income",
            "variables": variables or {},
            "layout": layout or [],
        }
        definition.update(overrides)
        return definition
    return _make
