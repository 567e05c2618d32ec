"""
Movement Dataset

Immutable, already-materialized financial movements consumed by the engine.

Each Row is one classified, period-tagged amount: up to three hierarchy
levels (code/name), a statement-type tag, an amount, a year and a
sub-period (1-12). The engine never re-parses or re-sorts rows; the
provider's iteration order is what `first`/`last` aggregates see.
"""
import hashlib
import math
import logging
from dataclasses import astuple, dataclass, fields
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

# Column aliases used by common trial-balance exports
FIELD_ALIASES = {
    "movement_amount": "amount",
    "amount_movement": "amount",
    "statementtype": "statement_type",
    "statement": "statement_type",
    "month": "period",
}

TEXT_FIELDS = (
    "code1", "code2", "code3",
    "name1", "name2", "name3",
    "statement_type", "account_code",
)


@dataclass(frozen=True)
class Row:
    """A single classified movement record."""
    amount: Optional[float]
    year: int
    period: int
    code1: Optional[str] = None
    code2: Optional[str] = None
    code3: Optional[str] = None
    name1: Optional[str] = None
    name2: Optional[str] = None
    name3: Optional[str] = None
    statement_type: Optional[str] = None
    account_code: Optional[str] = None

    def get(self, field_name: str) -> Any:
        """Field value by name (filter specs address rows by field name)."""
        return getattr(self, field_name)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Row":
        """
        Build a Row from a loosely-shaped dict.

        Text fields are stringified so filter literals compare against a
        single type. A missing or NaN amount stays None (value unavailable).
        Unknown keys are ignored.
        """
        normalized = {}
        for key, value in record.items():
            key = FIELD_ALIASES.get(str(key).strip().lower(), str(key).strip().lower())
            normalized[key] = value

        kwargs = {}
        for name in TEXT_FIELDS:
            value = normalized.get(name)
            if value is None or (isinstance(value, float) and math.isnan(value)):
                kwargs[name] = None
            elif isinstance(value, float) and value.is_integer():
                # pandas widens integer code columns to float when NaNs are present
                kwargs[name] = str(int(value))
            else:
                kwargs[name] = str(value)

        amount = normalized.get("amount")
        kwargs["amount"] = None if amount is None or pd.isna(amount) else float(amount)
        kwargs["year"] = int(normalized["year"])
        kwargs["period"] = int(normalized["period"])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class Dataset:
    """
    Read-only snapshot of movement rows.

    The fingerprint changes whenever the row content changes and is what
    result caches use to detect a stale dataset.
    """

    def __init__(self, rows: Iterable[Row], source: str = "memory"):
        self._rows: Tuple[Row, ...] = tuple(rows)
        self.source = source
        self._fingerprint: Optional[str] = None

    def __iter__(self) -> Iterator[Row]:
        return iter(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"Dataset(rows={len(self._rows)}, source={self.source!r})"

    @property
    def rows(self) -> Tuple[Row, ...]:
        return self._rows

    @property
    def fingerprint(self) -> str:
        """Content hash of all rows, computed once per snapshot."""
        if self._fingerprint is None:
            digest = hashlib.sha1()
            for row in self._rows:
                digest.update(repr(astuple(row)).encode())
            self._fingerprint = digest.hexdigest()[:16]
        return self._fingerprint

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]], source: str = "records") -> "Dataset":
        rows = [Row.from_record(r) for r in records]
        logger.info(f"Loaded {len(rows)} movement rows from {source}")
        return cls(rows, source=source)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, source: str = "dataframe") -> "Dataset":
        """Build a dataset from a DataFrame with one movement per row."""
        return cls.from_records(df.to_dict(orient="records"), source=source)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([row.to_dict() for row in self._rows])

    def available_years(self) -> List[int]:
        return sorted({row.year for row in self._rows})

    def available_periods(self) -> List[Tuple[int, int]]:
        """Distinct (year, period) pairs, ascending."""
        return sorted({(row.year, row.period) for row in self._rows})

    def latest_period(self) -> Optional[Tuple[int, int]]:
        """Most recent (year, period) present, or None for an empty dataset."""
        periods = self.available_periods()
        return periods[-1] if periods else None
