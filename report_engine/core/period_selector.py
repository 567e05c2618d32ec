"""
Period Selectors

Restrict a movement dataset to the periods a report column covers.

Key Concepts:
- AllPeriods(year): periods 1-12 of one year
- Cumulative(year, through): year-to-date, periods 1..through
- RollingWindow: explicit ordered (year, period) pairs, may cross a year
  boundary (e.g. LTM ending 2024 P6 = 2023 P7 .. 2024 P6)

Selector text follows the period dropdown conventions:
"All" -> full year, "Q1".."Q4" -> cumulative through 3/6/9/12,
"P1".."P12" or a bare number -> cumulative, "LTM" -> rolling 12 months.
"""
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from report_engine.core.error_taxonomy import (
    InsufficientPeriodDataError,
    InvalidPeriodSelectorError,
)

logger = logging.getLogger(__name__)

PERIODS_PER_YEAR = 12

YearPeriod = Tuple[int, int]


class WindowPolicy(Enum):
    """What to do when a rolling window reaches beyond the available data."""
    PARTIAL = "partial"  # aggregate what exists, log a warning
    STRICT = "strict"    # raise InsufficientPeriodDataError

    @classmethod
    def parse(cls, value) -> "WindowPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidPeriodSelectorError(
                f"Unknown rolling window policy: {value!r}. Valid policies are: partial, strict"
            )


def _check_period(period: int, what: str = "period") -> None:
    if not isinstance(period, int) or isinstance(period, bool) or not 1 <= period <= PERIODS_PER_YEAR:
        raise InvalidPeriodSelectorError(
            f"Invalid {what}: {period!r}. Must be an integer between 1 and {PERIODS_PER_YEAR}"
        )


class PeriodSelector:
    """Base for all selectors. Subclasses are frozen dataclasses."""

    def contains(self, year: int, period: int) -> bool:
        raise NotImplementedError

    @property
    def label(self) -> str:
        raise NotImplementedError

    @property
    def cache_key(self) -> str:
        raise NotImplementedError

    def periods(self) -> List[YearPeriod]:
        """Every (year, period) pair the selector covers, ascending."""
        raise NotImplementedError

    def restrict(self, dataset, policy=WindowPolicy.PARTIAL) -> list:
        """Rows of the dataset that fall inside this selector, in dataset order."""
        return [row for row in dataset if self.contains(row.year, row.period)]

    def to_dict(self) -> dict:
        return {"label": self.label, "cache_key": self.cache_key, "periods": self.periods()}


@dataclass(frozen=True)
class AllPeriods(PeriodSelector):
    """Full year: periods 1-12."""
    year: int

    def contains(self, year: int, period: int) -> bool:
        return year == self.year and 1 <= period <= PERIODS_PER_YEAR

    @property
    def label(self) -> str:
        return str(self.year)

    @property
    def cache_key(self) -> str:
        return f"all:{self.year}"

    def periods(self) -> List[YearPeriod]:
        return [(self.year, p) for p in range(1, PERIODS_PER_YEAR + 1)]


@dataclass(frozen=True)
class Cumulative(PeriodSelector):
    """Year-to-date: periods 1..through of one year."""
    year: int
    through: int

    def __post_init__(self):
        _check_period(self.through, "cumulative period")

    def contains(self, year: int, period: int) -> bool:
        return year == self.year and 1 <= period <= self.through

    @property
    def label(self) -> str:
        return f"{self.year} P{self.through}"

    @property
    def cache_key(self) -> str:
        return f"ytd:{self.year}:{self.through}"

    def periods(self) -> List[YearPeriod]:
        return [(self.year, p) for p in range(1, self.through + 1)]


@dataclass(frozen=True)
class RollingWindow(PeriodSelector):
    """
    Explicit ordered window of (year, period) pairs.

    Usage:
        ltm = RollingWindow.ending(2024, 6)        # 2023 P7 .. 2024 P6
        ltm.label                                  # "LTM (2023 P7 - 2024 P6)"
    """
    window: Tuple[YearPeriod, ...]
    name: str = "LTM"

    def __post_init__(self):
        if not self.window:
            raise InvalidPeriodSelectorError("Rolling window must cover at least one period")
        for year, period in self.window:
            _check_period(period)
        object.__setattr__(self, "window", tuple(sorted(set(self.window))))

    @classmethod
    def ending(cls, year: int, period: int, months: int = PERIODS_PER_YEAR,
               name: str = "LTM") -> "RollingWindow":
        """
        Build the window of `months` periods ending at (year, period).

        Walks backwards across year boundaries as needed.
        """
        _check_period(period, "end period")
        if months <= 0:
            raise InvalidPeriodSelectorError(f"Rolling window length must be positive, got {months}")

        pairs = []
        current_year, current_period = year, period
        for _ in range(months):
            pairs.append((current_year, current_period))
            current_period -= 1
            if current_period == 0:
                current_year -= 1
                current_period = PERIODS_PER_YEAR
        return cls(window=tuple(reversed(pairs)), name=name)

    def contains(self, year: int, period: int) -> bool:
        return (year, period) in self._members

    @property
    def _members(self) -> frozenset:
        return frozenset(self.window)

    @property
    def start(self) -> YearPeriod:
        return self.window[0]

    @property
    def end(self) -> YearPeriod:
        return self.window[-1]

    @property
    def label(self) -> str:
        (start_year, start_period), (end_year, end_period) = self.start, self.end
        return f"{self.name} ({start_year} P{start_period} - {end_year} P{end_period})"

    @property
    def cache_key(self) -> str:
        return "rolling:" + ",".join(f"{y}-{p}" for y, p in self.window)

    def periods(self) -> List[YearPeriod]:
        return list(self.window)

    def ranges(self) -> List[Tuple[int, int, int]]:
        """Contiguous (year, start_period, end_period) blocks of the window."""
        blocks: List[Tuple[int, int, int]] = []
        for year, period in self.window:
            if blocks and blocks[-1][0] == year and blocks[-1][2] == period - 1:
                blocks[-1] = (year, blocks[-1][1], period)
            else:
                blocks.append((year, period, period))
        return blocks

    def check_availability(self, available: Iterable[YearPeriod]) -> Tuple[int, int]:
        """Return (present, expected) period counts for this window."""
        present = len(self._members.intersection(available))
        return present, len(self.window)

    def restrict(self, dataset, policy=WindowPolicy.PARTIAL) -> list:
        policy = WindowPolicy.parse(policy)
        present, expected = self.check_availability(dataset.available_periods())
        if present < expected:
            if policy is WindowPolicy.STRICT:
                raise InsufficientPeriodDataError(self.label, expected, present)
            logger.warning(
                f"{self.label}: only {present} of {expected} periods present, "
                f"aggregating partial window"
            )
        members = self._members
        return [row for row in dataset if (row.year, row.period) in members]


_PERIOD_PATTERN = re.compile(r"^P(\d{1,2})$")
_QUARTER_PATTERN = re.compile(r"^Q([1-4])$")


def parse_period_selector(
    text: Optional[str],
    year: int,
    latest: Optional[YearPeriod] = None,
    months: int = PERIODS_PER_YEAR,
) -> PeriodSelector:
    """
    Parse period dropdown text into a selector.

    Args:
        text: "All", "Q1".."Q4", "P1".."P12", "1".."12", "LTM" (empty means All)
        year: Year the selector applies to
        latest: Latest (year, period) in the data; LTM ends there when it
                falls in `year`, otherwise at (year, 12)
        months: Rolling window length for LTM

    Raises:
        InvalidPeriodSelectorError: For unknown or out-of-range text
    """
    value = (text or "").strip()

    if value == "" or value.lower() == "all":
        return AllPeriods(year)

    if value.upper() == "LTM":
        if latest is not None and latest[0] == year:
            return RollingWindow.ending(year, latest[1], months)
        return RollingWindow.ending(year, PERIODS_PER_YEAR, months)

    match = _QUARTER_PATTERN.match(value.upper())
    if match:
        return Cumulative(year, int(match.group(1)) * 3)

    match = _PERIOD_PATTERN.match(value.upper())
    if match:
        return Cumulative(year, int(match.group(1)))

    if value.isdigit():
        return Cumulative(year, int(value))

    raise InvalidPeriodSelectorError(
        f"Unrecognized period selector: {text!r}. "
        f"Expected All, Q1-Q4, P1-P12, a period number, or LTM"
    )
