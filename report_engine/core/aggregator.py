"""
Aggregation Functions

Reduces the amounts of matched rows to a single scalar.

Null semantics:
- Empty match set: sum -> 0, count -> 0, every other kind -> None
- A None amount means "value unavailable": sum/average/min/max skip it,
  count still counts the row, first/last return it as-is
"""
import logging
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from report_engine.core.error_taxonomy import UnknownAggregateError

logger = logging.getLogger(__name__)

Number = Optional[float]


class AggregateKind(Enum):
    """Supported aggregate functions."""
    SUM = "sum"
    AVERAGE = "average"
    COUNT = "count"
    MIN = "min"
    MAX = "max"
    FIRST = "first"
    LAST = "last"

    @classmethod
    def parse(cls, kind) -> "AggregateKind":
        """Resolve a kind name (case-insensitive, 'avg' accepted)."""
        if isinstance(kind, cls):
            return kind
        if isinstance(kind, str):
            name = kind.strip().lower()
            name = AGGREGATE_ALIASES.get(name, name)
            for member in cls:
                if member.value == name:
                    return member
        raise UnknownAggregateError(kind, SUPPORTED_AGGREGATES)


AGGREGATE_ALIASES = {"avg": "average", "mean": "average"}
SUPPORTED_AGGREGATES = tuple(kind.value for kind in AggregateKind)


def _present(values: Sequence[Number]):
    return [v for v in values if v is not None]


def _sum(values: Sequence[Number]) -> Number:
    return float(sum(_present(values)))


def _average(values: Sequence[Number]) -> Number:
    present = _present(values)
    if not present:
        return None
    return sum(present) / len(present)


def _count(values: Sequence[Number]) -> Number:
    return float(len(values))


def _min(values: Sequence[Number]) -> Number:
    present = _present(values)
    return min(present) if present else None


def _max(values: Sequence[Number]) -> Number:
    present = _present(values)
    return max(present) if present else None


def _first(values: Sequence[Number]) -> Number:
    return values[0] if values else None


def _last(values: Sequence[Number]) -> Number:
    return values[-1] if values else None


_AGGREGATORS: Dict[AggregateKind, Callable[[Sequence[Number]], Number]] = {
    AggregateKind.SUM: _sum,
    AggregateKind.AVERAGE: _average,
    AggregateKind.COUNT: _count,
    AggregateKind.MIN: _min,
    AggregateKind.MAX: _max,
    AggregateKind.FIRST: _first,
    AggregateKind.LAST: _last,
}


class Aggregator:
    """
    Deterministic reduction of matched values.

    `values` must be in the dataset's original iteration order; first/last
    depend on it and nothing here re-sorts.
    """

    def aggregate(self, values: Sequence[Number], kind) -> Number:
        """
        Reduce values with the given aggregate kind.

        Args:
            values: Matched amounts, in dataset order
            kind: AggregateKind or its name ("sum", "average", "avg", ...)

        Returns:
            The aggregate value, or None when unavailable

        Raises:
            UnknownAggregateError: If kind is not supported
        """
        aggregate_kind = AggregateKind.parse(kind)
        values = list(values)
        result = _AGGREGATORS[aggregate_kind](values)
        logger.debug(f"{aggregate_kind.value} over {len(values)} value(s) -> {result}")
        return result

    @staticmethod
    def is_supported(kind) -> bool:
        try:
            AggregateKind.parse(kind)
        except UnknownAggregateError:
            return False
        return True


# Singleton aggregator instance
_aggregator = Aggregator()


def get_aggregator() -> Aggregator:
    """Get the aggregator instance."""
    return _aggregator


def aggregate(values: Sequence[Number], kind) -> Number:
    """Module-level shortcut for Aggregator().aggregate."""
    return _aggregator.aggregate(values, kind)
