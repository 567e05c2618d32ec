"""
Variance Derivation

Period-over-period difference between a base and a comparison column.

    variance_amount  = comparison - base
    variance_percent = variance_amount / |base| * 100   (None when base is 0)

A None on either side leaves both variance values None. Spacer rows never
carry variance. The computation is sign-agnostic: whether an increase is
favorable is left to the presentation layer.
"""
import logging
from dataclasses import replace
from typing import List, Optional, Sequence, Tuple

from report_engine.core.layout_processor import ResolvedRow

logger = logging.getLogger(__name__)

Value = Optional[float]


class VarianceDeriver:
    """Adds comparison values and variance to resolved rows."""

    @staticmethod
    def derive(base: Value, comparison: Value) -> Tuple[Value, Value]:
        """
        Returns:
            (variance_amount, variance_percent)
        """
        if base is None or comparison is None:
            return None, None
        amount = comparison - base
        if base == 0:
            return amount, None
        return amount, amount / abs(base) * 100

    def apply(
        self,
        rows_base: Sequence[ResolvedRow],
        rows_comparison: Sequence[ResolvedRow],
    ) -> List[ResolvedRow]:
        """
        Align two resolved row lists by order and attach variance.

        Rows missing from the comparison get a None comparison value.
        """
        comparison_by_order = {row.order: row.value for row in rows_comparison}
        result = []

        for row in rows_base:
            if row.is_spacer:
                result.append(row)
                continue
            comparison = comparison_by_order.get(row.order)
            amount, percent = self.derive(row.value, comparison)
            result.append(replace(
                row,
                comparison_value=comparison,
                variance_amount=amount,
                variance_percent=percent,
            ))

        missing = len([
            row for row in rows_base
            if not row.is_spacer and row.order not in comparison_by_order
        ])
        if missing:
            logger.warning(f"{missing} row(s) have no comparison value")
        return result


# Singleton deriver instance
_deriver = VarianceDeriver()


def get_variance_deriver() -> VarianceDeriver:
    """Get the variance deriver instance."""
    return _deriver
