"""
Sign Convention

Balance-sheet datasets store liabilities and equity (passiva, level-1
codes 60-90) with a negative natural sign. Reports usually show them as
positive amounts, so the caller flips them before evaluation; the engine
itself is sign-agnostic.
"""
import logging
from dataclasses import replace
from typing import Optional, Tuple

from report_engine.data.dataset import Dataset

logger = logging.getLogger(__name__)

ACTIVA_RANGE: Tuple[int, int] = (0, 50)
PASSIVA_RANGE: Tuple[int, int] = (60, 90)


def _parse_code(code1) -> Optional[int]:
    try:
        return int(str(code1).strip())
    except (TypeError, ValueError):
        return None


def is_passiva(code1) -> bool:
    code = _parse_code(code1)
    return code is not None and PASSIVA_RANGE[0] <= code <= PASSIVA_RANGE[1]


def is_activa(code1) -> bool:
    code = _parse_code(code1)
    return code is not None and ACTIVA_RANGE[0] <= code <= ACTIVA_RANGE[1]


def sign_multiplier(code1) -> int:
    """-1 for passiva codes, 1 otherwise."""
    return -1 if is_passiva(code1) else 1


def apply_sign_convention(dataset: Dataset) -> Dataset:
    """
    Return a new dataset with passiva amounts negated.

    Row order is preserved. Rows without a numeric code1 or without an
    amount are left as-is.
    """
    flipped = 0
    rows = []
    for row in dataset:
        if is_passiva(row.code1) and row.amount is not None:
            rows.append(replace(row, amount=-row.amount))
            flipped += 1
        else:
            rows.append(row)

    logger.info(f"Sign convention applied: {flipped} of {len(dataset)} rows flipped")
    return Dataset(rows, source=f"{dataset.source}+signed")
