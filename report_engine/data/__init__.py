"""
Data layer module for movement datasets, sign convention, and result caching.
"""
from report_engine.data.dataset import (
    FIELD_ALIASES,
    Row,
    Dataset,
)
from report_engine.data.sign_convention import (
    is_activa,
    is_passiva,
    sign_multiplier,
    apply_sign_convention,
)
from report_engine.data.result_cache import (
    CachedResult,
    ReportResultCache,
)

__all__ = [
    # Dataset
    "FIELD_ALIASES",
    "Row",
    "Dataset",
    # Sign convention
    "is_activa",
    "is_passiva",
    "sign_multiplier",
    "apply_sign_convention",
    # Result cache
    "CachedResult",
    "ReportResultCache",
]
