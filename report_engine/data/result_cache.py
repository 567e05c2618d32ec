"""
Report Result Cache

Read-through, in-memory cache of evaluated reports.

Entries are keyed by (report_id, period selector, comparison selector)
and stamped with the fingerprint of the dataset they were computed from.
A lookup against a different fingerprint invalidates the entry. The cache
is owned by the caller and passed to the engine; nothing here is global.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, Optional[str]]


@dataclass
class CachedResult:
    """A cached evaluation with the metadata needed to judge freshness."""
    key: CacheKey
    fingerprint: str
    rows: List[Any]
    computed_at: datetime = field(default_factory=datetime.now)

    @property
    def age_hours(self) -> float:
        """Get the age of this entry in hours."""
        return (datetime.now() - self.computed_at).total_seconds() / 3600

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.key[0],
            "period": self.key[1],
            "comparison": self.key[2],
            "fingerprint": self.fingerprint,
            "computed_at": self.computed_at.isoformat(),
            "age_hours": self.age_hours,
            "row_count": len(self.rows),
        }


class ReportResultCache:
    """
    In-memory cache for evaluated report rows.

    Usage:
        cache = ReportResultCache(max_age_hours=24)
        engine = ReportEngine(cache=cache)
    """

    def __init__(self, max_age_hours: Optional[float] = None):
        self.max_age_hours = max_age_hours
        self._entries: Dict[CacheKey, CachedResult] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def make_key(report_id: str, period_selector, comparison_selector=None) -> CacheKey:
        comparison_key = comparison_selector.cache_key if comparison_selector is not None else None
        return (report_id, period_selector.cache_key, comparison_key)

    def get(self, key: CacheKey, fingerprint: str) -> Optional[List[Any]]:
        """
        Cached rows for key if computed from the same dataset and not stale.

        Each hit returns a new list; callers may mutate it freely.

        Returns:
            The cached rows, or None on a miss
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                logger.debug(f"Result cache miss: {key}")
                return None

            if entry.fingerprint != fingerprint:
                del self._entries[key]
                self.misses += 1
                logger.warning(f"Dataset changed, invalidated cached result: {key}")
                return None

            if self.max_age_hours is not None and entry.age_hours > self.max_age_hours:
                del self._entries[key]
                self.misses += 1
                logger.info(f"Cached result stale ({entry.age_hours:.1f}h old): {key}")
                return None

            self.hits += 1
            logger.info(f"Result cache hit: {key}")
            return list(entry.rows)

    def set(self, key: CacheKey, fingerprint: str, rows: List[Any]) -> None:
        with self._lock:
            self._entries[key] = CachedResult(key=key, fingerprint=fingerprint, rows=list(rows))
        logger.debug(f"Cached result: {key} ({len(rows)} rows)")

    def invalidate(self, report_id: str) -> int:
        """Drop every entry of one report."""
        with self._lock:
            keys = [key for key in self._entries if key[0] == report_id]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Invalidated {len(keys)} cached result(s) for '{report_id}'")
        return len(keys)

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"Cleared {count} result cache entries")
        return count

    def list_cached(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [entry.to_dict() for entry in self._entries.values()]

    def __len__(self) -> int:
        return len(self._entries)
