"""
Configuration settings for the Report Definition Engine.

All tunables come from environment variables, never hardcoded call sites.
"""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


def _optional_float(name: str) -> Optional[float]:
    value = os.getenv(name, "").strip()
    return float(value) if value else None


@dataclass
class EngineConfig:
    """Evaluation behaviour."""
    # Worker threads for variable resolution (1 = sequential)
    max_workers: int = field(
        default_factory=lambda: int(os.getenv("REPORT_ENGINE_MAX_WORKERS", "1"))
    )
    # Length of the LTM rolling window
    rolling_window_months: int = field(
        default_factory=lambda: int(os.getenv("ROLLING_WINDOW_MONTHS", "12"))
    )
    # "partial" aggregates what exists, "strict" raises when periods are missing
    rolling_window_policy: str = field(
        default_factory=lambda: os.getenv("ROLLING_WINDOW_POLICY", "partial")
    )


@dataclass
class FormattingConfig:
    """Default display formatting when a report carries no formatting block."""
    currency_symbol: str = field(
        default_factory=lambda: os.getenv("REPORT_CURRENCY_SYMBOL", "€")
    )
    currency_decimals: int = field(
        default_factory=lambda: int(os.getenv("REPORT_CURRENCY_DECIMALS", "0"))
    )
    percent_decimals: int = field(
        default_factory=lambda: int(os.getenv("REPORT_PERCENT_DECIMALS", "1"))
    )


@dataclass
class CacheConfig:
    """Result cache settings."""
    # Entries older than this are recomputed; unset means no age limit
    max_age_hours: Optional[float] = field(
        default_factory=lambda: _optional_float("REPORT_CACHE_MAX_AGE_HOURS")
    )


@dataclass
class AppConfig:
    """Main application configuration."""
    engine: EngineConfig = field(default_factory=EngineConfig)
    formatting: FormattingConfig = field(default_factory=FormattingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    # Logging
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def validate(self) -> list:
        """Return a list of configuration problems (empty when valid)."""
        problems = []
        if self.engine.max_workers < 1:
            problems.append("REPORT_ENGINE_MAX_WORKERS must be at least 1")
        if self.engine.rolling_window_months < 1:
            problems.append("ROLLING_WINDOW_MONTHS must be at least 1")
        if self.engine.rolling_window_policy not in ("partial", "strict"):
            problems.append("ROLLING_WINDOW_POLICY must be 'partial' or 'strict'")
        if not 0 <= self.formatting.currency_decimals <= 4:
            problems.append("REPORT_CURRENCY_DECIMALS must be between 0 and 4")
        if not 0 <= self.formatting.percent_decimals <= 4:
            problems.append("REPORT_PERCENT_DECIMALS must be between 0 and 4")
        if len(self.formatting.currency_symbol) > 5:
            problems.append("REPORT_CURRENCY_SYMBOL must be at most 5 characters")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engine": vars(self.engine),
            "formatting": vars(self.formatting),
            "cache": vars(self.cache),
            "log_level": self.log_level,
        }


def get_config() -> AppConfig:
    """Factory function to get application configuration."""
    return AppConfig()
