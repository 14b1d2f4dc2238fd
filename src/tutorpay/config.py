"""Configuration management for tutorpay."""

from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv

DEFAULT_WORKING_DAYS = ("SUN", "MON", "TUE", "WED", "THU")


def _parse_optional_bool(raw: str | None) -> bool | None:
    if raw is None or not raw.strip():
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment."""

    default_working_days: frozenset[str]
    summary_precision: Decimal
    metadata_support: bool | None
    log_level: str
    engine_version: str

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        load_dotenv()

        raw_days = os.getenv("TUTORPAY_DEFAULT_WORKING_DAYS", ",".join(DEFAULT_WORKING_DAYS))
        days = frozenset(
            day.strip().upper() for day in raw_days.split(",") if day.strip()
        )

        return cls(
            default_working_days=days,
            summary_precision=Decimal(os.getenv("TUTORPAY_SUMMARY_PRECISION", "0.001")),
            metadata_support=_parse_optional_bool(os.getenv("TUTORPAY_METADATA_SUPPORT")),
            log_level=os.getenv("TUTORPAY_LOG_LEVEL", "WARNING").upper(),
            engine_version=os.getenv("TUTORPAY_ENGINE_VERSION", "1.0.0"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings.from_env()
