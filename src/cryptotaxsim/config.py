# config.py
"""
Runtime configuration, read from environment variables.

A `.env` file at the project root is loaded first (python-dotenv), so local
development can keep settings there. Real environment variables win over
values from the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

# src/cryptotaxsim/config.py -> parents[2] == project root
PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGED_RULES_PATH = Path(__file__).resolve().parent / "rules" / "jurisdictions.json"

load_dotenv(PROJECT_ROOT / ".env")

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    db_url: str = field(
        default_factory=lambda: os.getenv("CRYPTOTAXSIM_DB_URL", "sqlite:///./cryptotaxsim.db")
    )
    rules_path: Path = field(
        default_factory=lambda: Path(os.getenv("CRYPTOTAXSIM_RULES_PATH") or PACKAGED_RULES_PATH)
    )
    persist_runs: bool = field(
        default_factory=lambda: _env_bool("CRYPTOTAXSIM_PERSIST_RUNS", True)
    )

    # Request defaults (same as the public simulator form)
    default_country: str = field(
        default_factory=lambda: os.getenv("CRYPTOTAXSIM_DEFAULT_COUNTRY", "us")
    )
    default_income: Decimal = field(
        default_factory=lambda: Decimal(os.getenv("CRYPTOTAXSIM_DEFAULT_INCOME", "50000"))
    )
    default_year: int = field(
        default_factory=lambda: int(os.getenv("CRYPTOTAXSIM_DEFAULT_YEAR", "2024"))
    )

    history_limit: int = field(
        default_factory=lambda: int(os.getenv("CRYPTOTAXSIM_HISTORY_LIMIT", "50"))
    )

    log_level: str = field(default_factory=lambda: os.getenv("CRYPTOTAXSIM_LOG_LEVEL", "INFO"))
    log_json: bool = field(default_factory=lambda: _env_bool("CRYPTOTAXSIM_LOG_JSON", False))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings are read once per process; call get_settings.cache_clear() in tests."""
    return Settings()
