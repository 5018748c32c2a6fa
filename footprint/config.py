"""
config.py – Load and validate environment configuration.

All configuration is loaded from environment variables (or a .env file
at the repository root).  Call `get_config()` once at startup to obtain a
validated Config object.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from footprint.constants import (
    DEFAULT_RECONCILE_INTERVAL_HOURS,
    DEFAULT_REDRIVE_BATCH_SIZE,
    DEFAULT_REDRIVE_INTERVAL_SECONDS,
)

# Repository root: the directory holding footprint/ and footprint_api/
_REPO_ROOT = Path(__file__).resolve().parent.parent

# override=True ensures .env values always win over stale OS-level env vars.
_env_root = _REPO_ROOT / ".env"
if _env_root.exists():
    load_dotenv(_env_root, override=True)


@dataclass
class Config:
    """Validated runtime configuration."""

    database_url: str
    log_level: str = "INFO"
    reconcile_interval_hours: float = DEFAULT_RECONCILE_INTERVAL_HOURS
    redrive_interval_seconds: float = DEFAULT_REDRIVE_INTERVAL_SECONDS
    redrive_batch_size: int = DEFAULT_REDRIVE_BATCH_SIZE
    enable_scheduler: bool = True

    @property
    def reconcile_interval_seconds(self) -> float:
        return self.reconcile_interval_hours * 3600.0


_REQUIRED_VARS = [
    "DATABASE_URL",
]

_TRUTHY = {"1", "true", "yes", "on"}


def _number_env(name: str, default, cast):
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise EnvironmentError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise EnvironmentError(f"{name} must be > 0, got {raw!r}")
    return value


def get_config() -> Config:
    """
    Read environment variables, validate presence, and return a Config.

    Raises
    ------
    EnvironmentError
        If any required variable is missing or a numeric one is malformed.
    """
    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise EnvironmentError(
            f"Missing required environment variable(s): {', '.join(missing)}\n"
            "Copy .env.example → .env and fill in the values."
        )

    return Config(
        database_url=os.environ["DATABASE_URL"],
        log_level=(os.environ.get("LOG_LEVEL") or "INFO").upper(),
        reconcile_interval_hours=_number_env(
            "RECONCILE_INTERVAL_HOURS", DEFAULT_RECONCILE_INTERVAL_HOURS, float
        ),
        redrive_interval_seconds=_number_env(
            "REDRIVE_INTERVAL_SECONDS", DEFAULT_REDRIVE_INTERVAL_SECONDS, float
        ),
        redrive_batch_size=_number_env(
            "REDRIVE_BATCH_SIZE", DEFAULT_REDRIVE_BATCH_SIZE, int
        ),
        enable_scheduler=(
            os.environ.get("ENABLE_SCHEDULER", "true").strip().lower() in _TRUTHY
        ),
    )
