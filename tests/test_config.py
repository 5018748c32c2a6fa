"""
Unit tests for footprint/config.py
"""
import pytest

from footprint.config import Config, get_config

_VARS = [
    "DATABASE_URL",
    "LOG_LEVEL",
    "RECONCILE_INTERVAL_HOURS",
    "REDRIVE_INTERVAL_SECONDS",
    "REDRIVE_BATCH_SIZE",
    "ENABLE_SCHEDULER",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/footprint")


def test_defaults(monkeypatch):
    cfg = get_config()
    assert cfg.database_url == "postgresql://localhost/footprint"
    assert cfg.log_level == "INFO"
    assert cfg.reconcile_interval_hours == 24
    assert cfg.reconcile_interval_seconds == 24 * 3600
    assert cfg.redrive_batch_size == 500
    assert cfg.enable_scheduler is True


def test_missing_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL")
    with pytest.raises(EnvironmentError, match="DATABASE_URL"):
        get_config()


def test_numeric_overrides(monkeypatch):
    monkeypatch.setenv("RECONCILE_INTERVAL_HOURS", "0.5")
    monkeypatch.setenv("REDRIVE_INTERVAL_SECONDS", "30")
    monkeypatch.setenv("REDRIVE_BATCH_SIZE", "25")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    cfg = get_config()

    assert cfg.reconcile_interval_seconds == 1800
    assert cfg.redrive_interval_seconds == 30.0
    assert cfg.redrive_batch_size == 25
    assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize("name, value", [
    ("RECONCILE_INTERVAL_HOURS", "daily"),
    ("REDRIVE_INTERVAL_SECONDS", "0"),
    ("REDRIVE_BATCH_SIZE", "2.5"),
    ("REDRIVE_BATCH_SIZE", "-10"),
])
def test_malformed_numbers(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(EnvironmentError, match=name):
        get_config()


@pytest.mark.parametrize("value, expected", [
    ("false", False),
    ("0", False),
    ("no", False),
    ("TRUE", True),
    ("on", True),
])
def test_scheduler_flag(monkeypatch, value, expected):
    monkeypatch.setenv("ENABLE_SCHEDULER", value)
    assert get_config().enable_scheduler is expected


def test_config_can_be_built_directly():
    cfg = Config(database_url="postgresql://x", reconcile_interval_hours=2)
    assert cfg.reconcile_interval_seconds == 7200
