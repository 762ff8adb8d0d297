"""Tests for environment-driven database settings."""

import pytest

from budget_kernel.config import DEFAULT_DATABASE_URL, DatabaseSettings

_VARS = (
    "BUDGET_DATABASE_URL",
    "DATABASE_URL",
    "BUDGET_DB_ECHO",
    "BUDGET_DB_POOL_SIZE",
    "BUDGET_DB_MAX_OVERFLOW",
    "BUDGET_DB_POOL_TIMEOUT",
    "BUDGET_DB_POOL_RECYCLE",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = DatabaseSettings.from_env()

    assert settings == DatabaseSettings()
    assert settings.url == DEFAULT_DATABASE_URL


def test_budget_url_wins(clean_env):
    clean_env.setenv("DATABASE_URL", "postgresql://generic/db")
    clean_env.setenv("BUDGET_DATABASE_URL", "postgresql://budget/db")

    assert DatabaseSettings.from_env().url == "postgresql://budget/db"


def test_generic_url_fallback(clean_env):
    clean_env.setenv("DATABASE_URL", "sqlite:///budget.db")

    assert DatabaseSettings.from_env().url == "sqlite:///budget.db"


@pytest.mark.parametrize("raw,expected", [
    ("1", True), ("true", True), (" YES ", True), ("on", True),
    ("0", False), ("no", False), ("", False),
])
def test_echo_flag(clean_env, raw, expected):
    clean_env.setenv("BUDGET_DB_ECHO", raw)

    assert DatabaseSettings.from_env().echo is expected


def test_pool_settings(clean_env):
    clean_env.setenv("BUDGET_DB_POOL_SIZE", "5")
    clean_env.setenv("BUDGET_DB_MAX_OVERFLOW", "2")
    clean_env.setenv("BUDGET_DB_POOL_TIMEOUT", "3")
    clean_env.setenv("BUDGET_DB_POOL_RECYCLE", "60")

    settings = DatabaseSettings.from_env()

    assert (settings.pool_size, settings.max_overflow) == (5, 2)
    assert (settings.pool_timeout, settings.pool_recycle) == (3, 60)


def test_empty_pool_value_uses_default(clean_env):
    clean_env.setenv("BUDGET_DB_POOL_SIZE", "")

    assert DatabaseSettings.from_env().pool_size == 20


def test_settings_are_frozen():
    with pytest.raises(AttributeError):
        DatabaseSettings().url = "sqlite://"
