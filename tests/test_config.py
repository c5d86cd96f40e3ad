"""Tests for settings and logging setup."""

import structlog

from storefront.infrastructure import database
from storefront.infrastructure.config import Settings
from storefront.infrastructure.logging import configure_logging


def test_settings_defaults() -> None:
    """Test transaction and listing defaults."""
    settings = Settings()
    assert settings.transaction_max_wait == 2.0
    assert settings.transaction_timeout == 5.0
    assert settings.default_page_size == 10


def test_settings_from_environment(monkeypatch) -> None:
    """Test environment variables override defaults."""
    monkeypatch.setenv("TRANSACTION_TIMEOUT", "9.5")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///catalog.db")
    settings = Settings()
    assert settings.transaction_timeout == 9.5
    assert settings.database_url == "sqlite+aiosqlite:///catalog.db"


def test_configure_logging() -> None:
    """Test logging configuration yields a usable logger."""
    configure_logging(Settings(log_level="debug"))
    logger = structlog.get_logger()
    logger.debug("Logging configured", test=True)


def test_engine_from_settings(monkeypatch, tmp_path) -> None:
    """Test the cached engine and session factory follow settings."""
    monkeypatch.setattr(database.settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'app.db'}")
    database.get_engine.cache_clear()
    database.get_session_factory.cache_clear()
    try:
        engine = database.get_engine()
        assert engine.url.drivername == "sqlite+aiosqlite"
        assert database.get_engine() is engine
        assert database.get_session_factory().kw["bind"] is engine
    finally:
        database.get_engine.cache_clear()
        database.get_session_factory.cache_clear()
