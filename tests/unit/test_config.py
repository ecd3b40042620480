"""
Unit Tests - Configuration and Error Taxonomy
"""
import logging
from decimal import Decimal

import pytest
import pydantic

from bookshop.config.logging import REDACTED, SERVER_LOGGERS, ServiceContext, configure_logging, redact_secrets
from bookshop.config.settings import DatabaseSettings, OrderingSettings, ReportingSettings, Settings
from bookshop.exceptions import (
    BookshopError,
    Conflict,
    HistoryProjectionError,
    InsufficientStock,
    NotFound,
    ValidationError,
)


class TestSettings:
    """Tests for environment-driven settings"""

    def test_defaults(self):
        reporting = ReportingSettings()
        assert reporting.high_value_window_days == 30
        assert reporting.high_value_threshold == Decimal("500.00")
        assert OrderingSettings().stock_retry_limit == 3

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("REPORTING_TIMEZONE", "Europe/Paris")
        monkeypatch.setenv("ORDERING_STOCK_RETRY_LIMIT", "5")

        assert ReportingSettings().timezone == "Europe/Paris"
        assert OrderingSettings().stock_retry_limit == 5

    def test_retry_limit_must_be_positive(self, monkeypatch):
        monkeypatch.setenv("ORDERING_STOCK_RETRY_LIMIT", "0")
        with pytest.raises(pydantic.ValidationError):
            OrderingSettings()

    def test_database_url_overrides_parts(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///bookshop.db")
        assert DatabaseSettings().async_url == "sqlite+aiosqlite:///bookshop.db"

    def test_postgres_url_from_parts(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("POSTGRES_HOST", "db.internal")
        url = DatabaseSettings().async_url
        assert url.startswith("postgresql+asyncpg://")
        assert "@db.internal:5432/" in url

    def test_invalid_environment(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "moon")
        with pytest.raises(pydantic.ValidationError):
            Settings()

    def test_environment_flags(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "Production")
        settings = Settings()
        assert settings.app_env == "production"
        assert settings.is_production
        assert not settings.is_development


class TestErrorTaxonomy:
    """Every domain error carries its HTTP status and a stable code"""

    @pytest.mark.parametrize("error, status, code", [
        (NotFound("Customer", 7), 404, "not_found"),
        (Conflict("duplicate"), 409, "conflict"),
        (InsufficientStock("MYS0000001", 3, 1), 409, "insufficient_stock"),
        (ValidationError("bad"), 422, "validation_error"),
        (HistoryProjectionError("join failed"), 500, "history_projection_failed"),
    ])
    def test_status_and_code(self, error, status, code):
        assert isinstance(error, BookshopError)
        assert error.status_code == status
        assert error.to_dict()["error"] == code

    def test_not_found_message(self):
        error = NotFound("Product", "ZZZ0000000")
        assert error.to_dict()["detail"] == "Product 'ZZZ0000000' not found"

    def test_insufficient_stock_without_available(self):
        error = InsufficientStock("MYS0000001", 2)
        assert error.available is None
        assert "no longer available" in error.message


class TestLogging:
    """Tests for configure_logging"""

    def test_sets_root_level(self):
        configure_logging("DEBUG")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING

    def test_server_loggers_share_root_handler(self):
        configure_logging("INFO")

        for name in SERVER_LOGGERS:
            server_logger = logging.getLogger(name)
            assert server_logger.handlers == []
            assert server_logger.propagate

    def test_service_context_stamped(self):
        stamp = ServiceContext("bookshop-orders", "testing")

        event = stamp(None, "info", {"event": "Order created"})

        assert event["service"] == "bookshop-orders"
        assert event["env"] == "testing"

    def test_service_context_keeps_explicit_values(self):
        event = ServiceContext("bookshop-orders", "testing")(None, "info", {"event": "x", "service": "loader"})
        assert event["service"] == "loader"

    def test_secrets_redacted(self):
        event = redact_secrets(None, "info", {"event": "Customer loaded", "password_hash": "h" * 64, "email": "a@b.c"})

        assert event["password_hash"] == REDACTED
        assert event["email"] == "a@b.c"
