"""Tests for Settings and AlertConfig environment handling."""

import pytest
from pydantic import ValidationError

from deferred_alerts.alerts.config import AlertConfig
from deferred_alerts.config.settings import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.api_port == 8001
        assert settings.db_pool_min_size == 2
        assert not settings.is_production

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("API_KEYS", "a,b")
        settings = Settings(_env_file=None)
        assert settings.is_production
        assert settings.api_keys == "a,b"

    def test_invalid_database_url(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, database_url="not-a-dsn")


class TestAlertConfig:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("ALERTS_STORE_BACKEND", raising=False)
        config = AlertConfig()
        assert config.store_backend == "postgres"
        assert config.timer_prefix == "alert:"
        assert config.notification_prefix == "alert:"
        assert config.preview_notification_id == "alert-preview"
        assert config.preview_clear_seconds == 5.0
        assert config.view_path == "/game/index"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ALERTS_STORE_BACKEND", "memory")
        monkeypatch.setenv("ALERTS_PREVIEW_CLEAR_SECONDS", "2.5")
        config = AlertConfig()
        assert config.store_backend == "memory"
        assert config.preview_clear_seconds == 2.5

    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            AlertConfig(store_backend="redis")

    def test_rejects_empty_prefix(self):
        with pytest.raises(ValidationError):
            AlertConfig(timer_prefix="")
