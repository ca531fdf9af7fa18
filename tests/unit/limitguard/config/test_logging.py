"""
Unit tests for logging configuration.
"""

from unittest.mock import patch

from limitguard.config.logging import (
    add_app_context,
    configure_logging,
    get_logger,
    hash_key,
    setup_logging,
)
from limitguard.config.settings import Settings


class TestLogging:
    """Tests for structlog setup helpers."""

    def test_add_app_context(self):
        """Test the application name is attached to every event."""
        event = add_app_context(None, "info", {"event": "x"})

        assert event == {"event": "x", "app": "limitguard"}

    def test_setup_and_get_logger(self):
        """Test loggers are usable after setup."""
        setup_logging(log_level="DEBUG", json_logs=True, service_name="api")

        logger = get_logger("limitguard.test")

        logger.info("logging_configured")

    def test_hash_key_is_stable_and_opaque(self):
        """Test key digests are short, stable and do not leak the key."""
        digest = hash_key("ip:10.0.0.1:/login")

        assert digest == hash_key("ip:10.0.0.1:/login")
        assert len(digest) == 16
        assert "10.0.0.1" not in digest
        assert digest != hash_key("ip:10.0.0.2:/login")


class TestConfigureLogging:
    """Tests for settings-driven logging setup."""

    def test_uses_settings(self):
        """Test settings values are passed through to setup_logging."""
        settings = Settings(log_level="WARNING", json_logs=False, service_name="edge")

        with patch("limitguard.config.logging.setup_logging") as mock_setup:
            configure_logging(settings)

        mock_setup.assert_called_once_with(log_level="WARNING", json_logs=False, service_name="edge")

    def test_settings_from_environment(self, monkeypatch):
        """Test settings load from LIMITGUARD_ variables."""
        monkeypatch.setenv("LIMITGUARD_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("LIMITGUARD_JSON_LOGS", "false")

        settings = Settings()

        assert settings.log_level == "DEBUG"
        assert settings.json_logs is False
        assert settings.service_name == "limitguard"
