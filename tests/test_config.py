"""Tests for environment settings."""

from decimal import Decimal

from tutorpay.config import DEFAULT_WORKING_DAYS, Settings, get_settings


class TestSettings:
    """Test settings loading."""

    def test_defaults(self):
        """Test defaults without environment overrides."""
        settings = Settings.from_env()
        assert settings.default_working_days == frozenset(DEFAULT_WORKING_DAYS)
        assert settings.summary_precision == Decimal("0.001")
        assert settings.metadata_support is None
        assert settings.log_level == "WARNING"
        assert settings.engine_version == "1.0.0"

    def test_environment_overrides(self, monkeypatch):
        """Test every setting can be overridden."""
        monkeypatch.setenv("TUTORPAY_DEFAULT_WORKING_DAYS", "mon, fri,")
        monkeypatch.setenv("TUTORPAY_SUMMARY_PRECISION", "0.01")
        monkeypatch.setenv("TUTORPAY_METADATA_SUPPORT", "off")
        monkeypatch.setenv("TUTORPAY_LOG_LEVEL", "debug")
        monkeypatch.setenv("TUTORPAY_ENGINE_VERSION", "2.1.0")

        settings = Settings.from_env()
        assert settings.default_working_days == frozenset({"MON", "FRI"})
        assert settings.summary_precision == Decimal("0.01")
        assert settings.metadata_support is False
        assert settings.log_level == "DEBUG"
        assert settings.engine_version == "2.1.0"

    def test_blank_metadata_support_is_unset(self, monkeypatch):
        """Test a blank override means probe instead."""
        monkeypatch.setenv("TUTORPAY_METADATA_SUPPORT", "  ")
        assert Settings.from_env().metadata_support is None

    def test_get_settings_is_cached(self, monkeypatch):
        """Test settings are loaded once until the cache is cleared."""
        first = get_settings()
        monkeypatch.setenv("TUTORPAY_ENGINE_VERSION", "9.9.9")
        assert get_settings() is first

        get_settings.cache_clear()
        assert get_settings().engine_version == "9.9.9"
