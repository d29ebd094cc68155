"""Tests for configuration validation."""

import pytest
from pydantic import ValidationError

from planchat.config import Settings, get_config_dict


class TestConfigValidation:
    """Tests for Settings validation."""

    def test_planning_url_valid_https(self):
        s = Settings(planning_api_url="https://planner.example.com")
        assert s.planning_api_url == "https://planner.example.com"

    def test_planning_url_empty_allowed(self):
        """Test empty planning URL is allowed (requests fail at call time)."""
        s = Settings(planning_api_url="")
        assert s.planning_api_url == ""

    def test_planning_url_invalid_rejected(self):
        """Test URL without scheme is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(planning_api_url="planner.example.com")
        assert "http" in str(exc_info.value).lower()

    def test_trailing_slash_removed(self):
        s = Settings(planning_api_url="https://planner.example.com/", dashboard_url="http://localhost:8000/")
        assert s.planning_api_url == "https://planner.example.com"
        assert s.dashboard_url == "http://localhost:8000"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("PLANCHAT_HISTORY_LIMIT", "5")
        monkeypatch.setenv("PLANCHAT_SESSION_TIMEOUT_SECONDS", "60")
        s = Settings()
        assert s.history_limit == 5
        assert s.session_timeout_seconds == 60

    def test_verification_attempts_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(verification_max_attempts=0)

    def test_rate_limit_validation_valid(self):
        s = Settings(rate_limit_chat="20/minute")
        assert s.rate_limit_chat == "20/minute"

    def test_rate_limit_validation_invalid(self):
        """Test invalid rate limit format is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(rate_limit_chat="20perminute")
        assert "format" in str(exc_info.value).lower() or "/" in str(exc_info.value)


class TestConfigHelpers:
    """Tests for config helper functions."""

    def test_defaults_match_session_rules(self):
        s = Settings()
        assert s.session_timeout_seconds == 900
        assert s.history_limit == 20

    def test_get_config_dict_keys(self):
        """Test get_config_dict returns expected keys and nothing secret."""
        config = get_config_dict()
        assert "app_name" in config
        assert "planning_api_configured" in config
        assert "session_timeout_seconds" in config
        assert "database_url" not in config
