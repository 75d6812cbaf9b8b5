"""Unit tests for environment settings."""

import pytest

from marketfeed.settings import AppSettings


class TestAppSettings:
    """Tests for AppSettings."""

    @pytest.mark.unit
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test defaults without environment variables."""
        for name in ("MARKETFEED_DB_PATH", "REDIS_URL", "LOG_LEVEL", "LOG_JSON"):
            monkeypatch.delenv(name, raising=False)

        settings = AppSettings(_env_file=None)  # type: ignore[call-arg]

        assert settings.db_path == "marketfeed.db"
        assert settings.redis_url is None
        assert settings.log_level == "INFO"
        assert settings.log_json is True

    @pytest.mark.unit
    def test_environment_aliases(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test variables are read through their aliases."""
        monkeypatch.setenv("MARKETFEED_DB_PATH", "/tmp/feed.db")
        monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
        monkeypatch.setenv("LOG_JSON", "false")

        settings = AppSettings(_env_file=None)  # type: ignore[call-arg]

        assert settings.db_path == "/tmp/feed.db"
        assert settings.redis_url == "redis://localhost:6379/0"
        assert settings.log_json is False

    @pytest.mark.unit
    def test_weight_overrides_only_set_values(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test weight_overrides lists only variables that are set."""
        for name in (
            "RANKING_W1_LIQUIDITY",
            "RANKING_W2_VOLUME",
            "RANKING_W3_DRIFT",
            "RANKING_W4_SOCIAL",
            "RANKING_W5_TIME",
        ):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("RANKING_W3_DRIFT", "0.25")

        settings = AppSettings(_env_file=None)  # type: ignore[call-arg]

        assert settings.weight_overrides() == {"w3_drift": 0.25}
