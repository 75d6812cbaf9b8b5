"""Unit tests for ranking configuration loading."""

from pathlib import Path

import pytest

from marketfeed.config.loader import config_checksum, load_ranking_config
from marketfeed.config.schemas.ranking import RankingConfig, ScoringStrategyName
from marketfeed.errors import ConfigurationError
from marketfeed.settings import AppSettings


ENV_VARS = (
    "RANKING_CONFIG_PATH",
    "SCORING_STRATEGY",
    "RANKING_W1_LIQUIDITY",
    "RANKING_W2_VOLUME",
    "RANKING_W3_DRIFT",
    "RANKING_W4_SOCIAL",
    "RANKING_W5_TIME",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove ranking overrides from the environment."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _settings() -> AppSettings:
    return AppSettings(_env_file=None)  # type: ignore[call-arg]


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "ranking.yaml"
    path.write_text(content, encoding="utf-8")
    return path


class TestLoadFromFile:
    """Tests for YAML loading."""

    @pytest.mark.unit
    def test_defaults_without_file(self) -> None:
        """Test built-in defaults are used when no file is given."""
        loaded = load_ranking_config(settings=_settings())

        assert loaded.source == "defaults"
        assert loaded.config == RankingConfig()
        assert loaded.overrides == ()
        assert loaded.checksum == config_checksum(RankingConfig())

    @pytest.mark.unit
    def test_load_valid_file(self, tmp_path: Path) -> None:
        """Test a YAML file is validated into a RankingConfig."""
        path = _write(
            tmp_path,
            """
strategy: fixed_v1
cache:
  top_k: 50
segments: [default, crypto]
""",
        )

        loaded = load_ranking_config(path, settings=_settings())

        assert loaded.source == str(path)
        assert loaded.config.strategy is ScoringStrategyName.FIXED_V1
        assert loaded.config.cache.top_k == 50
        assert loaded.config.segments == ["default", "crypto"]

    @pytest.mark.unit
    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        """Test an empty file is treated as an empty mapping."""
        loaded = load_ranking_config(_write(tmp_path, ""), settings=_settings())

        assert loaded.config == RankingConfig()

    @pytest.mark.unit
    def test_path_from_settings(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test RANKING_CONFIG_PATH is used when no path is passed."""
        path = _write(tmp_path, "cache:\n  top_k: 7\n")
        monkeypatch.setenv("RANKING_CONFIG_PATH", str(path))

        loaded = load_ranking_config(settings=_settings())

        assert loaded.config.cache.top_k == 7


class TestLoadErrors:
    """Tests for rejected configuration files."""

    @pytest.mark.unit
    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_ranking_config(tmp_path / "nope.yaml", settings=_settings())

        assert exc_info.value.errors[0]["type"] == "file_not_found"

    @pytest.mark.unit
    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test unparseable YAML raises ConfigurationError."""
        path = _write(tmp_path, "cache: [unclosed\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_ranking_config(path, settings=_settings())

        assert exc_info.value.errors[0]["type"] == "yaml_parse_error"

    @pytest.mark.unit
    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        """Test a YAML list is rejected."""
        path = _write(tmp_path, "- a\n- b\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_ranking_config(path, settings=_settings())

        assert exc_info.value.errors[0]["type"] == "yaml_type_error"

    @pytest.mark.unit
    def test_weights_must_sum_to_one(self, tmp_path: Path) -> None:
        """Test invalid weights are reported with their location."""
        path = _write(tmp_path, "weights:\n  w1_liquidity: 0.9\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_ranking_config(path, settings=_settings())

        assert exc_info.value.source == str(path)
        assert exc_info.value.errors[0]["loc"] == "weights"


class TestEnvironmentOverrides:
    """Tests for environment overrides."""

    @pytest.mark.unit
    def test_strategy_override(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test SCORING_STRATEGY overrides the file."""
        path = _write(tmp_path, "strategy: weighted_v2\n")
        monkeypatch.setenv("SCORING_STRATEGY", "fixed_v1")

        loaded = load_ranking_config(path, settings=_settings())

        assert loaded.config.strategy is ScoringStrategyName.FIXED_V1
        assert loaded.overrides == ("strategy",)

    @pytest.mark.unit
    def test_weight_overrides_merge(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test individual weight variables replace only their weight."""
        path = _write(
            tmp_path,
            """
weights:
  w1_liquidity: 0.2
  w2_volume: 0.2
  w3_drift: 0.2
  w4_social: 0.2
  w5_time: 0.2
""",
        )
        monkeypatch.setenv("RANKING_W1_LIQUIDITY", "0.3")
        monkeypatch.setenv("RANKING_W5_TIME", "0.1")

        loaded = load_ranking_config(path, settings=_settings())

        assert loaded.config.weights.w1_liquidity == 0.3
        assert loaded.config.weights.w2_volume == 0.2
        assert loaded.config.weights.w5_time == 0.1
        assert loaded.overrides == ("weights.w1_liquidity", "weights.w5_time")

    @pytest.mark.unit
    def test_override_breaking_sum_rejected(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test an override is validated together with the other weights."""
        monkeypatch.setenv("RANKING_W1_LIQUIDITY", "0.9")

        with pytest.raises(ConfigurationError):
            load_ranking_config(settings=_settings())

    @pytest.mark.unit
    def test_checksum_tracks_effective_config(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test overrides change the checksum."""
        baseline = load_ranking_config(settings=_settings()).checksum
        monkeypatch.setenv("SCORING_STRATEGY", "fixed_v1")

        assert load_ranking_config(settings=_settings()).checksum != baseline
