"""Unit tests for the ranking configuration schema."""

import pytest
from pydantic import ValidationError

from marketfeed.config.schemas.ranking import (
    CacheConfig,
    FeedConfig,
    RankingConfig,
    RebuildConfig,
    RetryPolicy,
    ScoringStrategyName,
    ScoringWeights,
)


class TestDefaults:
    """Tests for default values."""

    @pytest.mark.unit
    def test_ranking_defaults(self) -> None:
        """Test an empty document gives a complete configuration."""
        config = RankingConfig()

        assert config.strategy is ScoringStrategyName.WEIGHTED_V2
        assert config.weights == ScoringWeights()
        assert config.segments == ["default"]
        assert config.version == "1.0"

    @pytest.mark.unit
    def test_cache_defaults(self) -> None:
        """Test cache defaults."""
        cache = CacheConfig()

        assert cache.top_k == 1000
        assert cache.top_k_ttl_seconds == 3600
        assert cache.diversity_ttl_seconds == 1800
        assert cache.diversity_window == 5
        assert cache.diversity_source_size == 100
        assert cache.key_prefix == "feed"

    @pytest.mark.unit
    def test_feed_and_rebuild_defaults(self) -> None:
        """Test feed and rebuild defaults."""
        assert FeedConfig().default_page_size == 5
        assert FeedConfig().max_page_size == 20
        rebuild = RebuildConfig()
        assert rebuild.timeout_seconds == 300.0
        assert rebuild.interval_seconds == 900
        assert rebuild.retry.max_retries == 3


class TestValidation:
    """Tests for rejected configurations."""

    @pytest.mark.unit
    def test_frozen(self) -> None:
        """Test configurations are immutable."""
        config = RankingConfig()
        with pytest.raises(ValidationError):
            config.strategy = ScoringStrategyName.FIXED_V1  # type: ignore[misc]

    @pytest.mark.unit
    def test_unknown_fields_rejected(self) -> None:
        """Test typos in configuration are reported."""
        with pytest.raises(ValidationError):
            RankingConfig.model_validate({"cache": {"topk": 10}})

    @pytest.mark.unit
    def test_unknown_strategy_rejected(self) -> None:
        """Test only known strategies are accepted."""
        with pytest.raises(ValidationError):
            RankingConfig.model_validate({"strategy": "magic_v3"})

    @pytest.mark.unit
    def test_negative_weight_rejected(self) -> None:
        """Test weights must lie in [0, 1]."""
        with pytest.raises(ValidationError):
            ScoringWeights(
                w1_liquidity=1.2,
                w2_volume=-0.2,
                w3_drift=0.0,
                w4_social=0.0,
                w5_time=0.0,
            )

    @pytest.mark.unit
    def test_weight_sum_tolerance(self) -> None:
        """Test sums within 0.001 of 1 are accepted."""
        ScoringWeights(
            w1_liquidity=0.2,
            w2_volume=0.2,
            w3_drift=0.2,
            w4_social=0.2,
            w5_time=0.2005,
        )

        with pytest.raises(ValidationError):
            ScoringWeights(
                w1_liquidity=0.2,
                w2_volume=0.2,
                w3_drift=0.2,
                w4_social=0.2,
                w5_time=0.202,
            )

    @pytest.mark.unit
    def test_default_page_size_within_max(self) -> None:
        """Test the default page size cannot exceed the maximum."""
        with pytest.raises(ValidationError, match="default_page_size"):
            FeedConfig(default_page_size=30, max_page_size=20)

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "segments",
        [[], [""], ["a:b"], ["crypto", "crypto"]],
    )
    def test_invalid_segments(self, segments: list[str]) -> None:
        """Test segment names must be non-empty, colon-free and unique."""
        with pytest.raises(ValidationError):
            RankingConfig(segments=segments)

    @pytest.mark.unit
    def test_key_prefix_pattern(self) -> None:
        """Test key prefixes cannot contain separators."""
        with pytest.raises(ValidationError):
            CacheConfig(key_prefix="feed:v2")


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    @pytest.mark.unit
    def test_should_retry(self) -> None:
        """Test retries stop after max_retries."""
        policy = RetryPolicy(max_retries=2)

        assert policy.should_retry(0)
        assert policy.should_retry(1)
        assert not policy.should_retry(2)

    @pytest.mark.unit
    def test_delay_grows_and_caps(self) -> None:
        """Test exponential delay is capped at max_delay_ms."""
        policy = RetryPolicy(base_delay_ms=100, max_delay_ms=500, jitter_factor=0.0)

        assert policy.get_delay_ms(0) == 100
        assert policy.get_delay_ms(1) == 200
        assert policy.get_delay_ms(5) == 500
