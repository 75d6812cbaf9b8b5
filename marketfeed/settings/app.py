"""Application settings powered by Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, env_file=".env", env_file_encoding="utf-8"
    )

    db_path: str = Field(default="marketfeed.db", validation_alias="MARKETFEED_DB_PATH")
    redis_url: str | None = Field(default=None, validation_alias="REDIS_URL")
    ranking_config_path: str | None = Field(
        default=None, validation_alias="RANKING_CONFIG_PATH"
    )
    scoring_strategy: str | None = Field(
        default=None, validation_alias="SCORING_STRATEGY"
    )
    w1_liquidity: float | None = Field(
        default=None, validation_alias="RANKING_W1_LIQUIDITY"
    )
    w2_volume: float | None = Field(default=None, validation_alias="RANKING_W2_VOLUME")
    w3_drift: float | None = Field(default=None, validation_alias="RANKING_W3_DRIFT")
    w4_social: float | None = Field(default=None, validation_alias="RANKING_W4_SOCIAL")
    w5_time: float | None = Field(default=None, validation_alias="RANKING_W5_TIME")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")

    def weight_overrides(self) -> dict[str, float]:
        """Return weight overrides that are set in the environment."""
        weights = {
            "w1_liquidity": self.w1_liquidity,
            "w2_volume": self.w2_volume,
            "w3_drift": self.w3_drift,
            "w4_social": self.w4_social,
            "w5_time": self.w5_time,
        }
        return {name: value for name, value in weights.items() if value is not None}


def get_settings() -> AppSettings:
    """Get a settings instance."""
    return AppSettings()
