"""Ranking configuration loader with environment overrides."""

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from marketfeed.config.schemas.ranking import RankingConfig
from marketfeed.errors import ConfigurationError
from marketfeed.settings import AppSettings


logger = structlog.get_logger()


@dataclass(frozen=True)
class LoadedConfig:
    """A validated ranking configuration with provenance.

    Attributes:
        config: The validated configuration.
        checksum: SHA-256 of the effective configuration.
        source: File path, or 'defaults' when no file was given.
        overrides: Names of settings taken from the environment.
    """

    config: RankingConfig
    checksum: str
    source: str
    overrides: tuple[str, ...] = ()


def format_validation_errors(error: ValidationError) -> list[dict[str, str]]:
    """Flatten a pydantic ValidationError into loc/msg/type dicts.

    Args:
        error: Validation error raised by a schema.

    Returns:
        One dict per field error.
    """
    return [
        {
            "loc": ".".join(str(loc) for loc in err["loc"]) or "root",
            "msg": err["msg"],
            "type": err["type"],
        }
        for err in error.errors()
    ]


def config_checksum(config: RankingConfig) -> str:
    """Compute a stable SHA-256 checksum of a configuration."""
    payload = json.dumps(config.model_dump(mode="json"), sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def validate_ranking_config(data: dict[str, Any], source: str) -> RankingConfig:
    """Validate raw configuration data.

    Args:
        data: Raw configuration mapping.
        source: Where the data came from, for error reporting.

    Returns:
        Validated RankingConfig.

    Raises:
        ConfigurationError: If validation fails.
    """
    try:
        return RankingConfig.model_validate(data)
    except ValidationError as e:
        errors = format_validation_errors(e)
        logger.error(
            "config_validation_failed",
            component="config",
            source=source,
            validation_error_count=len(errors),
            errors=errors,
        )
        raise ConfigurationError(errors, source) from e


def _read_yaml(path: Path) -> dict[str, Any]:
    """Read a YAML mapping from disk.

    Raises:
        ConfigurationError: If the file is missing or not a YAML mapping.
    """
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(
            [{"loc": "file", "msg": str(e), "type": "file_not_found"}], str(path)
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            [{"loc": "yaml", "msg": str(e), "type": "yaml_parse_error"}], str(path)
        ) from e

    if not isinstance(parsed, dict):
        raise ConfigurationError(
            [{"loc": "root", "msg": "Expected a mapping", "type": "yaml_type_error"}],
            str(path),
        )
    return parsed


def load_ranking_config(
    path: Path | None = None,
    settings: AppSettings | None = None,
) -> LoadedConfig:
    """Load ranking configuration from YAML and the environment.

    Environment settings take precedence over the file. Weight overrides are
    merged field by field, so a single RANKING_W* variable only replaces
    that weight; the merged weights must still sum to 1.

    Args:
        path: Optional path to ranking.yaml. Falls back to
            settings.ranking_config_path, then to built-in defaults.
        settings: Application settings (default: read from environment).

    Returns:
        LoadedConfig with the validated configuration.

    Raises:
        ConfigurationError: If the file cannot be read or validation fails.
    """
    settings = settings or AppSettings()
    if path is None and settings.ranking_config_path:
        path = Path(settings.ranking_config_path)

    log = logger.bind(component="config", phase="LOADING")

    data: dict[str, Any] = {}
    source = "defaults"
    if path is not None:
        log.info("loading_config_file", file_path=str(path))
        data = _read_yaml(path)
        source = str(path)

    overrides: list[str] = []
    if settings.scoring_strategy:
        data["strategy"] = settings.scoring_strategy
        overrides.append("strategy")

    weight_overrides = settings.weight_overrides()
    if weight_overrides:
        weights = dict(data.get("weights") or {})
        weights.update(weight_overrides)
        data["weights"] = weights
        overrides.extend(f"weights.{name}" for name in sorted(weight_overrides))

    config = validate_ranking_config(data, source)
    checksum = config_checksum(config)

    log.info(
        "config_ready",
        phase="READY",
        source=source,
        strategy=config.strategy.value,
        config_sha256=checksum,
        env_overrides=overrides,
    )

    return LoadedConfig(
        config=config,
        checksum=checksum,
        source=source,
        overrides=tuple(overrides),
    )
