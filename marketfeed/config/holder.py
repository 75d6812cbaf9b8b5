"""Thread-safe holder for the live ranking configuration."""

import threading
from typing import Any

import structlog

from marketfeed.config.loader import config_checksum, validate_ranking_config
from marketfeed.config.schemas.ranking import RankingConfig


logger = structlog.get_logger()


def _deep_merge(base: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class ConfigHolder:
    """Holds the current immutable RankingConfig.

    Updates build and validate a complete new config, then swap the
    reference. Readers take a snapshot with `get()` and keep using it for
    the whole operation, so a rebuild never sees a half-applied update.
    """

    def __init__(self, config: RankingConfig) -> None:
        """Initialize the holder.

        Args:
            config: Initial configuration.
        """
        self._config = config
        self._lock = threading.Lock()
        self._version = 1

    def get(self) -> RankingConfig:
        """Return the current configuration snapshot."""
        with self._lock:
            return self._config

    @property
    def version(self) -> int:
        """Monotonic counter bumped on every accepted update."""
        with self._lock:
            return self._version

    def update(self, changes: dict[str, Any], source: str = "admin") -> RankingConfig:
        """Apply a partial update and swap in the validated result.

        Args:
            changes: Nested mapping of fields to change.
            source: Who requested the change, for error reporting.

        Returns:
            The new configuration.

        Raises:
            ConfigurationError: If the merged configuration is invalid. The
                current configuration is left untouched.
        """
        with self._lock:
            merged = _deep_merge(self._config.model_dump(mode="json"), changes)
            new_config = validate_ranking_config(merged, source)
            self._config = new_config
            self._version += 1
            version = self._version

        logger.info(
            "config_updated",
            component="config",
            source=source,
            config_version=version,
            changed_fields=sorted(changes),
            config_sha256=config_checksum(new_config),
        )
        return new_config
