"""Market connectors.

Exchange wire protocols live outside this package; a connector only has to
turn whatever it fetches into NormalizedMarket records.
"""

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
import yaml
from pydantic import ValidationError

from marketfeed.errors import ConfigurationError
from marketfeed.ingestion.models import NormalizedMarket
from marketfeed.store.models import MarketSource


logger = structlog.get_logger()


@runtime_checkable
class MarketConnector(Protocol):
    """Protocol for market sources."""

    @property
    def name(self) -> str:
        """Connector name used in logs and results."""
        ...

    def fetch(self) -> list[NormalizedMarket]:
        """Fetch the current listings.

        Returns:
            Normalized markets. Raising is allowed; the runner isolates the
            failure to this connector.
        """
        ...


class StaticConnector:
    """Connector that serves a fixed list of markets.

    Used for seeding a local store and in tests.
    """

    def __init__(
        self, markets: Iterable[NormalizedMarket], name: str = "static"
    ) -> None:
        """Initialize the connector.

        Args:
            markets: Markets to serve on every fetch.
            name: Connector name.
        """
        self._markets = list(markets)
        self._name = name

    @property
    def name(self) -> str:
        """Connector name."""
        return self._name

    def fetch(self) -> list[NormalizedMarket]:
        """Return the configured markets."""
        return list(self._markets)

    @classmethod
    def from_records(
        cls,
        records: Iterable[dict[str, Any]],
        name: str = "static",
        default_source: MarketSource = MarketSource.MOCK,
    ) -> "StaticConnector":
        """Build a connector from plain mappings.

        Args:
            records: Market mappings; `source` defaults to `default_source`.
            name: Connector name.
            default_source: Source used when a record has none.

        Raises:
            ConfigurationError: If any record fails validation.
        """
        markets: list[NormalizedMarket] = []
        errors: list[dict[str, str]] = []
        for index, record in enumerate(records):
            try:
                markets.append(
                    NormalizedMarket.model_validate(
                        {"source": default_source.value, **record}
                    )
                )
            except ValidationError as e:
                errors.extend(
                    {
                        "loc": f"[{index}]." + ".".join(str(p) for p in err["loc"]),
                        "msg": err["msg"],
                        "type": err["type"],
                    }
                    for err in e.errors()
                )
        if errors:
            raise ConfigurationError(errors, source=name)
        return cls(markets, name=name)

    @classmethod
    def from_file(cls, path: Path | str) -> "StaticConnector":
        """Load markets from a JSON or YAML file.

        The file holds either a list of market mappings or a mapping with a
        `markets` list.

        Args:
            path: File to read; `.json` is parsed as JSON, anything else as YAML.

        Raises:
            ConfigurationError: If the file is missing, unparsable, or holds
                invalid markets.
        """
        path = Path(path)
        source = str(path)
        if not path.exists():
            raise ConfigurationError(
                [{"loc": "file", "msg": "File not found", "type": "file_not_found"}],
                source=source,
            )

        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(
                [{"loc": "file", "msg": str(e), "type": "parse_error"}], source=source
            ) from e

        if isinstance(data, dict):
            data = data.get("markets", [])
        if not isinstance(data, list):
            raise ConfigurationError(
                [
                    {
                        "loc": "markets",
                        "msg": "Expected a list of markets",
                        "type": "type_error",
                    }
                ],
                source=source,
            )

        connector = cls.from_records(data, name=path.stem)
        logger.info("static_markets_loaded", path=source, count=len(connector._markets))
        return connector
