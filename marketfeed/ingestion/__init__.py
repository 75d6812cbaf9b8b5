"""Market ingestion: connectors, normalized records, and the runner."""

from marketfeed.ingestion.connectors import MarketConnector, StaticConnector
from marketfeed.ingestion.models import NormalizedMarket
from marketfeed.ingestion.runner import (
    ConnectorRunResult,
    IngestionResult,
    IngestionRunner,
)


__all__ = [
    "ConnectorRunResult",
    "IngestionResult",
    "IngestionRunner",
    "MarketConnector",
    "NormalizedMarket",
    "StaticConnector",
]
