"""Unit tests for normalized connector output."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from marketfeed.ingestion.models import NormalizedMarket
from marketfeed.store.models import MarketSource


def _make_market(**overrides: object) -> NormalizedMarket:
    data: dict[str, object] = {
        "source": "polymarket",
        "external_id": "0xabc",
        "question": "Will the Fed cut rates in June?",
        "yes_price": 0.42,
        "no_price": 0.58,
        "volume": 125000.0,
        "liquidity": 18000.0,
        "tags": ["economics", "fed"],
    }
    data.update(overrides)
    return NormalizedMarket.model_validate(data)


class TestNormalizedMarket:
    """Tests for NormalizedMarket."""

    @pytest.mark.unit
    def test_item_id(self) -> None:
        """Test the item ID is derived from source and external ID."""
        market = _make_market()
        assert market.source is MarketSource.POLYMARKET
        assert market.item_id == "polymarket:0xabc"

    @pytest.mark.unit
    def test_unknown_source_rejected(self) -> None:
        """Test only known exchanges are accepted."""
        with pytest.raises(ValidationError):
            _make_market(source="betfair")

    @pytest.mark.unit
    def test_blank_tags_dropped(self) -> None:
        """Test tags are stripped and blanks removed."""
        market = _make_market(tags=[" crypto ", "", "  "])
        assert market.tags == ("crypto",)

    @pytest.mark.unit
    def test_naive_end_date_is_utc(self) -> None:
        """Test a naive end date is treated as UTC."""
        market = _make_market(end_date=datetime(2025, 6, 18, 18, 0))
        assert market.end_date == datetime(2025, 6, 18, 18, 0, tzinfo=UTC)

    @pytest.mark.unit
    def test_content_hash_stable(self) -> None:
        """Test equal listings hash equally."""
        assert _make_market().content_hash() == _make_market().content_hash()

    @pytest.mark.unit
    def test_content_hash_tracks_signals(self) -> None:
        """Test a signal change changes the content hash."""
        assert (
            _make_market().content_hash()
            != _make_market(liquidity=18001.0).content_hash()
        )

    @pytest.mark.unit
    def test_content_hash_tracks_category(self) -> None:
        """Test reordering tags changes the content hash."""
        assert (
            _make_market().content_hash()
            != _make_market(tags=["fed", "economics"]).content_hash()
        )

    @pytest.mark.unit
    def test_derived_fields_rejected(self) -> None:
        """Test connectors cannot supply derived scores."""
        with pytest.raises(ValidationError):
            _make_market(confidence=0.9)
