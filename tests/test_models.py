"""Tests for core data types and config."""

import pytest

from pricecompare.config import CompareConfig, get_config, set_config
from pricecompare.data.errors import FetchFailed, InvalidRange
from pricecompare.data.models import (
    CoverageState,
    ParsedMarket,
    Sample,
    SelectionEntry,
    bet_key,
    normalize_series,
)


def test_normalize_series_keeps_first_per_timestamp():
    """Stable sort, first occurrence wins."""
    series = normalize_series([Sample(2, 0.2), Sample(1, 0.1), Sample(2, 0.9)])

    assert series == (Sample(1, 0.1), Sample(2, 0.2))


def test_coverage_state_covers():
    """Coverage checks are inclusive at both ends."""
    state = CoverageState(kind="BTC", covered_min=100, covered_max=200)

    assert state.covers(100, 200)
    assert state.covers(150, 160)
    assert not state.covers(50, 200)
    assert not CoverageState().covers(0, 0)


def test_selection_entry_for_market():
    """Entries pick the token of the chosen side."""
    market = ParsedMarket(
        id="m1",
        question="Will BTC close above 100k?",
        group_item_title="100k",
        group_item_threshold=100000.0,
        start_date=10,
        end_date=20,
        yes_token_id="y",
        no_token_id="n",
    )

    entry = SelectionEntry.for_market(market, "NO")

    assert entry.key == bet_key("m1", "NO") == "m1-NO"
    assert entry.token_id == "n"
    assert entry.label == "100k (NO)"


def test_errors():
    """Error types carry their context."""
    err = FetchFailed("m1-YES", "timeout")
    assert "m1-YES" in str(err)
    assert isinstance(InvalidRange(2, 1), ValueError)


def test_config_validate():
    """Nonsensical settings are rejected."""
    with pytest.raises(ValueError):
        CompareConfig(fidelity_minutes=0).validate()
    with pytest.raises(ValueError):
        CompareConfig(secondary_tolerance_s=-1).validate()


def test_set_config():
    """Global config can be swapped."""
    original = get_config()
    custom = CompareConfig(primary_tolerance_s=300)
    set_config(custom)
    try:
        assert get_config().primary_tolerance_s == 300
        assert get_config().symbol_for_crypto("eth") == "ETHUSDT"
    finally:
        set_config(original)
