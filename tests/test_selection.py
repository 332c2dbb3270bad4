"""Tests for SelectionController."""

import asyncio

import numpy as np
import pytest

from pricecompare.config import CompareConfig
from pricecompare.data.models import Sample, SelectionEntry
from pricecompare.data.selection import SelectionController, SessionStatus


def _entry(market_id: str, side: str = "YES") -> SelectionEntry:
    return SelectionEntry(
        key=f"{market_id}-{side}",
        market_id=market_id,
        question=f"Question {market_id}?",
        side=side,
        token_id=f"tok-{market_id}-{side}",
        start_date=0,
    )


class StubSeriesSource:
    """Serves fixed data per key, fails for keys in ``failing``."""

    def __init__(self, data: dict[str, list[tuple[int, float]]], failing=(), delay: float = 0.0, delays=None):
        self.data = data
        self.failing = set(failing)
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[str] = []

    def __call__(self, entry: SelectionEntry):
        async def fetch():
            self.calls.append(entry.key)
            await asyncio.sleep(self.delays.get(entry.key, self.delay))
            if entry.key in self.failing:
                raise RuntimeError("404")
            return [Sample(t, p) for t, p in self.data[entry.key]]

        return fetch


class StubCrypto:
    def __init__(self, fail: bool = False):
        self.calls: list[tuple[str, int, int]] = []
        self.fail = fail

    async def __call__(self, kind, start, end):
        self.calls.append((kind, start, end))
        if self.fail:
            raise RuntimeError("exchange down")
        return [Sample(t, 1000.0 + t) for t in range(start, end + 1, 300)]


def _controller(source, crypto=None, kind=None, **config_kwargs):
    return SelectionController(
        series_fetcher=source,
        range_fetcher=crypto or StubCrypto(),
        secondary_kind=kind,
        config=CompareConfig(**config_kwargs),
    )


def test_two_sides_end_to_end():
    """Two market sides align into two rows summing to one."""
    source = StubSeriesSource({
        "m1-YES": [(0, 0.2), (600, 0.25)],
        "m1-NO": [(0, 0.8), (600, 0.75)],
    })
    ctl = _controller(source)

    async def go():
        await ctl.select(_entry("m1", "YES"))
        await ctl.select(_entry("m1", "NO"))

    asyncio.run(go())

    rows = ctl.rows
    assert [r.timestamp for r in rows] == [0, 600]
    assert rows[0].values["m1-YES"] == 0.2
    assert rows[0].values["m1-NO"] == 0.8
    assert np.isclose(rows[0].values["sum"], 1.0)
    assert rows[1].values["m1-YES"] == 0.25
    assert rows[1].values["m1-NO"] == 0.75
    assert np.isclose(rows[1].values["sum"], 1.0)
    assert ctl.status == SessionStatus.READY


def test_failed_select_rolls_back_and_reports():
    """Fetch failure leaves the selection as before and names the series."""
    source = StubSeriesSource({"a-YES": [(0, 0.5)]}, failing={"b-YES"})
    ctl = _controller(source)

    async def go():
        await ctl.select(_entry("a"))
        return await ctl.select(_entry("b"))

    ok = asyncio.run(go())

    assert ok is False
    assert ctl.selected_keys == ["a-YES"]
    assert ctl.errors == ("Failed to fetch price history for Question b? (YES)",)
    assert [r.values for r in ctl.rows] == [{"a-YES": 0.5}]


def test_reselect_does_not_refetch():
    """Series stay in the store across deselect/reselect."""
    source = StubSeriesSource({"a-YES": [(0, 0.5)]})
    ctl = _controller(source)

    async def go():
        await ctl.select(_entry("a"))
        await ctl.deselect("a-YES")
        await ctl.select(_entry("a"))

    asyncio.run(go())

    assert source.calls == ["a-YES"]
    assert ctl.selected_keys == ["a-YES"]


def test_evict_on_deselect_refetches():
    """With eviction enabled, reselecting fetches again."""
    source = StubSeriesSource({"a-YES": [(0, 0.5)]})
    ctl = _controller(source, evict_on_deselect=True)

    async def go():
        await ctl.select(_entry("a"))
        await ctl.deselect("a-YES")
        await ctl.select(_entry("a"))

    asyncio.run(go())

    assert source.calls == ["a-YES", "a-YES"]


def test_deselect_during_fetch_does_not_readd():
    """A fetch finishing after deselection stores data but keeps the key out."""
    source = StubSeriesSource({"a-YES": [(0, 0.5)]}, delay=0.01)
    ctl = _controller(source)

    async def go():
        task = asyncio.create_task(ctl.select(_entry("a")))
        await asyncio.sleep(0)
        assert ctl.status == SessionStatus.LOADING
        await ctl.deselect("a-YES")
        return await task

    loaded = asyncio.run(go())

    assert loaded is False
    assert ctl.selected_keys == []
    assert "a-YES" in ctl.store
    assert ctl.rows == ()
    assert ctl.status == SessionStatus.IDLE


def test_concurrent_selects_are_independent():
    """Simultaneous selects of different keys both land."""
    source = StubSeriesSource(
        {"a-YES": [(0, 0.4)], "b-YES": [(0, 0.6)]},
        delay=0.01,
    )
    ctl = _controller(source)

    async def go():
        await asyncio.gather(ctl.select(_entry("a")), ctl.select(_entry("b")))

    asyncio.run(go())

    assert sorted(ctl.selected_keys) == ["a-YES", "b-YES"]
    assert np.isclose(ctl.rows[0].values["sum"], 1.0)


def test_secondary_covers_union_span_incrementally():
    """Adding a series that widens the span fetches only the new part."""
    source = StubSeriesSource({
        "a-YES": [(600, 0.4), (1200, 0.5)],
        "b-YES": [(0, 0.6), (1800, 0.7)],
    })
    crypto = StubCrypto()
    ctl = _controller(source, crypto, kind="BTC")

    async def go():
        await ctl.select(_entry("a"))
        await ctl.select(_entry("b"))

    asyncio.run(go())

    assert crypto.calls == [("BTC", 600, 1200), ("BTC", 0, 600), ("BTC", 1200, 1800)]
    state = ctl.range_cache.state
    assert (state.covered_min, state.covered_max) == (0, 1800)
    row_900 = next(r for r in ctl.rows if r.timestamp == 900)
    assert row_900.values["BTC"] == 1900.0


def test_deselect_last_clears_coverage():
    """Empty selection drops the secondary cache."""
    source = StubSeriesSource({"a-YES": [(0, 0.4), (600, 0.5)]})
    crypto = StubCrypto()
    ctl = _controller(source, crypto, kind="ETH")

    async def go():
        await ctl.select(_entry("a"))
        await ctl.deselect("a-YES")
        await ctl.select(_entry("a"))

    asyncio.run(go())

    assert ctl.range_cache.state.kind == "ETH"
    # Cleared on deselect, so the reselect needs a full fetch again
    assert crypto.calls == [("ETH", 0, 600), ("ETH", 0, 600)]


def test_switching_secondary_kind_refetches_full_range():
    """New crypto kind means a full fetch, never a delta."""
    source = StubSeriesSource({"a-YES": [(0, 0.4), (600, 0.5)]})
    crypto = StubCrypto()
    ctl = _controller(source, crypto, kind="BTC")

    async def go():
        await ctl.select(_entry("a"))
        await ctl.set_secondary("SOL")

    asyncio.run(go())

    assert crypto.calls == [("BTC", 0, 600), ("SOL", 0, 600)]
    assert "SOL" in ctl.rows[0].values
    assert "BTC" not in ctl.rows[0].values


def test_secondary_none_removes_overlay():
    """Turning the overlay off drops it from the rows."""
    source = StubSeriesSource({"a-YES": [(0, 0.4)]})
    ctl = _controller(source, kind="BTC")

    async def go():
        await ctl.select(_entry("a"))
        await ctl.set_secondary(None)

    asyncio.run(go())

    assert ctl.rows[0].values == {"a-YES": 0.4}
    assert ctl.range_cache.state.is_empty


def test_secondary_failure_keeps_primary_rows():
    """Crypto fetch failure is reported but market rows still build."""
    source = StubSeriesSource({"a-YES": [(0, 0.4)]})
    ctl = _controller(source, StubCrypto(fail=True), kind="BTC")

    asyncio.run(ctl.select(_entry("a")))

    assert ctl.rows[0].values == {"a-YES": 0.4}
    assert ctl.errors == ("Failed to fetch BTC price data",)
    assert ctl.range_cache.state.is_empty
    view = ctl.view()
    assert view.secondary_range is None
    assert view.loading_secondary is False


def test_toggle_and_view():
    """Toggle flips selection; view exposes labels and flags."""
    source = StubSeriesSource({"a-YES": [(0, 0.4)], "a-NO": [(0, 0.6)]})
    ctl = _controller(source, kind="BTC")

    async def go():
        assert await ctl.toggle(_entry("a", "YES")) is True
        assert await ctl.toggle(_entry("a", "NO")) is True
        assert await ctl.toggle(_entry("a", "YES")) is False

    asyncio.run(go())

    view = ctl.view()
    assert view.labels == {"a-NO": "Question a? (NO)"}
    assert not view.show_sum_toggle
    assert view.secondary_kind == "BTC"
    assert view.secondary_range == (1000.0, 1000.0)
    assert view.status == SessionStatus.READY


def test_clear_errors():
    """Errors can be dismissed."""
    source = StubSeriesSource({}, failing={"a-YES"})
    ctl = _controller(source)

    asyncio.run(ctl.select(_entry("a")))
    assert ctl.errors
    ctl.clear_errors()

    assert ctl.errors == ()
    assert ctl.status == SessionStatus.IDLE


def test_no_sum_while_a_selected_series_is_loading():
    """A member still in flight blocks the sum for every row."""
    source = StubSeriesSource(
        {"a-YES": [(0, 0.3)], "b-YES": [(0, 0.3)], "c-YES": [(0, 0.4)]},
        delays={"c-YES": 0.05},
    )
    ctl = _controller(source)

    async def go():
        tasks = [asyncio.create_task(ctl.select(_entry(m))) for m in ("a", "b", "c")]
        await asyncio.sleep(0.02)
        assert ctl.status == SessionStatus.LOADING
        assert ctl.loading_keys == ["c-YES"]
        assert ctl.rows[0].values == {"a-YES": 0.3, "b-YES": 0.3}
        await asyncio.gather(*tasks)

    asyncio.run(go())

    assert np.isclose(ctl.rows[0].values["sum"], 1.0)


def test_concurrent_selects_cover_union_with_secondary():
    """Overlapping refreshes leave the overlay covering every selection."""
    source = StubSeriesSource(
        {"a-YES": [(0, 0.4), (600, 0.5)], "b-YES": [(0, 0.6), (1800, 0.5)]},
        delay=0.01,
    )
    crypto = StubCrypto()
    ctl = _controller(source, crypto, kind="BTC")

    async def go():
        await asyncio.gather(ctl.select(_entry("a")), ctl.select(_entry("b")))

    asyncio.run(go())

    assert ctl.range_cache.state.covers(0, 1800)
    assert "BTC" in next(r for r in ctl.rows if r.timestamp == 1800).values


def test_repeated_secondary_failure_reports_once():
    """The overlay error is replaced, not stacked, on every refresh."""
    source = StubSeriesSource({"a-YES": [(0, 0.4)], "b-YES": [(0, 0.6)]})
    ctl = _controller(source, StubCrypto(fail=True), kind="BTC")

    async def go():
        await ctl.select(_entry("a"))
        await ctl.select(_entry("b"))
        await ctl.deselect("b-YES")

    asyncio.run(go())

    assert ctl.errors == ("Failed to fetch BTC price data",)


def test_secondary_error_cleared_after_recovery():
    """A later successful overlay fetch drops the stale error."""
    source = StubSeriesSource({"a-YES": [(0, 0.4)], "b-YES": [(0, 0.6)]})
    crypto = StubCrypto(fail=True)
    ctl = _controller(source, crypto, kind="BTC")

    async def go():
        await ctl.select(_entry("a"))
        crypto.fail = False
        await ctl.select(_entry("b"))

    asyncio.run(go())

    assert ctl.errors == ()
    assert "BTC" in ctl.rows[0].values


def test_evict_on_deselect_during_fetch():
    """With eviction on, a series landing after deselection is dropped."""
    source = StubSeriesSource({"a-YES": [(0, 0.5)]}, delay=0.01)
    ctl = _controller(source, evict_on_deselect=True)

    async def go():
        task = asyncio.create_task(ctl.select(_entry("a")))
        await asyncio.sleep(0)
        await ctl.deselect("a-YES")
        await task
        await ctl.select(_entry("a"))

    asyncio.run(go())

    assert source.calls == ["a-YES", "a-YES"]
    assert ctl.selected_keys == ["a-YES"]
