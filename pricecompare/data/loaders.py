"""Upstream loaders for Polymarket (gamma + CLOB) and Binance klines."""

import json
import logging
import re
from datetime import datetime
from typing import Callable

import httpx

from pricecompare.config import get_config
from pricecompare.data.errors import FetchFailed
from pricecompare.data.models import (
    ParsedMarket,
    PolymarketEvent,
    Sample,
    SelectionEntry,
    Series,
    normalize_series,
)


logger = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]

_SLUG_RE = re.compile(r"^https?://(?:www\.)?polymarket\.com/event/([a-zA-Z0-9-]+)/?.*$")

# Binance kline row layout: [open_time, open, high, low, close, volume, close_time, ...]
_KLINE_OPEN_TIME = 0
_KLINE_CLOSE = 4


def _default_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=get_config().http_timeout)


def _iso_to_seconds(value) -> int:
    """Parse an ISO 8601 string (or pass through a number) to unix seconds."""
    if isinstance(value, (int, float)):
        return int(value)
    dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return int(dt.timestamp())


def extract_slug(url: str) -> str | None:
    """Extract the event slug from a polymarket.com event URL."""
    match = _SLUG_RE.match(url.strip())
    return match.group(1) if match else None


def _market_sort_key(market: ParsedMarket):
    # Thresholds first, then group title, then question
    if market.group_item_threshold:
        return (0, market.group_item_threshold, "")
    if market.group_item_title:
        return (1, 0.0, market.group_item_title)
    return (2, 0.0, market.question)


def parse_markets(raw_markets: list[dict]) -> list[ParsedMarket]:
    """Turn gamma market payloads into ParsedMarket objects.

    ``clobTokenIds`` arrives as a JSON-encoded list: ``[yes_token, no_token]``.
    """
    markets = []
    for raw in raw_markets:
        token_ids = raw.get("clobTokenIds") or "[]"
        if isinstance(token_ids, str):
            token_ids = json.loads(token_ids)
        if len(token_ids) < 2:
            raise ValueError(f"Market {raw.get('id')} has fewer than two token ids")
        markets.append(ParsedMarket(
            id=str(raw["id"]),
            question=raw.get("question", ""),
            group_item_title=raw.get("groupItemTitle") or "",
            group_item_threshold=float(raw.get("groupItemThreshold") or 0.0),
            start_date=_iso_to_seconds(raw["startDate"]),
            end_date=_iso_to_seconds(raw["endDate"]),
            yes_token_id=str(token_ids[0]),
            no_token_id=str(token_ids[1]),
        ))
    return sorted(markets, key=_market_sort_key)


async def fetch_event_by_slug(
    slug: str,
    client_factory: ClientFactory | None = None,
) -> PolymarketEvent:
    """Load an event and its markets from the gamma API.

    Raises:
        FetchFailed: On transport errors or malformed payloads
    """
    config = get_config()
    factory = client_factory or _default_client_factory
    try:
        async with factory() as client:
            response = await client.get(f"{config.gamma_api_base}/events/slug/{slug}")
            response.raise_for_status()
            data = response.json()
        return PolymarketEvent(
            id=str(data["id"]),
            slug=data.get("slug", slug),
            title=data.get("title", ""),
            description=data.get("description", ""),
            start_date=_iso_to_seconds(data["startDate"]),
            end_date=_iso_to_seconds(data["endDate"]),
            markets=tuple(parse_markets(data.get("markets", []))),
        )
    except (httpx.HTTPError, KeyError, ValueError) as e:
        raise FetchFailed(slug, str(e)) from e


async def fetch_price_history(
    token_id: str,
    start_ts: int,
    fidelity: int | None = None,
    client_factory: ClientFactory | None = None,
) -> Series:
    """Load price history for one outcome token from the CLOB API.

    Args:
        token_id: CLOB token id
        start_ts: Start of history (unix seconds)
        fidelity: Sampling interval in minutes (default from config)
        client_factory: Override for the httpx client (tests)

    Returns:
        Series sorted ascending by timestamp
    """
    config = get_config()
    factory = client_factory or _default_client_factory
    params = {
        "market": token_id,
        "startTs": str(start_ts),
        "fidelity": fidelity or config.fidelity_minutes,
    }
    try:
        async with factory() as client:
            response = await client.get(f"{config.clob_api_base}/prices-history", params=params)
            response.raise_for_status()
            data = response.json()
        history = data.get("history", [])
        samples = [Sample(t=int(point["t"]), p=float(point["p"])) for point in history]
    except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
        raise FetchFailed(token_id, str(e)) from e

    logger.debug("Loaded %d price points for token %s", len(samples), token_id)
    return normalize_series(samples)


async def fetch_crypto_price_history(
    crypto: str,
    start_s: int,
    end_s: int,
    client_factory: ClientFactory | None = None,
) -> Series:
    """Load candle close prices for a crypto over ``[start_s, end_s]``.

    Binance returns at most ``kline_page_limit`` candles per request, so the
    range is paged: each page starts one minute after the last candle seen.

    Args:
        crypto: "BTC", "ETH" or "SOL"
        start_s: Range start (unix seconds)
        end_s: Range end (unix seconds)
        client_factory: Override for the httpx client (tests)

    Returns:
        Series of candle open times (seconds) with close prices
    """
    config = get_config()
    symbol = config.symbol_for_crypto(crypto)
    factory = client_factory or _default_client_factory

    samples: list[Sample] = []
    cursor_ms = start_s * 1000
    end_ms = end_s * 1000
    pages = 0

    try:
        async with factory() as client:
            while cursor_ms < end_ms:
                response = await client.get(
                    f"{config.binance_api_base}/klines",
                    params={
                        "symbol": symbol,
                        "interval": config.kline_interval,
                        "startTime": cursor_ms,
                        "endTime": end_ms,
                        "limit": config.kline_page_limit,
                    },
                )
                response.raise_for_status()
                klines = response.json()
                pages += 1
                if not isinstance(klines, list) or not klines:
                    break

                for kline in klines:
                    samples.append(Sample(
                        t=int(kline[_KLINE_OPEN_TIME]) // 1000,
                        p=float(kline[_KLINE_CLOSE]),
                    ))

                last_open_ms = int(klines[-1][_KLINE_OPEN_TIME])
                cursor_ms = last_open_ms + 60_000
    except (httpx.HTTPError, IndexError, TypeError, ValueError) as e:
        raise FetchFailed((crypto, start_s, end_s), str(e)) from e

    logger.debug("Loaded %d %s candles in %d pages", len(samples), symbol, pages)
    return normalize_series(samples)


def make_series_fetcher(entry: SelectionEntry, client_factory: ClientFactory | None = None):
    """Bind a selection to a zero-argument fetch for SeriesStore.request."""

    async def fetch() -> Series:
        return await fetch_price_history(
            entry.token_id,
            entry.start_date,
            client_factory=client_factory,
        )

    return fetch


def make_range_fetcher(client_factory: ClientFactory | None = None):
    """Build a RangeCache fetch function backed by Binance klines."""

    async def fetch(kind: str, start_s: int, end_s: int) -> Series:
        return await fetch_crypto_price_history(kind, start_s, end_s, client_factory=client_factory)

    return fetch
