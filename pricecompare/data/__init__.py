"""Series storage, range caching, alignment and upstream loaders."""

from pricecompare.data.alignment import (
    DEFAULT_PRIMARY_TOLERANCE_S,
    DEFAULT_SECONDARY_TOLERANCE_S,
    build_rows,
    nearest,
    rows_to_frame,
    secondary_price_range,
    union_span,
)
from pricecompare.data.errors import CompareError, FetchFailed, InvalidRange
from pricecompare.data.loaders import (
    extract_slug,
    fetch_crypto_price_history,
    fetch_event_by_slug,
    fetch_price_history,
    make_range_fetcher,
    make_series_fetcher,
    parse_markets,
)
from pricecompare.data.models import (
    AlignedRow,
    CoverageState,
    ParsedMarket,
    PolymarketEvent,
    Sample,
    SelectionEntry,
    Series,
    bet_key,
    normalize_series,
)
from pricecompare.data.range_cache import RangeCache
from pricecompare.data.selection import ChartView, SelectionController, SessionStatus
from pricecompare.data.series_store import SeriesStore

__all__ = [
    # Alignment
    "DEFAULT_PRIMARY_TOLERANCE_S",
    "DEFAULT_SECONDARY_TOLERANCE_S",
    "build_rows",
    "nearest",
    "rows_to_frame",
    "secondary_price_range",
    "union_span",
    # Errors
    "CompareError",
    "FetchFailed",
    "InvalidRange",
    # Loaders
    "extract_slug",
    "fetch_crypto_price_history",
    "fetch_event_by_slug",
    "fetch_price_history",
    "make_range_fetcher",
    "make_series_fetcher",
    "parse_markets",
    # Models
    "AlignedRow",
    "CoverageState",
    "ParsedMarket",
    "PolymarketEvent",
    "Sample",
    "SelectionEntry",
    "Series",
    "bet_key",
    "normalize_series",
    # Stateful components
    "RangeCache",
    "SeriesStore",
    "SelectionController",
    "ChartView",
    "SessionStatus",
]
