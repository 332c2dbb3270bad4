"""Nearest-neighbour alignment of primary and secondary series onto one axis."""

import logging
from bisect import bisect_left
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from pricecompare.data.models import SUM_KEY, AlignedRow, Series, Sample


logger = logging.getLogger(__name__)

# 4.5 minutes: Polymarket history is sampled at ~10 minute fidelity
DEFAULT_PRIMARY_TOLERANCE_S = 270
# Binance 5m candles are denser, so the window is tighter
DEFAULT_SECONDARY_TOLERANCE_S = 120


def nearest(series: Series, target_t: int, tolerance_s: int) -> float | None:
    """Find the price of the sample closest to ``target_t``.

    Only the sample at the insertion point and the one just before it can be
    closest. On equal distance the later sample wins.

    Args:
        series: Samples sorted ascending by ``t``
        target_t: Timestamp to match (seconds)
        tolerance_s: Maximum allowed ``|t - target_t|``

    Returns:
        Price of the nearest sample, or None if nothing is within tolerance
    """
    if not series:
        return None

    idx = bisect_left(series, target_t, key=lambda s: s.t)

    best: Sample | None = None
    best_delta = None
    for candidate_idx in (idx, idx - 1):
        if 0 <= candidate_idx < len(series):
            candidate = series[candidate_idx]
            delta = abs(candidate.t - target_t)
            if best_delta is None or delta < best_delta:
                best = candidate
                best_delta = delta

    if best is None or best_delta > tolerance_s:
        return None
    return best.p


def _nearest_many(series: Series, targets: np.ndarray, tolerance_s: int) -> np.ndarray:
    """Vectorized ``nearest`` over many targets; NaN where absent."""
    out = np.full(len(targets), np.nan)
    if not series or len(targets) == 0:
        return out

    ts = np.fromiter((s.t for s in series), dtype=np.int64, count=len(series))
    ps = np.fromiter((s.p for s in series), dtype=np.float64, count=len(series))
    n = len(ts)

    idx = np.searchsorted(ts, targets, side="left")
    right_idx = np.clip(idx, 0, n - 1)
    left_idx = np.clip(idx - 1, 0, n - 1)

    right_delta = np.where(idx < n, np.abs(ts[right_idx] - targets), np.iinfo(np.int64).max)
    left_delta = np.where(idx > 0, np.abs(ts[left_idx] - targets), np.iinfo(np.int64).max)

    use_right = right_delta <= left_delta
    chosen_idx = np.where(use_right, right_idx, left_idx)
    chosen_delta = np.where(use_right, right_delta, left_delta)

    within = chosen_delta <= tolerance_s
    out[within] = ps[chosen_idx[within]]
    return out


def build_rows(
    selected: Mapping[str, Series],
    secondary: Series = (),
    secondary_label: str | None = None,
    primary_tolerance_s: int = DEFAULT_PRIMARY_TOLERANCE_S,
    secondary_tolerance_s: int = DEFAULT_SECONDARY_TOLERANCE_S,
    expected_members: int | None = None,
) -> list[AlignedRow]:
    """Align the selected series and the optional secondary series.

    One row is produced per distinct timestamp seen in any input. Each row
    holds the nearest value of every selected series (when within
    tolerance), a ``sum`` when there are at least two selected series and all
    of them have a value, and the secondary value under ``secondary_label``.

    Args:
        selected: Series key -> primary series, in display order
        secondary: Secondary (crypto) series, empty if inactive
        secondary_label: Key for the secondary value (e.g. "BTC")
        primary_tolerance_s: Match window for primary series
        secondary_tolerance_s: Match window for the secondary series
        expected_members: Number of series that make up the sum, counting
            selections whose data has not arrived yet (default: len(selected))

    Returns:
        Rows sorted ascending by timestamp
    """
    use_secondary = bool(secondary) and secondary_label is not None

    stamps: list[int] = [s.t for series in selected.values() for s in series]
    if use_secondary:
        stamps.extend(s.t for s in secondary)
    if not stamps:
        return []

    timestamps = np.unique(np.asarray(stamps, dtype=np.int64))

    keys = list(selected.keys())
    if keys:
        matrix = np.vstack([_nearest_many(selected[k], timestamps, primary_tolerance_s) for k in keys])
        present = ~np.isnan(matrix)
        members = len(keys) if expected_members is None else expected_members
        complete = present.sum(axis=0) == members
        sums = np.where(complete, np.nansum(matrix, axis=0), np.nan) if members >= 2 else None
    else:
        matrix = present = sums = None

    secondary_values = (
        _nearest_many(secondary, timestamps, secondary_tolerance_s) if use_secondary else None
    )

    rows: list[AlignedRow] = []
    for col, ts in enumerate(timestamps):
        values: dict[str, float] = {}
        if matrix is not None:
            for row_idx, key in enumerate(keys):
                if present[row_idx, col]:
                    values[key] = float(matrix[row_idx, col])
        if sums is not None and not np.isnan(sums[col]):
            values[SUM_KEY] = float(sums[col])
        if secondary_values is not None and not np.isnan(secondary_values[col]):
            values[secondary_label] = float(secondary_values[col])
        rows.append(AlignedRow(timestamp=int(ts), values=values))

    logger.debug("Built %d aligned rows from %d series", len(rows), len(keys) + int(use_secondary))
    return rows


def union_span(series_list: Iterable[Series]) -> tuple[int, int] | None:
    """Earliest and latest timestamp across all non-empty series."""
    lo: int | None = None
    hi: int | None = None
    for series in series_list:
        if not series:
            continue
        lo = series[0].t if lo is None else min(lo, series[0].t)
        hi = series[-1].t if hi is None else max(hi, series[-1].t)
    if lo is None:
        return None
    return lo, hi


def secondary_price_range(series: Series) -> tuple[float, float] | None:
    """Min and max price of the secondary series, for its y-axis."""
    if not series:
        return None
    prices = np.fromiter((s.p for s in series), dtype=np.float64, count=len(series))
    return float(prices.min()), float(prices.max())


def rows_to_frame(rows: list[AlignedRow]) -> pd.DataFrame:
    """Convert aligned rows to a DataFrame indexed by timestamp.

    Absent values become NaN. Column order follows first appearance.
    """
    if not rows:
        return pd.DataFrame(index=pd.Index([], name="timestamp", dtype="int64"))

    df = pd.DataFrame.from_records(
        [row.values for row in rows],
        index=pd.Index([row.timestamp for row in rows], name="timestamp"),
    )
    return df.astype("float64")
