"""Prediction-market vs. crypto price comparison.

Aligns Polymarket outcome prices and an optional Binance price overlay on a
shared timeline, with an incremental cache for the overlay series.
"""

from pricecompare.data.alignment import build_rows, nearest
from pricecompare.data.selection import ChartView, SelectionController

__version__ = "0.1.0"
__all__ = [
    "build_rows",
    "nearest",
    "ChartView",
    "SelectionController",
]
