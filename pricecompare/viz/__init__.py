"""Visualization of aligned comparison rows."""

from pricecompare.viz.timeseries import plot_comparison

__all__ = ["plot_comparison"]
