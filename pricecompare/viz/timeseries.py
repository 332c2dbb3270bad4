"""Dual-axis chart of market prices against a crypto overlay."""

import pandas as pd
import plotly.graph_objects as go
from plotly.subplots import make_subplots

from pricecompare.data.alignment import rows_to_frame
from pricecompare.data.models import SUM_KEY
from pricecompare.data.selection import ChartView


# Color palette
SIDE_COLORS = {
    "YES": "#22c55e",  # Green
    "NO": "#ef4444",   # Red
}
CRYPTO_COLORS = {
    "BTC": "#f7931a",
    "ETH": "#627eea",
    "SOL": "#9945ff",
}
SUM_COLOR = "#00d1ff"


def _ts_to_datetime(ts_s: pd.Index) -> pd.DatetimeIndex:
    """Convert second timestamps to datetime."""
    return pd.to_datetime(ts_s, unit="s", utc=True)


def plot_comparison(
    view: ChartView,
    show_sum: bool = True,
    show_secondary: bool = True,
    title: str | None = None,
    height: int = 600,
) -> go.Figure:
    """Plot selected market prices (left axis) and the crypto price (right axis).

    Args:
        view: Snapshot from SelectionController.view()
        show_sum: Draw the cross-series sum when more than one series is selected
        show_secondary: Draw the crypto overlay when present
        title: Chart title
        height: Chart height in pixels

    Returns:
        Plotly Figure
    """
    df = rows_to_frame(list(view.rows))

    if df.empty:
        fig = go.Figure()
        fig.add_annotation(text="No bets selected", x=0.5, y=0.5, showarrow=False)
        return fig

    x = _ts_to_datetime(df.index)

    fig = make_subplots(rows=1, cols=1, specs=[[{"secondary_y": True}]])

    for entry in view.selected:
        if entry.key not in df.columns:
            continue
        fig.add_trace(
            go.Scatter(
                x=x,
                y=df[entry.key],
                name=entry.label,
                line=dict(color=SIDE_COLORS.get(entry.side, "#888888"), width=1.5),
                connectgaps=True,
                hovertemplate=f"{entry.label}: %{{y:.3f}}<br>%{{x}}<extra></extra>",
            ),
            secondary_y=False,
        )

    if show_sum and view.show_sum_toggle and SUM_KEY in df.columns:
        fig.add_trace(
            go.Scatter(
                x=x,
                y=df[SUM_KEY],
                name="Sum",
                line=dict(color=SUM_COLOR, width=2, dash="dash"),
                hovertemplate="sum: %{y:.3f}<br>%{x}<extra></extra>",
            ),
            secondary_y=False,
        )

    kind = view.secondary_kind
    if show_secondary and kind is not None and kind in df.columns:
        fig.add_trace(
            go.Scatter(
                x=x,
                y=df[kind],
                name=kind,
                line=dict(color=CRYPTO_COLORS.get(kind, "#888888"), width=2, dash="dot"),
                connectgaps=True,
                hovertemplate=f"{kind}: $%{{y:,.2f}}<br>%{{x}}<extra></extra>",
            ),
            secondary_y=True,
        )
        if view.secondary_range is not None:
            lo, hi = view.secondary_range
            pad = (hi - lo) * 0.05 or hi * 0.01
            fig.update_yaxes(range=[lo - pad, hi + pad], secondary_y=True)
        fig.update_yaxes(title_text=f"{kind} (USD)", secondary_y=True)

    market_max = df.drop(columns=[kind], errors="ignore").max().max()
    fig.update_yaxes(title_text="Price", range=[0, max(1.0, market_max)], secondary_y=False)
    fig.update_layout(
        title=title or "Market prices",
        height=height,
        hovermode="x unified",
        template="plotly_dark",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    )
    return fig
