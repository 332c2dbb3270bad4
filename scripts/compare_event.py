"""Compare Polymarket outcome prices against a crypto price overlay.

Loads an event, selects the requested market sides, aligns them with the
chosen crypto's Binance candles and writes an interactive HTML chart.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from pricecompare.data import (
    FetchFailed,
    SelectionController,
    SelectionEntry,
    extract_slug,
    fetch_event_by_slug,
    make_range_fetcher,
    make_series_fetcher,
    rows_to_frame,
)
from pricecompare.viz import plot_comparison


def parse_args():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Chart Polymarket outcome prices against BTC/ETH/SOL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # YES side of every market in an event, with BTC overlay
  python scripts/compare_event.py https://polymarket.com/event/bitcoin-above-on-june-1 --crypto BTC

  # YES and NO of the first two markets, no overlay, also dump CSV
  python scripts/compare_event.py bitcoin-above-on-june-1 --markets 0,1 --sides YES,NO --csv out.csv
        """,
    )
    parser.add_argument("event", help="Polymarket event URL or slug")
    parser.add_argument(
        "--crypto",
        choices=["BTC", "ETH", "SOL", "NONE"],
        default="NONE",
        help="Crypto overlay (default: NONE)",
    )
    parser.add_argument(
        "--markets",
        type=str,
        default=None,
        help="Comma-separated market indices (default: all)",
    )
    parser.add_argument(
        "--sides",
        type=str,
        default="YES",
        help='Comma-separated sides: "YES", "NO" or "YES,NO"',
    )
    parser.add_argument("--no-sum", action="store_true", help="Hide the sum line")
    parser.add_argument("--output", type=Path, default=Path("comparison.html"), help="HTML output path")
    parser.add_argument("--csv", type=Path, default=None, help="Also write aligned rows as CSV")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args()


async def run(args) -> int:
    slug = extract_slug(args.event) or args.event
    print("=" * 70)
    print(f"EVENT: {slug}")
    print("=" * 70)

    try:
        event = await fetch_event_by_slug(slug)
    except FetchFailed as e:
        print(f"❌ Could not load event {slug}: {e.reason or e}")
        return 1
    print(f"{event.title} ({len(event.markets)} markets)")

    if args.markets:
        try:
            indices = [int(i) for i in args.markets.split(",")]
            markets = [event.markets[i] for i in indices]
        except (ValueError, IndexError):
            print(f"❌ Invalid --markets {args.markets!r}: event has {len(event.markets)} markets (0-{len(event.markets) - 1})")
            return 1
    else:
        markets = list(event.markets)
    sides = [s.strip().upper() for s in args.sides.split(",")]

    crypto = None if args.crypto == "NONE" else args.crypto
    controller = SelectionController(
        series_fetcher=make_series_fetcher,
        range_fetcher=make_range_fetcher(),
        secondary_kind=crypto,
    )

    entries = [SelectionEntry.for_market(m, side) for m in markets for side in sides]
    results = await asyncio.gather(*(controller.select(e) for e in entries))
    print(f"✓ Loaded {sum(results)}/{len(entries)} series")

    view = controller.view()
    for message in view.errors:
        print(f"❌ {message}")

    if not view.rows:
        print("No data to plot")
        return 1

    print(f"✓ {len(view.rows):,} aligned rows")
    if view.secondary_range:
        lo, hi = view.secondary_range
        print(f"  {crypto} range: ${lo:,.2f} - ${hi:,.2f}")

    fig = plot_comparison(view, show_sum=not args.no_sum, title=event.title)
    fig.write_html(str(args.output))
    print(f"✓ Chart written to {args.output}")

    if args.csv:
        rows_to_frame(list(view.rows)).to_csv(args.csv)
        print(f"✓ Rows written to {args.csv}")
    return 0


def main():
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
