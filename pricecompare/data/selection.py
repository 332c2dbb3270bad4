"""SelectionController: ties selections, the series store, the range cache and alignment together."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from pricecompare.config import CompareConfig, get_config
from pricecompare.data.alignment import build_rows, secondary_price_range, union_span
from pricecompare.data.errors import CompareError, FetchFailed
from pricecompare.data.models import AlignedRow, SelectionEntry
from pricecompare.data.range_cache import RangeCache, RangeFetcher
from pricecompare.data.series_store import SeriesFetcher, SeriesStore


logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class ChartView:
    """Everything the renderer needs, as one immutable snapshot."""

    rows: tuple[AlignedRow, ...]
    selected: tuple[SelectionEntry, ...]
    loading: tuple[str, ...]
    loading_secondary: bool
    errors: tuple[str, ...]
    secondary_kind: str | None
    secondary_range: tuple[float, float] | None
    status: SessionStatus

    @property
    def labels(self) -> dict[str, str]:
        return {entry.key: entry.label for entry in self.selected}

    @property
    def show_sum_toggle(self) -> bool:
        return len(self.selected) > 1


class SelectionController:
    """Tracks the selected primary series and keeps the aligned rows current.

    Every state change ends in :meth:`refresh`, which widens the secondary
    coverage to the union span of the loaded selections and rebuilds all
    rows. Refreshes are serialized by a lock and read copies of the store
    and cache, so a rebuild never sees a half-applied update.

    Args:
        series_fetcher: Builds the fetch coroutine function for a selection
        range_fetcher: ``fetch(kind, start_s, end_s)`` for the secondary series
        secondary_kind: Initial crypto overlay ("BTC", ...), or None
        config: Overrides the global config
    """

    def __init__(
        self,
        series_fetcher: Callable[[SelectionEntry], SeriesFetcher],
        range_fetcher: RangeFetcher,
        secondary_kind: str | None = None,
        config: CompareConfig | None = None,
    ):
        self.config = config or get_config()
        self.store = SeriesStore()
        self.range_cache = RangeCache(range_fetcher)
        self._series_fetcher = series_fetcher
        self._secondary_kind = secondary_kind
        self._selected: dict[str, SelectionEntry] = {}
        self._rows: tuple[AlignedRow, ...] = ()
        self._errors: list[str] = []
        # Latest overlay failure; replaced rather than appended on each refresh
        self._secondary_error: str | None = None
        self._loading_secondary = False
        self._secondary_ok = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def secondary_kind(self) -> str | None:
        return self._secondary_kind

    @property
    def selected_keys(self) -> list[str]:
        return list(self._selected)

    @property
    def rows(self) -> tuple[AlignedRow, ...]:
        return self._rows

    @property
    def errors(self) -> tuple[str, ...]:
        if self._secondary_error is None:
            return tuple(self._errors)
        return (*self._errors, self._secondary_error)

    @property
    def loading_keys(self) -> list[str]:
        """Selected keys whose series has not arrived yet."""
        return [key for key in self._selected if key not in self.store]

    @property
    def status(self) -> SessionStatus:
        if not self._selected:
            return SessionStatus.IDLE
        if self.loading_keys:
            return SessionStatus.LOADING
        return SessionStatus.READY

    def is_selected(self, key: str) -> bool:
        return key in self._selected

    def clear_errors(self) -> None:
        self._errors.clear()
        self._secondary_error = None

    def view(self) -> ChartView:
        secondary = self.range_cache.series if self._secondary_ok else ()
        return ChartView(
            rows=self._rows,
            selected=tuple(self._selected.values()),
            loading=tuple(self.loading_keys),
            loading_secondary=self._loading_secondary,
            errors=self.errors,
            secondary_kind=self._secondary_kind,
            secondary_range=secondary_price_range(secondary),
            status=self.status,
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def select(self, entry: SelectionEntry) -> bool:
        """Select a primary series, fetching it on first use.

        Returns:
            True if the series is selected and loaded afterwards
        """
        key = entry.key
        if key in self._selected:
            return key in self.store

        self._selected[key] = entry
        try:
            await self.store.request(key, self._series_fetcher(entry))
        except FetchFailed as e:
            logger.warning("Rolling back selection of %s: %s", key, e)
            # Only roll back our own entry; a deselect may already have removed it
            if self._selected.get(key) is entry:
                del self._selected[key]
            self._errors.append(f"Failed to fetch price history for {entry.question} ({entry.side})")
            await self.refresh()
            return False

        loaded = key in self._selected
        if not loaded:
            logger.debug("Series %s arrived after deselection", key)
            if self.config.evict_on_deselect:
                self.store.evict(key)
        await self.refresh()
        return loaded

    async def deselect(self, key: str) -> None:
        """Remove a selection; clears the secondary coverage when none remain."""
        if self._selected.pop(key, None) is None:
            return
        if self.config.evict_on_deselect:
            self.store.evict(key)
        if not self._selected:
            self.range_cache.reset(self._secondary_kind)
        await self.refresh()

    async def toggle(self, entry: SelectionEntry) -> bool:
        """Deselect if selected, otherwise select. Returns the new selected state."""
        if entry.key in self._selected:
            await self.deselect(entry.key)
            return False
        return await self.select(entry)

    async def set_secondary(self, kind: str | None) -> None:
        """Switch the crypto overlay; coverage of the old kind is discarded."""
        if kind == self._secondary_kind:
            return
        self._secondary_kind = kind
        self.range_cache.reset(kind)
        await self.refresh()

    async def refresh(self) -> tuple[AlignedRow, ...]:
        """Bring secondary coverage up to date and rebuild all rows."""
        async with self._lock:
            kind = self._secondary_kind
            span = union_span(
                series for key in self._selected
                if (series := self.store.get(key)) is not None
            )

            secondary_ok = False
            if kind is None or span is None:
                self._secondary_error = None
                self.range_cache.reset(kind)
            else:
                self._loading_secondary = True
                try:
                    await self.range_cache.ensure_covered(kind, span[0], span[1])
                    secondary_ok = True
                    self._secondary_error = None
                except CompareError as e:
                    logger.warning("Secondary series %s unavailable: %s", kind, e)
                    self._secondary_error = f"Failed to fetch {kind} price data"
                finally:
                    self._loading_secondary = False

            # Snapshot both sources with no await in between
            selected = {
                key: series for key in self._selected
                if (series := self.store.get(key)) is not None
            }
            secondary = self.range_cache.series if secondary_ok else ()

            self._secondary_ok = secondary_ok
            self._rows = tuple(build_rows(
                selected,
                secondary,
                kind,
                primary_tolerance_s=self.config.primary_tolerance_s,
                secondary_tolerance_s=self.config.secondary_tolerance_s,
                # Selections still loading count too, so no partial sums
                expected_members=len(self._selected),
            ))
            return self._rows
