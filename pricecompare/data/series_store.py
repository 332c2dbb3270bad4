"""Per-key memoized storage of primary (prediction-market) series."""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from pricecompare.data.errors import FetchFailed
from pricecompare.data.models import Sample, Series, normalize_series


logger = logging.getLogger(__name__)

SeriesFetcher = Callable[[], Awaitable[Iterable[Sample]]]


class SeriesStore:
    """Holds the sorted sample list of every primary series fetched so far.

    Each key is fetched at most once for the life of the store. Entries are
    kept after deselection; call :meth:`evict` to drop one explicitly.
    Concurrent requests for the same key share a single in-flight fetch.
    """

    def __init__(self):
        self._series: dict[str, Series] = {}
        self._pending: dict[str, asyncio.Task] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._series

    def __len__(self) -> int:
        return len(self._series)

    def get(self, key: str) -> Series | None:
        return self._series.get(key)

    def snapshot(self) -> dict[str, Series]:
        """Copy of the key -> series map (series themselves are immutable)."""
        return dict(self._series)

    def is_loading(self, key: str) -> bool:
        return key in self._pending

    async def request(self, key: str, fetch: SeriesFetcher) -> Series:
        """Return the series for ``key``, fetching it only if not yet stored.

        Args:
            key: Series key
            fetch: Zero-argument coroutine function returning the samples

        Returns:
            Series sorted ascending by ``t`` without duplicate timestamps

        Raises:
            FetchFailed: If the upstream fetch fails
        """
        if key in self._series:
            logger.debug("Series %s served from store", key)
            return self._series[key]

        task = self._pending.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, fetch))
            self._pending[key] = task
            task.add_done_callback(lambda _t, k=key: self._pending.pop(k, None))
        return await asyncio.shield(task)

    async def _load(self, key: str, fetch: SeriesFetcher) -> Series:
        logger.debug("Fetching series %s", key)
        try:
            samples = await fetch()
        except Exception as e:
            logger.warning("Fetch for series %s failed: %s", key, e)
            reason = e.reason if isinstance(e, FetchFailed) else str(e)
            raise FetchFailed(key, reason) from e

        series = normalize_series(samples)
        self._series[key] = series
        logger.debug("Stored %d samples for %s", len(series), key)
        return series

    def evict(self, key: str) -> bool:
        """Drop a stored series. Returns True if something was removed."""
        return self._series.pop(key, None) is not None

    def clear(self) -> None:
        self._series.clear()
