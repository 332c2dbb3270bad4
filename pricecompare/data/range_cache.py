"""Incremental range cache for the secondary (crypto) series."""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable

from pricecompare.data.errors import FetchFailed, InvalidRange
from pricecompare.data.models import CoverageState, Sample, Series, normalize_series


logger = logging.getLogger(__name__)

# fetch(kind, start_s, end_s) -> samples for [start_s, end_s]
RangeFetcher = Callable[[str, int, int], Awaitable[Iterable[Sample]]]


class RangeCache:
    """Tracks the contiguous interval already fetched for one secondary kind.

    All mutation goes through :meth:`ensure_covered` and :meth:`reset`.
    Readers get an immutable :class:`CoverageState` from :attr:`state`.
    """

    def __init__(self, fetch: RangeFetcher):
        self._fetch = fetch
        self._state = CoverageState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CoverageState:
        return self._state

    @property
    def series(self) -> Series:
        return self._state.series

    def reset(self, kind: str | None = None) -> None:
        """Forget all coverage, optionally switching to a new kind."""
        if not self._state.is_empty:
            logger.debug("Resetting coverage for %s", self._state.kind)
        self._state = CoverageState(kind=kind)

    async def ensure_covered(self, kind: str, requested_min: int, requested_max: int) -> None:
        """Extend coverage so it includes ``[requested_min, requested_max]``.

        Only the parts not yet covered are fetched; the (at most two) missing
        sub-ranges are fetched concurrently. On failure the state is left
        exactly as it was. Overlapping calls are serialized, so each one sees
        the coverage committed by the previous one. If :meth:`reset` runs
        while a fetch is in flight, the result is discarded and the request
        is retried; if the kind was switched meanwhile the request is
        obsolete and returns without committing.

        Raises:
            InvalidRange: If ``requested_min > requested_max``
            FetchFailed: If any sub-range fetch fails
        """
        if requested_min > requested_max:
            raise InvalidRange(requested_min, requested_max)

        async with self._lock:
            if kind != self._state.kind:
                self.reset(kind)

            if self._state.covers(requested_min, requested_max):
                logger.debug("Cache hit for %s [%d, %d]", kind, requested_min, requested_max)
                return

            while not self._state.covers(requested_min, requested_max):
                state = self._state
                new_state = await self._extend(state, kind, requested_min, requested_max)
                if self._state is state:
                    self._state = new_state
                elif self._state.kind != kind:
                    logger.debug("Discarding fetch result for %s: kind switched to %s", kind, self._state.kind)
                    return
                else:
                    logger.debug("Coverage for %s reset during fetch, retrying", kind)

    async def _extend(
        self,
        state: CoverageState,
        kind: str,
        requested_min: int,
        requested_max: int,
    ) -> CoverageState:
        if state.is_empty:
            logger.debug("Full fetch of %s [%d, %d]", kind, requested_min, requested_max)
            (samples,) = await self._fetch_ranges(kind, [(requested_min, requested_max)])
            return CoverageState(
                kind=kind,
                covered_min=requested_min,
                covered_max=requested_max,
                series=normalize_series(samples),
            )

        deltas = []
        if requested_min < state.covered_min:
            deltas.append((requested_min, state.covered_min))
        if requested_max > state.covered_max:
            deltas.append((state.covered_max, requested_max))

        logger.debug("Delta fetch of %s: %s", kind, deltas)
        fetched = await self._fetch_ranges(kind, deltas)

        merged: list[Sample] = list(state.series)
        for samples in fetched:
            merged.extend(samples)

        return CoverageState(
            kind=kind,
            covered_min=min(state.covered_min, requested_min),
            covered_max=max(state.covered_max, requested_max),
            series=normalize_series(merged),
        )

    async def _fetch_ranges(self, kind: str, ranges: list[tuple[int, int]]) -> list[list[Sample]]:
        async def fetch_one(start: int, end: int) -> list[Sample]:
            try:
                return list(await self._fetch(kind, start, end))
            except FetchFailed:
                raise
            except Exception as e:
                logger.warning("Fetch of %s [%d, %d] failed: %s", kind, start, end, e)
                raise FetchFailed((kind, start, end), str(e)) from e

        return list(await asyncio.gather(*(fetch_one(start, end) for start, end in ranges)))
