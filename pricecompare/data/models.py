"""Core data types: samples, series, selections and aligned rows."""

from dataclasses import dataclass, field
from typing import Iterable, Literal


Side = Literal["YES", "NO"]

SUM_KEY = "sum"


@dataclass(frozen=True)
class Sample:
    """One observed price at one instant."""

    t: int  # unix seconds
    p: float


# A series is an ascending, duplicate-free tuple of samples
Series = tuple[Sample, ...]

EMPTY_SERIES: Series = ()


def normalize_series(samples: Iterable[Sample]) -> Series:
    """Sort samples by timestamp and keep the first sample per timestamp.

    The sort is stable, so when two inputs share a timestamp the one that
    appears first in ``samples`` wins.
    """
    ordered = sorted(samples, key=lambda s: s.t)
    result: list[Sample] = []
    for sample in ordered:
        if result and result[-1].t == sample.t:
            continue
        result.append(sample)
    return tuple(result)


def bet_key(market_id: str, side: Side) -> str:
    """Build the series key for one side of a market."""
    return f"{market_id}-{side}"


@dataclass(frozen=True)
class ParsedMarket:
    """A market with its YES/NO token ids resolved."""

    id: str
    question: str
    group_item_title: str
    group_item_threshold: float
    start_date: int  # unix seconds
    end_date: int  # unix seconds
    yes_token_id: str
    no_token_id: str

    def token_for(self, side: Side) -> str:
        return self.yes_token_id if side == "YES" else self.no_token_id


@dataclass(frozen=True)
class PolymarketEvent:
    """A Polymarket event and its markets."""

    id: str
    slug: str
    title: str
    description: str
    start_date: int
    end_date: int
    markets: tuple[ParsedMarket, ...] = ()


@dataclass(frozen=True)
class SelectionEntry:
    """A selected primary series plus what the renderer needs to label it."""

    key: str
    market_id: str
    question: str
    side: Side
    token_id: str
    start_date: int
    group_item_title: str = ""

    @classmethod
    def for_market(cls, market: ParsedMarket, side: Side) -> "SelectionEntry":
        return cls(
            key=bet_key(market.id, side),
            market_id=market.id,
            question=market.question,
            side=side,
            token_id=market.token_for(side),
            start_date=market.start_date,
            group_item_title=market.group_item_title,
        )

    @property
    def label(self) -> str:
        title = self.group_item_title or self.question
        return f"{title} ({self.side})"


@dataclass(frozen=True)
class CoverageState:
    """Secondary-series cache: the covered interval and its samples.

    Every sample the upstream source would return for a timestamp in
    ``[covered_min, covered_max]`` is present in ``series``.
    """

    kind: str | None = None
    covered_min: int | None = None
    covered_max: int | None = None
    series: Series = EMPTY_SERIES

    @property
    def is_empty(self) -> bool:
        return self.covered_min is None or self.covered_max is None

    def covers(self, start: int, end: int) -> bool:
        if self.is_empty:
            return False
        return self.covered_min <= start and end <= self.covered_max


@dataclass(frozen=True)
class AlignedRow:
    """Values of every active series at one timestamp.

    ``values`` is sparse: a key is missing when that series has no sample
    within tolerance of ``timestamp``.
    """

    timestamp: int
    values: dict[str, float] = field(default_factory=dict)

    def get(self, key: str) -> float | None:
        return self.values.get(key)
