"""Score-band and interest roll-ups over already-computed match results."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import asdict, dataclass

from matchmaking.modules.matching.domain import MatchResult

HIGH_SCORE_THRESHOLD = 70
MEDIUM_SCORE_THRESHOLD = 40


@dataclass(frozen=True)
class MatchStats:
    total: int = 0
    high_count: int = 0
    medium_count: int = 0
    low_count: int = 0
    mutual_count: int = 0
    pending_count: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def score_band(score: int) -> str:
    if score >= HIGH_SCORE_THRESHOLD:
        return "high"
    if score >= MEDIUM_SCORE_THRESHOLD:
        return "medium"
    return "low"


class StatsAccumulator:
    """Incremental form of :func:`summarize` so a single pass can rank and count."""

    def __init__(self) -> None:
        self._bands = {"high": 0, "medium": 0, "low": 0}
        self._mutual = 0
        self._pending = 0

    def add(self, result: MatchResult) -> None:
        self._bands[score_band(result.score)] += 1
        interest = result.interest
        if interest is None:
            return
        # Pending counts every pair with interest on at least one side, mutual included.
        if interest.investor_interested or interest.sme_interested:
            self._pending += 1
        if interest.mutual:
            self._mutual += 1

    def result(self) -> MatchStats:
        return MatchStats(
            total=sum(self._bands.values()),
            high_count=self._bands["high"],
            medium_count=self._bands["medium"],
            low_count=self._bands["low"],
            mutual_count=self._mutual,
            pending_count=self._pending,
        )


def summarize(results: Iterable[MatchResult]) -> MatchStats:
    acc = StatsAccumulator()
    for result in results:
        acc.add(result)
    return acc.result()
