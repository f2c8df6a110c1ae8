"""Match enumeration: score the investor × SME cross product, filter, rank and page it."""

from __future__ import annotations

import enum
import heapq
from collections import deque
from collections.abc import Iterable, Iterator, Mapping, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass, field
from functools import partial
from itertools import islice

import structlog

from matchmaking.modules.matching.algorithm import CompatibilityScorer
from matchmaking.modules.matching.domain import (
    NO_INTEREST,
    InterestStatus,
    InvestorProfile,
    MatchResult,
    SmeProfile,
)
from matchmaking.modules.matching.stats import MatchStats, StatsAccumulator

logger = structlog.get_logger()

InterestLookup = Mapping[tuple[str, str], InterestStatus]


class InterestFilter(str, enum.Enum):
    ALL = "all"
    MUTUAL = "mutual"
    PENDING = "pending"        # exactly one side interested
    INTERESTED = "interested"  # at least one side interested
    NONE = "none"


@dataclass(frozen=True)
class MatchFilter:
    """Post-scoring predicate; it never influences how factors are computed."""

    min_score: float | None = None
    interest: InterestFilter = InterestFilter.ALL

    def accepts(self, result: MatchResult) -> bool:
        if self.min_score is not None and result.overall_score < self.min_score:
            return False
        if self.interest is InterestFilter.ALL:
            return True

        status = result.interest or NO_INTEREST
        if self.interest is InterestFilter.MUTUAL:
            return status.mutual
        if self.interest is InterestFilter.PENDING:
            return status.pending
        if self.interest is InterestFilter.INTERESTED:
            return status.investor_interested or status.sme_interested
        return not (status.investor_interested or status.sme_interested)


@dataclass(frozen=True)
class Page:
    offset: int = 0
    limit: int | None = None

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError("offset must be >= 0")
        if self.limit is not None and self.limit < 0:
            raise ValueError("limit must be >= 0")


@dataclass(frozen=True)
class MatchPage:
    items: list[MatchResult] = field(default_factory=list)
    total: int = 0              # results that passed the filter
    stats: MatchStats = field(default_factory=MatchStats)
    scanned: int = 0            # pairs actually scored
    truncated: bool = False     # max_scanned stopped the scan early


def _batched(items: Iterable[InvestorProfile], size: int) -> Iterator[list[InvestorProfile]]:
    it = iter(items)
    while batch := list(islice(it, size)):
        yield batch


class MatchEnumerator:
    """
    Produces ranked MatchResults for a set of investors and SMEs.

    Ordering is overall_score descending, ties broken by (investor_id, sme_id)
    ascending, so pages are stable across calls. Above ``stream_threshold``
    pairs a paged request selects through a bounded heap instead of sorting
    the materialised cross product.
    """

    def __init__(
        self,
        scorer: CompatibilityScorer,
        *,
        stream_threshold: int = 10_000,
        executor: Executor | None = None,
        batch_size: int = 32,
    ) -> None:
        self.scorer = scorer
        self.stream_threshold = stream_threshold
        self._executor = executor
        self._batch_size = batch_size

    # ── Scoring ────────────────────────────────────────────────────────────

    def _score_row(
        self, investor: InvestorProfile, smes: Sequence[SmeProfile]
    ) -> list[MatchResult]:
        return [self.scorer.score(investor, sme) for sme in smes]

    def _rows(
        self, investors: Sequence[InvestorProfile], smes: Sequence[SmeProfile]
    ) -> Iterator[list[MatchResult]]:
        if self._executor is None:
            for investor in investors:
                yield self._score_row(investor, smes)
            return

        # Submit a batch at a time so an early stop leaves little wasted work.
        score_row = partial(self._score_row, smes=smes)
        for batch in _batched(investors, self._batch_size):
            yield from self._executor.map(score_row, batch)

    def iter_scored(
        self,
        investors: Sequence[InvestorProfile],
        smes: Sequence[SmeProfile],
        interest_lookup: InterestLookup | None = None,
    ) -> Iterator[MatchResult]:
        """Yield every pair's result in input order, with interest attached when known."""
        for row in self._rows(investors, smes):
            for result in row:
                if interest_lookup is not None:
                    status = interest_lookup.get((result.investor_id, result.sme_id), NO_INTEREST)
                    result = result.with_interest(status)
                yield result

    # ── Enumeration ────────────────────────────────────────────────────────

    def enumerate(
        self,
        investors: Sequence[InvestorProfile],
        smes: Sequence[SmeProfile],
        match_filter: MatchFilter | None = None,
        page: Page | None = None,
        interest_lookup: InterestLookup | None = None,
        *,
        max_scanned: int | None = None,
    ) -> MatchPage:
        match_filter = match_filter or MatchFilter()
        page = page or Page()
        pair_count = len(investors) * len(smes)

        stats = StatsAccumulator()
        counters = {"scanned": 0, "total": 0}

        def accepted() -> Iterator[MatchResult]:
            for result in self.iter_scored(investors, smes, interest_lookup):
                if max_scanned is not None and counters["scanned"] >= max_scanned:
                    return
                counters["scanned"] += 1
                if match_filter.accepts(result):
                    counters["total"] += 1
                    stats.add(result)
                    yield result

        streaming = page.limit is not None and pair_count > self.stream_threshold
        if streaming:
            window = page.offset + page.limit  # type: ignore[operator]
            if window:
                top = heapq.nsmallest(window, accepted(), key=lambda r: r.sort_key)
            else:
                # nsmallest(0, ...) never pulls from the iterator; totals and stats still need the scan.
                deque(accepted(), maxlen=0)
                top = []
            items = top[page.offset:]
        else:
            ranked = sorted(accepted(), key=lambda r: r.sort_key)
            end = None if page.limit is None else page.offset + page.limit
            items = ranked[page.offset:end]

        truncated = max_scanned is not None and counters["scanned"] < pair_count
        logger.debug(
            "enumeration_complete",
            investors=len(investors),
            smes=len(smes),
            scanned=counters["scanned"],
            accepted=counters["total"],
            returned=len(items),
            streaming=streaming,
            truncated=truncated,
        )
        return MatchPage(
            items=items,
            total=counters["total"],
            stats=stats.result(),
            scanned=counters["scanned"],
            truncated=truncated,
        )
