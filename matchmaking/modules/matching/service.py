"""Matching service: role-scoped match listings and the interest lifecycle."""

from __future__ import annotations

import asyncio
from collections.abc import Collection, Sequence
from concurrent.futures import Executor

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchmaking.core.config import Settings
from matchmaking.models.enums import InterestDirection, Stage
from matchmaking.models.interest import InterestRecord
from matchmaking.modules.matching.algorithm import CompatibilityScorer
from matchmaking.modules.matching.domain import (
    InterestOutcome,
    InterestStatus,
    InvestorProfile,
    MatchResult,
    PairMark,
    SmeProfile,
)
from matchmaking.modules.matching.enumerator import (
    MatchEnumerator,
    MatchFilter,
    MatchPage,
    Page,
)
from matchmaking.modules.matching.ledger import InterestLedger, validate_party_id
from matchmaking.modules.matching.notifications import NotificationEmitter
from matchmaking.modules.matching.profiles import (
    ProfileFilter,
    ProfileStore,
    SqlProfileStore,
)

logger = structlog.get_logger()


def _frozen(values: Collection[str] | None) -> frozenset[str] | None:
    return frozenset(values) if values is not None else None


class MatchingService:
    def __init__(
        self,
        profiles: ProfileStore,
        ledger: InterestLedger,
        enumerator: MatchEnumerator,
    ) -> None:
        self.profiles = profiles
        self.ledger = ledger
        self.enumerator = enumerator

    @property
    def scorer(self) -> CompatibilityScorer:
        return self.enumerator.scorer

    async def _enumerate(
        self,
        investors: Sequence[InvestorProfile],
        smes: Sequence[SmeProfile],
        match_filter: MatchFilter | None,
        page: Page | None,
        max_scanned: int | None,
    ) -> MatchPage:
        if not investors or not smes:
            return MatchPage()

        lookup = await self.ledger.get_statuses(
            [i.id for i in investors], [s.id for s in smes]
        )
        args = (investors, smes, match_filter, page, lookup)
        if len(investors) * len(smes) > self.enumerator.stream_threshold:
            # Large scans run off the event loop.
            return await asyncio.to_thread(
                self.enumerator.enumerate, *args, max_scanned=max_scanned
            )
        return self.enumerator.enumerate(*args, max_scanned=max_scanned)

    # ── Listings ───────────────────────────────────────────────────────────

    async def list_matches(
        self,
        *,
        investor_ids: Collection[str] | None = None,
        sme_ids: Collection[str] | None = None,
        sectors: Collection[str] | None = None,
        stages: Collection[Stage] | None = None,
        match_filter: MatchFilter | None = None,
        page: Page | None = None,
        max_scanned: int | None = None,
    ) -> MatchPage:
        """All active investors × all active SMEs (advisor/admin view)."""
        investors = await self.profiles.get_investors(ProfileFilter(ids=_frozen(investor_ids)))
        smes = await self.profiles.get_smes(
            ProfileFilter(
                ids=_frozen(sme_ids),
                sectors=_frozen(sectors),
                stages=frozenset(stages) if stages is not None else None,
            )
        )
        return await self._enumerate(investors, smes, match_filter, page, max_scanned)

    async def recommendations_for_investor(
        self,
        investor_id: str,
        *,
        sectors: Collection[str] | None = None,
        match_filter: MatchFilter | None = None,
        page: Page | None = None,
    ) -> MatchPage:
        """One investor against every active SME (investor view)."""
        investor = await self._get_investor(investor_id)
        smes = await self.profiles.get_smes(ProfileFilter(sectors=_frozen(sectors)))
        return await self._enumerate([investor], smes, match_filter, page, None)

    async def recommendations_for_sme(
        self,
        sme_id: str,
        *,
        match_filter: MatchFilter | None = None,
        page: Page | None = None,
    ) -> MatchPage:
        """Every active investor against one SME (SME view)."""
        sme = await self._get_sme(sme_id)
        investors = await self.profiles.get_investors()
        return await self._enumerate(investors, [sme], match_filter, page, None)

    async def score_pair(self, investor_id: str, sme_id: str) -> MatchResult:
        investor = await self._get_investor(investor_id)
        sme = await self._get_sme(sme_id)
        result = self.scorer.score(investor, sme)
        status = await self.ledger.get_status(investor.id, sme.id)
        return result.with_interest(status)

    # ── Interest ───────────────────────────────────────────────────────────

    async def express_interest(
        self,
        investor_id: str,
        sme_id: str,
        direction: InterestDirection | str,
        message: str | None = None,
    ) -> InterestOutcome:
        return await self.ledger.express_interest(investor_id, sme_id, direction, message)

    async def get_interest_status(self, investor_id: str, sme_id: str) -> InterestStatus:
        return await self.ledger.get_status(investor_id, sme_id)

    async def list_interests(
        self,
        *,
        investor_id: str | None = None,
        sme_id: str | None = None,
        direction: InterestDirection | None = None,
    ) -> list[InterestRecord]:
        return await self.ledger.list_interests(
            investor_id=investor_id, sme_id=sme_id, direction=direction
        )

    # ── Advisor actions ────────────────────────────────────────────────────

    async def create_manual_match(
        self, investor_id: str, sme_id: str, advisor_id: str | None = None
    ) -> PairMark:
        """Mark a pair as matched by an advisor. Both profiles must exist."""
        investor = await self._get_investor(investor_id)
        sme = await self._get_sme(sme_id)
        mark = await self.ledger.mark_advisor_match(investor.id, sme.id, advisor_id)
        logger.info(
            "advisor_match_created",
            investor_id=investor.id,
            sme_id=sme.id,
            advisor_id=advisor_id,
            created=mark.recorded,
        )
        return mark

    async def verify_match(
        self, investor_id: str, sme_id: str, verifier_id: str | None = None
    ) -> PairMark:
        investor = await self._get_investor(investor_id)
        sme = await self._get_sme(sme_id)
        mark = await self.ledger.mark_verified(investor.id, sme.id, verifier_id)
        logger.info(
            "match_verified",
            investor_id=investor.id,
            sme_id=sme.id,
            verifier_id=verifier_id,
            verified=mark.recorded,
        )
        return mark

    # ── Helpers ────────────────────────────────────────────────────────────

    async def _get_investor(self, investor_id: str) -> InvestorProfile:
        validate_party_id(investor_id, "investor_id")
        found = await self.profiles.get_investors(
            ProfileFilter(ids=frozenset([investor_id]), active_only=False)
        )
        if not found:
            raise LookupError(f"Investor {investor_id} not found")
        return found[0]

    async def _get_sme(self, sme_id: str) -> SmeProfile:
        validate_party_id(sme_id, "sme_id")
        sme = await self.profiles.get_sme(sme_id)
        if sme is None:
            raise LookupError(f"SME {sme_id} not found")
        return sme


def build_matching_service(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    emitter: NotificationEmitter | None = None,
    profiles: ProfileStore | None = None,
    executor: Executor | None = None,
) -> MatchingService:
    """Wire the service from settings. Raises NotConfigured on invalid scoring policy."""
    scorer = CompatibilityScorer.from_settings(config)
    enumerator = MatchEnumerator(
        scorer,
        stream_threshold=config.MATCH_STREAM_THRESHOLD,
        executor=executor,
    )
    ledger = InterestLedger(
        session_factory,
        emitter,
        write_timeout=config.LEDGER_WRITE_TIMEOUT_SECONDS,
        notify_timeout=config.NOTIFY_TIMEOUT_SECONDS,
    )
    logger.info("matching_service_ready", weights=scorer.weights.as_dict())
    return MatchingService(
        profiles or SqlProfileStore(session_factory),
        ledger,
        enumerator,
    )
