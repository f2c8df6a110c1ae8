"""Tests for the matching service: role-scoped listings and the interest lifecycle."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from factories import RecordingEmitter
from matchmaking.core.config import Settings
from matchmaking.core.database import async_session_factory
from matchmaking.core.errors import NotConfigured, ValidationError
from matchmaking.models.enums import InterestDirection, InterestEventKind, Stage
from matchmaking.modules.matching.enumerator import (
    InterestFilter,
    MatchEnumerator,
    MatchFilter,
    Page,
)
from matchmaking.modules.matching.profiles import InMemoryProfileStore, SqlProfileStore
from matchmaking.modules.matching.service import MatchingService, build_matching_service

pytestmark = pytest.mark.anyio

INV = InterestDirection.INVESTOR_TO_SME
SME = InterestDirection.SME_TO_INVESTOR


class TestListings:
    async def test_list_matches_covers_active_profiles(self, service: MatchingService) -> None:
        page = await service.list_matches()
        keys = {(r.investor_id, r.sme_id) for r in page.items}
        assert keys == {
            ("inv_agri", "sme_farm"),
            ("inv_agri", "sme_pay"),
            ("inv_fintech", "sme_farm"),
            ("inv_fintech", "sme_pay"),
        }
        assert page.items[0].overall_score == pytest.approx(100.0)
        assert page.stats.total == 4

    async def test_list_matches_attaches_interest(self, service: MatchingService) -> None:
        await service.express_interest("inv_fintech", "sme_pay", INV)
        await service.express_interest("inv_fintech", "sme_pay", SME)
        await service.express_interest("inv_agri", "sme_farm", SME)

        page = await service.list_matches()
        assert page.stats.mutual_count == 1
        assert page.stats.pending_count == 2

        mutual = await service.list_matches(match_filter=MatchFilter(interest=InterestFilter.MUTUAL))
        assert [(r.investor_id, r.sme_id) for r in mutual.items] == [("inv_fintech", "sme_pay")]

    async def test_list_matches_narrowed(self, service: MatchingService) -> None:
        page = await service.list_matches(sectors=["Agriculture"], stages=[Stage.GROWTH])
        assert {r.sme_id for r in page.items} == {"sme_farm"}

        page = await service.list_matches(investor_ids=["inv_agri"], page=Page(limit=1))
        assert len(page.items) == 1
        assert page.total == 2

    async def test_investor_recommendations(self, service: MatchingService) -> None:
        page = await service.recommendations_for_investor("inv_agri")
        assert [r.sme_id for r in page.items] == ["sme_farm", "sme_pay"]
        assert all(r.investor_id == "inv_agri" for r in page.items)

    async def test_sme_recommendations_skip_inactive_investors(
        self, service: MatchingService
    ) -> None:
        page = await service.recommendations_for_sme("sme_pay")
        assert [r.investor_id for r in page.items] == ["inv_fintech", "inv_agri"]

    async def test_unknown_party_raises_lookup_error(self, service: MatchingService) -> None:
        with pytest.raises(LookupError):
            await service.recommendations_for_investor("inv_ghost")
        with pytest.raises(LookupError):
            await service.recommendations_for_sme("sme_ghost")

    async def test_malformed_party_id_is_a_validation_error(
        self, service: MatchingService
    ) -> None:
        with pytest.raises(ValidationError):
            await service.score_pair("inv fintech", "sme_pay")

    async def test_score_pair_includes_interest(self, service: MatchingService) -> None:
        await service.express_interest("inv_agri", "sme_pay", INV)
        result = await service.score_pair("inv_agri", "sme_pay")
        assert result.interest.investor_interested
        assert not result.interest.mutual
        assert set(result.factors) == {"sector", "stage", "amount", "geography", "certification"}

    async def test_empty_store(self, ledger, enumerator: MatchEnumerator) -> None:
        service = MatchingService(InMemoryProfileStore(), ledger, enumerator)
        page = await service.list_matches()
        assert page.items == []
        assert page.stats.total == 0

    async def test_large_scan_runs_off_loop(self, ledger, scorer, profile_store) -> None:
        """Above the streaming threshold the same results come back."""
        small = MatchingService(profile_store, ledger, MatchEnumerator(scorer))
        large = MatchingService(profile_store, ledger, MatchEnumerator(scorer, stream_threshold=1))
        expected = await small.list_matches(page=Page(limit=3))
        actual = await large.list_matches(page=Page(limit=3))
        assert actual.items == expected.items
        assert actual.stats == expected.stats


class TestInterestLifecycle:
    async def test_mutual_flow(self, service: MatchingService, emitter: RecordingEmitter) -> None:
        first = await service.express_interest("inv_fintech", "sme_pay", INV, "Let's talk")
        second = await service.express_interest("inv_fintech", "sme_pay", SME)
        assert (first.recorded, first.mutual) == (True, False)
        assert (second.recorded, second.mutual) == (True, True)

        status = await service.get_interest_status("inv_fintech", "sme_pay")
        assert status.mutual
        assert [e.kind for e in emitter.events] == [
            InterestEventKind.ONE_SIDED_INTEREST,
            InterestEventKind.MUTUAL_INTEREST,
        ]

        records = await service.list_interests(sme_id="sme_pay")
        assert {r.direction for r in records} == {INV, SME}


class TestAdvisorActions:
    async def test_manual_match_then_verify(self, service: MatchingService) -> None:
        created = await service.create_manual_match("inv_agri", "sme_farm", "adv_1")
        repeat = await service.create_manual_match("inv_agri", "sme_farm", "adv_1")
        assert (created.recorded, repeat.recorded) == (True, False)

        verified = await service.verify_match("inv_agri", "sme_farm", "adv_2")
        assert verified.recorded

        result = await service.score_pair("inv_agri", "sme_farm")
        assert result.interest.advisor_matched
        assert result.interest.verified
        assert not result.interest.mutual

    async def test_unknown_party_is_not_matched(self, service: MatchingService) -> None:
        with pytest.raises(LookupError):
            await service.create_manual_match("inv_ghost", "sme_farm")
        with pytest.raises(LookupError):
            await service.verify_match("inv_agri", "sme_ghost")
        assert await service.ledger.get_statuses() == {}

    async def test_inactive_parties_can_be_matched(self, service: MatchingService) -> None:
        mark = await service.create_manual_match("inv_dormant", "sme_pay")
        assert mark.recorded


class TestWiring:
    def test_build_from_settings(self) -> None:
        with ThreadPoolExecutor(max_workers=1) as pool:
            service = build_matching_service(
                Settings(MATCH_STREAM_THRESHOLD=25),
                async_session_factory,
                executor=pool,
            )
        assert isinstance(service.profiles, SqlProfileStore)
        assert service.enumerator.stream_threshold == 25
        assert service.scorer.weights.sector == 0.25

    def test_bad_weights_refuse_to_start(self) -> None:
        with pytest.raises(NotConfigured):
            build_matching_service(
                Settings(MATCH_SCORING_WEIGHTS={"sector": 1.0}),
                async_session_factory,
            )
