"""Tests for the /v1/matching HTTP endpoints and their error mapping."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from httpx import AsyncClient

from factories import RecordingEmitter
from matchmaking.core.errors import StorageTransientError
from matchmaking.modules.matching.service import MatchingService

pytestmark = pytest.mark.anyio


class TestMatchListings:
    """Tests for GET /v1/matching and the recommendation endpoints."""

    async def test_list_matches_200(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching")
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["total"] == 4
        assert data["offset"] == 0
        assert data["limit"] == 50
        assert data["truncated"] is False
        assert data["stats"]["total"] == 4
        top = data["items"][0]
        assert top["score"] == 100
        assert set(top["factors"]) == {"sector", "stage", "amount", "geography", "certification"}
        assert resp.headers["X-API-Version"] == "v1"

    async def test_list_matches_min_score_and_paging(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching", params={"min_score": 80, "limit": 1})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 2
        assert len(data["items"]) == 1
        assert data["stats"]["high_count"] == 2

    async def test_invalid_query_422(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching", params={"min_score": 101})
        assert resp.status_code == 422
        resp = await client.get("/v1/matching", params={"interest": "maybe"})
        assert resp.status_code == 422

    async def test_sector_query_ignores_case(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching", params={"sector": "agriculture"})
        assert resp.status_code == 200
        assert {i["sme_id"] for i in resp.json()["items"]} == {"sme_farm"}

    async def test_investor_recommendations_200(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/investors/inv_agri/recommendations")
        assert resp.status_code == 200
        assert [i["sme_id"] for i in resp.json()["items"]] == ["sme_farm", "sme_pay"]

    async def test_investor_recommendations_unknown_404(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/investors/inv_ghost/recommendations")
        assert resp.status_code == 404
        assert resp.json()["error"] == "http_404"

    async def test_sme_recommendations_200(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/smes/sme_farm/recommendations")
        assert resp.status_code == 200
        assert resp.json()["items"][0]["investor_id"] == "inv_agri"

    async def test_malformed_id_422(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/smes/sme%20farm/recommendations")
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

    async def test_score_pair_200(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/pairs/inv_fintech/sme_farm")
        assert resp.status_code == 200
        data = resp.json()
        assert data["overall_score"] == pytest.approx(53.5)
        assert data["score"] == 54
        assert data["interest"]["state"] == "NONE"
        assert data["factors"]["sector"]["is_match"] is False

    async def test_score_pair_unknown_404(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/pairs/inv_fintech/sme_ghost")
        assert resp.status_code == 404


class TestInterestEndpoints:
    """Tests for POST/GET /v1/matching/interest."""

    async def test_express_interest_then_mutual(
        self, client: AsyncClient, emitter: RecordingEmitter
    ) -> None:
        body = {"investor_id": "inv_fintech", "sme_id": "sme_pay", "direction": "INVESTOR_TO_SME"}
        first = await client.post("/v1/matching/interest", json={**body, "message": "Hello"})
        assert first.status_code == 200, first.text
        assert first.json() == {"recorded": True, "mutual": False}

        repeat = await client.post("/v1/matching/interest", json=body)
        assert repeat.json() == {"recorded": False, "mutual": False}

        reply = await client.post(
            "/v1/matching/interest", json={**body, "direction": "SME_TO_INVESTOR"}
        )
        assert reply.json() == {"recorded": True, "mutual": True}

        status = await client.get("/v1/matching/interest/inv_fintech/sme_pay")
        assert status.json()["state"] == "MUTUAL"
        assert len(emitter.events) == 2

        listing = await client.get("/v1/matching/interest", params={"sme_id": "sme_pay"})
        data = listing.json()
        assert data["total"] == 2
        assert {r["direction"] for r in data["items"]} == {"INVESTOR_TO_SME", "SME_TO_INVESTOR"}

        mutual = await client.get("/v1/matching", params={"interest": "mutual"})
        assert [(i["investor_id"], i["sme_id"]) for i in mutual.json()["items"]] == [
            ("inv_fintech", "sme_pay")
        ]

    async def test_invalid_direction_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/v1/matching/interest",
            json={"investor_id": "inv_fintech", "sme_id": "sme_pay", "direction": "BOTH"},
        )
        assert resp.status_code == 422
        data = resp.json()
        assert data["error"] == "validation_error"
        assert data["detail"][0]["field"] == "direction"

    async def test_message_too_long_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/v1/matching/interest",
            json={
                "investor_id": "inv_fintech",
                "sme_id": "sme_pay",
                "direction": "INVESTOR_TO_SME",
                "message": "x" * 2001,
            },
        )
        assert resp.status_code == 422

    async def test_storage_failure_503_with_retry_after(
        self, client: AsyncClient, service: MatchingService
    ) -> None:
        async def unavailable(*args, **kwargs):
            raise StorageTransientError(
                "Interest ledger write timed out",
                idempotency_key=("inv_fintech", "sme_pay", "INVESTOR_TO_SME"),
            )

        with patch.object(service.ledger, "express_interest", unavailable):
            resp = await client.post(
                "/v1/matching/interest",
                json={
                    "investor_id": "inv_fintech",
                    "sme_id": "sme_pay",
                    "direction": "INVESTOR_TO_SME",
                },
            )
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "1"
        assert resp.json()["error"] == "storage_unavailable"

    async def test_interest_status_none(self, client: AsyncClient) -> None:
        resp = await client.get("/v1/matching/interest/inv_agri/sme_farm")
        assert resp.status_code == 200
        assert resp.json() == {
            "investor_interested": False,
            "sme_interested": False,
            "mutual": False,
            "state": "NONE",
            "advisor_matched": False,
            "verified": False,
        }


class TestAdvisorEndpoints:
    """Tests for POST /v1/matching/match and /v1/matching/verify."""

    async def test_manual_match_then_verify(self, client: AsyncClient) -> None:
        body = {"investor_id": "inv_agri", "sme_id": "sme_pay", "advisor_id": "adv_1"}
        created = await client.post("/v1/matching/match", json=body)
        assert created.status_code == 200, created.text
        data = created.json()
        assert data["status"] == "ADVISOR_MATCHED"
        assert data["created"] is True
        assert data["matched_at"]

        repeat = await client.post("/v1/matching/match", json=body)
        assert repeat.json()["created"] is False
        assert repeat.json()["matched_at"] == data["matched_at"]

        verified = await client.post(
            "/v1/matching/verify", json={"investor_id": "inv_agri", "sme_id": "sme_pay"}
        )
        assert verified.status_code == 200
        assert verified.json()["verified"] is True
        assert verified.json()["recorded"] is True

        status = (await client.get("/v1/matching/interest/inv_agri/sme_pay")).json()
        assert status["advisor_matched"] is True
        assert status["verified"] is True
        assert status["state"] == "NONE"

    async def test_unknown_party_404(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/v1/matching/match", json={"investor_id": "inv_ghost", "sme_id": "sme_pay"}
        )
        assert resp.status_code == 404
        resp = await client.post(
            "/v1/matching/verify", json={"investor_id": "inv_agri", "sme_id": "sme_ghost"}
        )
        assert resp.status_code == 404

    async def test_malformed_advisor_id_422(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/v1/matching/match",
            json={"investor_id": "inv_agri", "sme_id": "sme_pay", "advisor_id": "adv 1"},
        )
        assert resp.status_code == 422


async def test_health_reports_database(client: AsyncClient) -> None:
    resp = await client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["service"] == "advisory-matching"
    assert data["checks"]["database"]["status"] == "healthy"
