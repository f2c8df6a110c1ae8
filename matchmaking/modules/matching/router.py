"""Matching API router: match listings and interest actions.

Typed core failures (ValidationError, StorageTransientError) are mapped to
HTTP responses by the handlers registered in ``matchmaking.main``.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from matchmaking.core.config import settings
from matchmaking.models.enums import InterestDirection
from matchmaking.modules.matching.enumerator import InterestFilter, MatchFilter, Page
from matchmaking.modules.matching.schemas import (
    ExpressInterestRequest,
    ExpressInterestResponse,
    InterestRecordResponse,
    InterestRecordsResponse,
    InterestStatusResponse,
    ManualMatchRequest,
    ManualMatchResponse,
    MatchListResponse,
    MatchResultResponse,
    VerifyMatchRequest,
    VerifyMatchResponse,
)
from matchmaking.modules.matching.service import MatchingService

router = APIRouter(prefix="/matching", tags=["matching"])


def get_matching_service(request: Request) -> MatchingService:
    return request.app.state.matching_service


def _page(offset: int, limit: int | None) -> Page:
    return Page(offset=offset, limit=limit if limit is not None else settings.MATCH_DEFAULT_PAGE_SIZE)


# ── Listings ──────────────────────────────────────────────────────────────────


@router.get("", response_model=MatchListResponse)
async def list_matches(
    min_score: float | None = Query(None, ge=0, le=100),
    interest: InterestFilter = Query(InterestFilter.ALL),
    sector: list[str] | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=500),
    service: MatchingService = Depends(get_matching_service),
):
    """All investor × SME matches, best first, with score-band stats."""
    page = _page(offset, limit)
    result = await service.list_matches(
        sectors=sector,
        match_filter=MatchFilter(min_score=min_score, interest=interest),
        page=page,
    )
    return MatchListResponse.from_page(result, page)


@router.get("/investors/{investor_id}/recommendations", response_model=MatchListResponse)
async def investor_recommendations(
    investor_id: str,
    min_score: float | None = Query(None, ge=0, le=100),
    interest: InterestFilter = Query(InterestFilter.ALL),
    sector: list[str] | None = Query(None),
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=500),
    service: MatchingService = Depends(get_matching_service),
):
    """SMEs ranked for one investor."""
    page = _page(offset, limit)
    try:
        result = await service.recommendations_for_investor(
            investor_id,
            sectors=sector,
            match_filter=MatchFilter(min_score=min_score, interest=interest),
            page=page,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return MatchListResponse.from_page(result, page)


@router.get("/smes/{sme_id}/recommendations", response_model=MatchListResponse)
async def sme_recommendations(
    sme_id: str,
    min_score: float | None = Query(None, ge=0, le=100),
    interest: InterestFilter = Query(InterestFilter.ALL),
    offset: int = Query(0, ge=0),
    limit: int | None = Query(None, ge=1, le=500),
    service: MatchingService = Depends(get_matching_service),
):
    """Investors ranked for one SME."""
    page = _page(offset, limit)
    try:
        result = await service.recommendations_for_sme(
            sme_id,
            match_filter=MatchFilter(min_score=min_score, interest=interest),
            page=page,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return MatchListResponse.from_page(result, page)


@router.get("/pairs/{investor_id}/{sme_id}", response_model=MatchResultResponse)
async def score_pair(
    investor_id: str,
    sme_id: str,
    service: MatchingService = Depends(get_matching_service),
):
    """Full factor breakdown for a single pair."""
    try:
        result = await service.score_pair(investor_id, sme_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return MatchResultResponse.from_result(result)


# ── Interest ──────────────────────────────────────────────────────────────────


@router.post("/interest", response_model=ExpressInterestResponse)
async def express_interest(
    body: ExpressInterestRequest,
    service: MatchingService = Depends(get_matching_service),
):
    """Record one party's interest. Safe to retry: repeats are no-ops."""
    outcome = await service.express_interest(
        body.investor_id, body.sme_id, body.direction, body.message
    )
    return ExpressInterestResponse.from_outcome(outcome)


@router.get("/interest", response_model=InterestRecordsResponse)
async def list_interests(
    investor_id: str | None = Query(None),
    sme_id: str | None = Query(None),
    direction: InterestDirection | None = Query(None),
    service: MatchingService = Depends(get_matching_service),
):
    """Interest records, optionally narrowed to one party."""
    records = await service.list_interests(
        investor_id=investor_id, sme_id=sme_id, direction=direction
    )
    return InterestRecordsResponse(
        items=[InterestRecordResponse.from_record(r) for r in records],
        total=len(records),
    )


@router.get("/interest/{investor_id}/{sme_id}", response_model=InterestStatusResponse)
async def interest_status(
    investor_id: str,
    sme_id: str,
    service: MatchingService = Depends(get_matching_service),
):
    """Current interest state of one pair."""
    return InterestStatusResponse.from_status(
        await service.get_interest_status(investor_id, sme_id)
    )


# ── Advisor actions ───────────────────────────────────────────────────────────


@router.post("/match", response_model=ManualMatchResponse)
async def create_manual_match(
    body: ManualMatchRequest,
    service: MatchingService = Depends(get_matching_service),
):
    """Advisor-created match between an existing investor and SME."""
    try:
        mark = await service.create_manual_match(body.investor_id, body.sme_id, body.advisor_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return ManualMatchResponse.from_mark(body.investor_id, body.sme_id, mark)


@router.post("/verify", response_model=VerifyMatchResponse)
async def verify_match(
    body: VerifyMatchRequest,
    service: MatchingService = Depends(get_matching_service),
):
    try:
        mark = await service.verify_match(body.investor_id, body.sme_id, body.verifier_id)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return VerifyMatchResponse.from_mark(body.investor_id, body.sme_id, mark)
