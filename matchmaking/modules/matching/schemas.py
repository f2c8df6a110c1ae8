"""Matching module API schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

from matchmaking.models.interest import InterestRecord
from matchmaking.modules.matching.domain import (
    InterestOutcome,
    InterestStatus,
    MatchResult,
    PairMark,
)
from matchmaking.modules.matching.enumerator import MatchPage, Page


# ── Scores ────────────────────────────────────────────────────────────────────


class MatchFactorResponse(BaseModel):
    score: float
    is_match: bool
    detail: str


class InterestStatusResponse(BaseModel):
    investor_interested: bool
    sme_interested: bool
    mutual: bool
    state: str
    advisor_matched: bool
    verified: bool

    @classmethod
    def from_status(cls, status: InterestStatus) -> "InterestStatusResponse":
        return cls(**status.to_dict())


class MatchResultResponse(BaseModel):
    investor_id: str
    sme_id: str
    score: int                       # rounded for display
    overall_score: float             # unrounded, used for ranking
    factors: dict[str, MatchFactorResponse]
    interest: InterestStatusResponse | None

    @classmethod
    def from_result(cls, result: MatchResult) -> "MatchResultResponse":
        return cls(
            investor_id=result.investor_id,
            sme_id=result.sme_id,
            score=result.score,
            overall_score=result.overall_score,
            factors={
                name: MatchFactorResponse(**factor.to_dict())
                for name, factor in result.factors.items()
            },
            interest=(
                InterestStatusResponse.from_status(result.interest)
                if result.interest is not None
                else None
            ),
        )


class MatchStatsResponse(BaseModel):
    total: int
    high_count: int
    medium_count: int
    low_count: int
    mutual_count: int
    pending_count: int


class MatchListResponse(BaseModel):
    items: list[MatchResultResponse]
    total: int
    offset: int
    limit: int | None
    truncated: bool
    stats: MatchStatsResponse

    @classmethod
    def from_page(cls, match_page: MatchPage, page: Page) -> "MatchListResponse":
        return cls(
            items=[MatchResultResponse.from_result(r) for r in match_page.items],
            total=match_page.total,
            offset=page.offset,
            limit=page.limit,
            truncated=match_page.truncated,
            stats=MatchStatsResponse(**match_page.stats.to_dict()),
        )


# ── Interest ──────────────────────────────────────────────────────────────────


class ExpressInterestRequest(BaseModel):
    investor_id: str
    sme_id: str
    direction: str                   # InterestDirection value; validated by the ledger
    message: str | None = Field(None)


class ExpressInterestResponse(BaseModel):
    recorded: bool
    mutual: bool

    @classmethod
    def from_outcome(cls, outcome: InterestOutcome) -> "ExpressInterestResponse":
        return cls(recorded=outcome.recorded, mutual=outcome.mutual)


class InterestRecordResponse(BaseModel):
    investor_id: str
    sme_id: str
    direction: str
    message: str | None
    created_at: datetime

    @classmethod
    def from_record(cls, record: InterestRecord) -> "InterestRecordResponse":
        return cls(
            investor_id=record.investor_id,
            sme_id=record.sme_id,
            direction=record.direction.value,
            message=record.message,
            created_at=record.created_at,
        )


class InterestRecordsResponse(BaseModel):
    items: list[InterestRecordResponse]
    total: int


# ── Advisor actions ───────────────────────────────────────────────────────────


class ManualMatchRequest(BaseModel):
    investor_id: str
    sme_id: str
    advisor_id: str | None = None


class ManualMatchResponse(BaseModel):
    investor_id: str
    sme_id: str
    status: str = "ADVISOR_MATCHED"
    created: bool                    # False when the pair was already advisor-matched
    matched_at: datetime

    @classmethod
    def from_mark(cls, investor_id: str, sme_id: str, mark: PairMark) -> "ManualMatchResponse":
        return cls(
            investor_id=investor_id,
            sme_id=sme_id,
            created=mark.recorded,
            matched_at=mark.marked_at,
        )


class VerifyMatchRequest(BaseModel):
    investor_id: str
    sme_id: str
    verifier_id: str | None = None


class VerifyMatchResponse(BaseModel):
    investor_id: str
    sme_id: str
    verified: bool = True
    recorded: bool                   # False when the pair was already verified
    verified_at: datetime

    @classmethod
    def from_mark(cls, investor_id: str, sme_id: str, mark: PairMark) -> "VerifyMatchResponse":
        return cls(
            investor_id=investor_id,
            sme_id=sme_id,
            recorded=mark.recorded,
            verified_at=mark.marked_at,
        )
