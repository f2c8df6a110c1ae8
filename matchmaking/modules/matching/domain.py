"""Immutable value types flowing through scoring, enumeration and the ledger."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Any

from matchmaking.models.enums import (
    InterestDirection,
    InterestEventKind,
    InterestState,
    InvestorType,
    Stage,
)

FACTOR_NAMES: tuple[str, ...] = ("sector", "stage", "amount", "geography", "certification")


# ── Profiles ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InvestorProfile:
    id: str
    preferred_sectors: frozenset[str] = frozenset()
    preferred_stages: frozenset[Stage] = frozenset()
    min_ticket: Decimal | None = None
    max_ticket: Decimal | None = None
    geography_preference: str | None = None
    requires_certification: bool = False
    investor_type: InvestorType = InvestorType.ANGEL
    name: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class SmeProfile:
    id: str
    sector: str | None = None
    stage: Stage | None = None
    funding_ask: Decimal | None = None
    geography: str | None = None
    is_certified: bool = False
    name: str = ""
    is_active: bool = True


# ── Scoring output ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class MatchFactor:
    score: float
    is_match: bool
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"score": self.score, "is_match": self.is_match, "detail": self.detail}


@dataclass(frozen=True)
class InterestStatus:
    investor_interested: bool = False
    sme_interested: bool = False
    advisor_matched: bool = False
    verified: bool = False

    @property
    def mutual(self) -> bool:
        return self.investor_interested and self.sme_interested

    @property
    def pending(self) -> bool:
        """Exactly one side has expressed interest."""
        return self.investor_interested != self.sme_interested

    @property
    def state(self) -> InterestState:
        if self.mutual:
            return InterestState.MUTUAL
        if self.pending:
            return InterestState.ONE_SIDED
        return InterestState.NONE

    def to_dict(self) -> dict[str, Any]:
        return {
            "investor_interested": self.investor_interested,
            "sme_interested": self.sme_interested,
            "mutual": self.mutual,
            "state": self.state.value,
            "advisor_matched": self.advisor_matched,
            "verified": self.verified,
        }


@dataclass(frozen=True)
class PairMark:
    """Result of flagging a pair; ``recorded`` is False when the flag was already set."""

    recorded: bool
    marked_at: datetime


NO_INTEREST = InterestStatus()


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class MatchResult:
    """Score for one (investor, SME) pair. Recomputed on every request, never persisted."""

    investor_id: str
    sme_id: str
    overall_score: float
    factors: dict[str, MatchFactor] = field(default_factory=dict)
    interest: InterestStatus | None = None

    @property
    def score(self) -> int:
        """Display score; ranking always uses the unrounded ``overall_score``."""
        return round_half_up(self.overall_score)

    @property
    def sort_key(self) -> tuple[float, str, str]:
        return (-self.overall_score, self.investor_id, self.sme_id)

    def with_interest(self, interest: InterestStatus) -> MatchResult:
        return replace(self, interest=interest)


# ── Ledger output ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InterestOutcome:
    recorded: bool
    mutual: bool


@dataclass(frozen=True)
class InterestEvent:
    kind: InterestEventKind
    investor_id: str
    sme_id: str
    direction: InterestDirection | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "investor_id": self.investor_id,
            "sme_id": self.sme_id,
            "direction": self.direction.value if self.direction else None,
        }
