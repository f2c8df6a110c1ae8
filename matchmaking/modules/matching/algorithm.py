"""Compatibility algorithm: pure deterministic scoring, no I/O.

Every factor is a function of the two profile snapshots only. The per-factor
breakdown travels with the MatchResult so each score is explainable.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from matchmaking.core.config import Settings
from matchmaking.core.errors import NotConfigured
from matchmaking.modules.matching.domain import (
    FACTOR_NAMES,
    InvestorProfile,
    MatchFactor,
    MatchResult,
    SmeProfile,
)

# Partial credit for a miss on each soft factor.
SECTOR_MISS_SCORE = 20.0
STAGE_MISS_SCORE = 30.0
GEOGRAPHY_MISS_SCORE = 50.0
CERTIFICATION_MISS_SCORE = 0.0

_WEIGHT_TOLERANCE = 1e-6


@dataclass(frozen=True)
class ScoringWeights:
    sector: float
    stage: float
    amount: float
    geography: float
    certification: float

    @classmethod
    def from_mapping(cls, weights: Mapping[str, float] | None) -> ScoringWeights:
        if not weights:
            raise NotConfigured("Scoring weights are not configured")

        missing = [name for name in FACTOR_NAMES if name not in weights]
        unknown = sorted(set(weights) - set(FACTOR_NAMES))
        if missing or unknown:
            raise NotConfigured(
                "Scoring weights must name exactly the five factors",
                detail={"missing": missing, "unknown": unknown},
            )

        values = {name: float(weights[name]) for name in FACTOR_NAMES}
        if any(v < 0 for v in values.values()):
            raise NotConfigured("Scoring weights must be non-negative", detail=values)
        total = sum(values.values())
        if abs(total - 1.0) > _WEIGHT_TOLERANCE:
            raise NotConfigured(
                f"Scoring weights must sum to 1.0 (got {total:.6f})", detail=values
            )
        return cls(**values)

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in FACTOR_NAMES}


def load_scoring_weights(config: Settings) -> ScoringWeights:
    """Validate the configured weights; called once at startup so bad policy fails fast."""
    return ScoringWeights.from_mapping(config.MATCH_SCORING_WEIGHTS)


def _norm(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip().casefold()
    return value or None


def _money(value: Decimal) -> str:
    return f"{value:,.0f}"


def _amount(value: Any) -> Decimal | None:
    """Ticket or ask as a finite Decimal; anything else counts as not specified."""
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
    return value if value.is_finite() else None


class CompatibilityScorer:
    """
    Weighted five-factor compatibility between an InvestorProfile and an SmeProfile.

    Never raises for data-shape issues: missing optional fields on either side
    are treated as wildcards for the factor they feed.
    """

    def __init__(self, weights: ScoringWeights, *, amount_decay_span: float = 1.0) -> None:
        if amount_decay_span <= 0:
            raise NotConfigured("Amount decay span must be positive")
        self.weights = weights
        self._decay_span = amount_decay_span

    @classmethod
    def from_settings(cls, config: Settings) -> CompatibilityScorer:
        return cls(
            load_scoring_weights(config),
            amount_decay_span=config.MATCH_AMOUNT_DECAY_SPAN,
        )

    def score(self, investor: InvestorProfile, sme: SmeProfile) -> MatchResult:
        factors = {
            "sector": self._score_sector(investor, sme),
            "stage": self._score_stage(investor, sme),
            "amount": self._score_amount(investor, sme),
            "geography": self._score_geography(investor, sme),
            "certification": self._score_certification(investor, sme),
        }
        weights = self.weights.as_dict()
        overall = sum(weights[name] * factor.score for name, factor in factors.items())

        return MatchResult(
            investor_id=investor.id,
            sme_id=sme.id,
            overall_score=min(100.0, max(0.0, overall)),
            factors=factors,
        )

    # ── Factor scorers ─────────────────────────────────────────────────────

    def _score_sector(self, investor: InvestorProfile, sme: SmeProfile) -> MatchFactor:
        preferred = {s for s in (_norm(p) for p in investor.preferred_sectors) if s}
        if not preferred:
            return MatchFactor(100.0, True, "Investor accepts all sectors")

        sector = _norm(sme.sector)
        if sector is None:
            return MatchFactor(100.0, True, "SME sector not specified")
        if sector in preferred:
            return MatchFactor(100.0, True, f"Sector {sme.sector} is a preferred sector")
        return MatchFactor(
            SECTOR_MISS_SCORE, False, f"Sector {sme.sector} is outside preferred sectors"
        )

    def _score_stage(self, investor: InvestorProfile, sme: SmeProfile) -> MatchFactor:
        if not investor.preferred_stages:
            return MatchFactor(100.0, True, "Investor accepts all stages")
        if sme.stage is None:
            return MatchFactor(100.0, True, "SME stage not specified")
        if sme.stage in investor.preferred_stages:
            return MatchFactor(100.0, True, f"Stage {sme.stage.value} is a preferred stage")
        return MatchFactor(
            STAGE_MISS_SCORE, False, f"Stage {sme.stage.value} is outside preferred stages"
        )

    def _score_amount(self, investor: InvestorProfile, sme: SmeProfile) -> MatchFactor:
        ask = _amount(sme.funding_ask)
        lo, hi = _amount(investor.min_ticket), _amount(investor.max_ticket)

        if ask is None:
            return MatchFactor(100.0, True, "Funding ask not specified")
        if lo is None and hi is None:
            return MatchFactor(100.0, True, "Investor has no ticket range")
        if lo is not None and hi is not None and lo > hi:
            lo, hi = hi, lo

        if (lo is None or ask >= lo) and (hi is None or ask <= hi):
            return MatchFactor(
                100.0, True, f"Ask {_money(ask)} is within the ticket range"
            )

        if hi is not None and ask > hi:
            bound, side = hi, "above max"
            gap = ask - hi
        else:
            bound, side = lo, "below min"  # type: ignore[assignment]
            gap = lo - ask  # type: ignore[operator]

        if bound <= 0:
            return MatchFactor(
                0.0, False, f"Ask {_money(ask)} is outside the ticket range"
            )

        distance = float(gap / bound)
        score = max(0.0, 100.0 * (1.0 - distance / self._decay_span))
        return MatchFactor(
            score,
            False,
            f"Ask {_money(ask)} is {distance:.0%} {side} ticket {_money(bound)}",
        )

    def _score_geography(self, investor: InvestorProfile, sme: SmeProfile) -> MatchFactor:
        preference = _norm(investor.geography_preference)
        if preference is None:
            return MatchFactor(100.0, True, "No geography preference")

        geography = _norm(sme.geography)
        if geography is None:
            return MatchFactor(100.0, True, "SME geography not specified")
        if geography == preference:
            return MatchFactor(100.0, True, f"Located in {sme.geography}")
        return MatchFactor(
            GEOGRAPHY_MISS_SCORE,
            False,
            f"Located in {sme.geography}, investor prefers {investor.geography_preference}",
        )

    def _score_certification(self, investor: InvestorProfile, sme: SmeProfile) -> MatchFactor:
        if not investor.requires_certification:
            return MatchFactor(100.0, True, "Certification not required")
        if sme.is_certified:
            return MatchFactor(100.0, True, "Advisor certified")
        return MatchFactor(
            CERTIFICATION_MISS_SCORE, False, "Certification required, SME pending review"
        )
