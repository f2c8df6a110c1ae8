"""SQLAlchemy models package. Import all models so Base.metadata is populated."""

from matchmaking.models.base import ModelMixin, ProfileModel
from matchmaking.models.enums import (
    InterestDirection,
    InterestEventKind,
    InterestState,
    InvestorType,
    Stage,
)
from matchmaking.models.interest import InterestPair, InterestRecord
from matchmaking.models.profiles import Investor, Sme

__all__ = [
    "InterestDirection",
    "InterestEventKind",
    "InterestPair",
    "InterestRecord",
    "InterestState",
    "Investor",
    "InvestorType",
    "ModelMixin",
    "ProfileModel",
    "Sme",
    "Stage",
]
