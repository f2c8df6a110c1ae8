"""Native enums shared by the profile and interest models."""

import enum


# ── Profiles ─────────────────────────────────────────────────────────────────


class InvestorType(str, enum.Enum):
    ANGEL = "ANGEL"
    VENTURE_CAPITAL = "VENTURE_CAPITAL"
    PRIVATE_EQUITY = "PRIVATE_EQUITY"
    CORPORATE = "CORPORATE"
    INSTITUTIONAL = "INSTITUTIONAL"
    FAMILY_OFFICE = "FAMILY_OFFICE"


class Stage(str, enum.Enum):
    SEED = "SEED"
    GROWTH = "GROWTH"
    EXPANSION = "EXPANSION"
    MATURE = "MATURE"


# ── Interest ─────────────────────────────────────────────────────────────────


class InterestDirection(str, enum.Enum):
    INVESTOR_TO_SME = "INVESTOR_TO_SME"
    SME_TO_INVESTOR = "SME_TO_INVESTOR"


class InterestState(str, enum.Enum):
    NONE = "NONE"
    ONE_SIDED = "ONE_SIDED"
    MUTUAL = "MUTUAL"


class InterestEventKind(str, enum.Enum):
    ONE_SIDED_INTEREST = "ONE_SIDED_INTEREST"
    MUTUAL_INTEREST = "MUTUAL_INTEREST"
