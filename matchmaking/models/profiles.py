"""Profile models: Investor, Sme. Owned by onboarding; read-only to matching."""

from decimal import Decimal

from sqlalchemy import JSON, Index, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from matchmaking.models.base import ProfileModel
from matchmaking.models.enums import InvestorType, Stage

_JSONList = JSON().with_variant(JSONB(), "postgresql")


class Investor(ProfileModel):
    __tablename__ = "investor_profiles"
    __table_args__ = (
        Index("ix_investor_profiles_is_active", "is_active"),
    )

    investor_type: Mapped[InvestorType] = mapped_column(
        nullable=False, default=InvestorType.ANGEL
    )
    preferred_sectors: Mapped[list[str] | None] = mapped_column(_JSONList)
    preferred_stages: Mapped[list[str] | None] = mapped_column(_JSONList)
    min_ticket: Mapped[Decimal | None] = mapped_column(Numeric(19, 4))
    max_ticket: Mapped[Decimal | None] = mapped_column(Numeric(19, 4))
    geography_preference: Mapped[str | None] = mapped_column(String(100))
    requires_certification: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )

    def __repr__(self) -> str:
        return f"<Investor(id={self.id}, name={self.name!r})>"


class Sme(ProfileModel):
    __tablename__ = "sme_profiles"
    __table_args__ = (
        Index("ix_sme_profiles_is_active", "is_active"),
        Index("ix_sme_profiles_sector", "sector"),
    )

    sector: Mapped[str | None] = mapped_column(String(100))
    stage: Mapped[Stage | None] = mapped_column()
    funding_ask: Mapped[Decimal | None] = mapped_column(Numeric(19, 4))
    geography: Mapped[str | None] = mapped_column(String(100))
    is_certified: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )

    def __repr__(self) -> str:
        return f"<Sme(id={self.id}, name={self.name!r}, sector={self.sector!r})>"
