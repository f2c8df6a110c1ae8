"""Interest ledger models: InterestPair, InterestRecord."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from matchmaking.core.database import Base
from matchmaking.models.base import ModelMixin, utcnow
from matchmaking.models.enums import InterestDirection, InterestState


class InterestPair(Base, ModelMixin):
    """One row per (investor, SME) pair; the compare-and-swap point for mutual detection.

    Each direction column is written at most once (guarded ``IS NULL`` update).
    Mutual interest is both columns being set; it has no column of its own.
    Advisor match and verification are pair-level marks, written the same way.
    """

    __tablename__ = "interest_pairs"
    __table_args__ = (
        Index("ix_interest_pairs_sme_id", "sme_id"),
    )

    investor_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sme_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    investor_interested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    sme_interested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    advisor_matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    advisor_matched_by: Mapped[str | None] = mapped_column(String(64))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    verified_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    @property
    def state(self) -> InterestState:
        if self.investor_interested_at and self.sme_interested_at:
            return InterestState.MUTUAL
        if self.investor_interested_at or self.sme_interested_at:
            return InterestState.ONE_SIDED
        return InterestState.NONE

    def __repr__(self) -> str:
        return (
            f"<InterestPair(investor_id={self.investor_id}, sme_id={self.sme_id}, "
            f"state={self.state.value})>"
        )


class InterestRecord(Base, ModelMixin):
    """Append-only record of one party's interest; never updated or deleted."""

    __tablename__ = "interest_records"
    __table_args__ = (
        Index("ix_interest_records_sme_id", "sme_id"),
    )

    investor_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sme_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    direction: Mapped[InterestDirection] = mapped_column(primary_key=True)
    message: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<InterestRecord(investor_id={self.investor_id}, sme_id={self.sme_id}, "
            f"direction={self.direction.value})>"
        )
