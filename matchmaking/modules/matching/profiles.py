"""Profile store: read-only source of investor and SME snapshots."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol, runtime_checkable

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchmaking.core.errors import StorageTransientError
from matchmaking.models.enums import InvestorType, Stage
from matchmaking.models.profiles import Investor, Sme
from matchmaking.modules.matching.domain import InvestorProfile, SmeProfile

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProfileFilter:
    ids: frozenset[str] | None = None
    sectors: frozenset[str] | None = None   # SMEs only
    stages: frozenset[Stage] | None = None  # SMEs only
    active_only: bool = True


@runtime_checkable
class ProfileStore(Protocol):
    async def get_investors(self, filter: ProfileFilter | None = None) -> list[InvestorProfile]: ...

    async def get_sme(self, sme_id: str) -> SmeProfile | None: ...

    async def get_smes(self, filter: ProfileFilter | None = None) -> list[SmeProfile]: ...


# ── Coercion from stored rows ─────────────────────────────────────────────────


def _coerce_stages(values: Iterable[Any] | None) -> frozenset[Stage]:
    stages = set()
    for value in values or ():
        try:
            stages.add(Stage(str(value).upper()))
        except ValueError:
            logger.debug("unknown_stage_ignored", stage=value)
    return frozenset(stages)


def _coerce_amount(value: Any) -> Decimal | None:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def investor_from_row(row: Investor) -> InvestorProfile:
    return InvestorProfile(
        id=row.id,
        name=row.name,
        investor_type=row.investor_type or InvestorType.ANGEL,
        preferred_sectors=frozenset(s for s in (row.preferred_sectors or []) if s),
        preferred_stages=_coerce_stages(row.preferred_stages),
        min_ticket=_coerce_amount(row.min_ticket),
        max_ticket=_coerce_amount(row.max_ticket),
        geography_preference=row.geography_preference,
        requires_certification=bool(row.requires_certification),
        is_active=row.is_active,
    )


def sme_from_row(row: Sme) -> SmeProfile:
    return SmeProfile(
        id=row.id,
        name=row.name,
        sector=row.sector,
        stage=row.stage,
        funding_ask=_coerce_amount(row.funding_ask),
        geography=row.geography,
        is_certified=bool(row.is_certified),
        is_active=row.is_active,
    )


def _fold_sector(value: str) -> str:
    return value.strip().lower()


def _fold_sectors(values: Iterable[str]) -> list[str]:
    return sorted({_fold_sector(v) for v in values})


def _sme_matches(sme: SmeProfile, flt: ProfileFilter) -> bool:
    if flt.ids is not None and sme.id not in flt.ids:
        return False
    if flt.active_only and not sme.is_active:
        return False
    if flt.sectors is not None and (
        sme.sector is None or _fold_sector(sme.sector) not in _fold_sectors(flt.sectors)
    ):
        return False
    if flt.stages is not None and sme.stage not in flt.stages:
        return False
    return True


# ── Adapters ──────────────────────────────────────────────────────────────────


class InMemoryProfileStore:
    """Profiles held in memory, e.g. a snapshot handed in by the onboarding service."""

    def __init__(
        self,
        investors: Sequence[InvestorProfile] = (),
        smes: Sequence[SmeProfile] = (),
    ) -> None:
        self._investors = {i.id: i for i in investors}
        self._smes = {s.id: s for s in smes}

    async def get_investors(self, filter: ProfileFilter | None = None) -> list[InvestorProfile]:
        flt = filter or ProfileFilter()
        return [
            i
            for i in sorted(self._investors.values(), key=lambda i: i.id)
            if (flt.ids is None or i.id in flt.ids) and (not flt.active_only or i.is_active)
        ]

    async def get_sme(self, sme_id: str) -> SmeProfile | None:
        return self._smes.get(sme_id)

    async def get_smes(self, filter: ProfileFilter | None = None) -> list[SmeProfile]:
        flt = filter or ProfileFilter()
        return [
            s for s in sorted(self._smes.values(), key=lambda s: s.id) if _sme_matches(s, flt)
        ]


class SqlProfileStore:
    """Reads the ``investor_profiles`` and ``sme_profiles`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _fetch(self, stmt) -> list[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.error("profile_store_read_failed", error=str(exc))
            raise StorageTransientError("Profile store read failed") from exc

    async def get_investors(self, filter: ProfileFilter | None = None) -> list[InvestorProfile]:
        flt = filter or ProfileFilter()
        stmt = select(Investor).order_by(Investor.id)
        if flt.ids is not None:
            stmt = stmt.where(Investor.id.in_(sorted(flt.ids)))
        if flt.active_only:
            stmt = stmt.where(Investor.is_active.is_(True))
        return [investor_from_row(row) for row in await self._fetch(stmt)]

    async def get_sme(self, sme_id: str) -> SmeProfile | None:
        rows = await self._fetch(select(Sme).where(Sme.id == sme_id))
        return sme_from_row(rows[0]) if rows else None

    async def get_smes(self, filter: ProfileFilter | None = None) -> list[SmeProfile]:
        flt = filter or ProfileFilter()
        stmt = select(Sme).order_by(Sme.id)
        if flt.ids is not None:
            stmt = stmt.where(Sme.id.in_(sorted(flt.ids)))
        if flt.active_only:
            stmt = stmt.where(Sme.is_active.is_(True))
        if flt.sectors is not None:
            stmt = stmt.where(func.lower(func.trim(Sme.sector)).in_(_fold_sectors(flt.sectors)))
        if flt.stages is not None:
            stmt = stmt.where(Sme.stage.in_(sorted(flt.stages, key=lambda s: s.value)))
        return [sme_from_row(row) for row in await self._fetch(stmt)]
