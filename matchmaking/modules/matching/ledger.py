"""Interest ledger: durable, idempotent one-sided interest with exactly-once mutual sealing.

Per (investor, SME) pair the state is NONE → ONE_SIDED(direction) → MUTUAL.
Every write runs as one transaction on the pair's ``interest_pairs`` row:

1. insert the pair row if absent,
2. set this direction's timestamp with ``UPDATE … WHERE <column> IS NULL``
   (the compare-and-swap; exactly one writer per direction ever wins),
3. read back the opposite direction's timestamp,
4. append the InterestRecord.

The write timeout covers the lock wait and these statements, not the commit:
once the commit is issued it runs to completion and its outcome is reported.
Advisor match and verification marks use the same guarded UPDATE on their own
columns and never touch the interest directions.

Under PostgreSQL the guarded UPDATE takes the row lock, so two opposite
writers are serialised and only the later one sees the other's timestamp.
Within one process writers for the same pair also queue on a per-pair lock.
Notifications go out after commit and never fail the write.
"""

from __future__ import annotations

import asyncio
import re
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Collection, Hashable
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchmaking.core.errors import NotConfigured, StorageTransientError, ValidationError
from matchmaking.models.base import utcnow
from matchmaking.models.enums import InterestDirection, InterestEventKind
from matchmaking.models.interest import InterestPair, InterestRecord
from matchmaking.modules.matching.domain import (
    InterestEvent,
    InterestOutcome,
    InterestStatus,
    PairMark,
)
from matchmaking.modules.matching.notifications import (
    LogNotificationEmitter,
    NotificationEmitter,
)

logger = structlog.get_logger()

_T = TypeVar("_T")

ID_PATTERN = r"^[A-Za-z0-9_-]+$"
MAX_ID_LENGTH = 64
MAX_MESSAGE_LENGTH = 2000

# Above this many ids the IN filter is applied in Python instead of SQL.
_IN_CLAUSE_LIMIT = 500

_DIRECTION_COLUMNS = {
    InterestDirection.INVESTOR_TO_SME: (
        InterestPair.investor_interested_at,
        InterestPair.sme_interested_at,
    ),
    InterestDirection.SME_TO_INVESTOR: (
        InterestPair.sme_interested_at,
        InterestPair.investor_interested_at,
    ),
}


class InterestCommand(BaseModel):
    investor_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    sme_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, pattern=ID_PATTERN)
    direction: InterestDirection
    message: str | None = Field(None, max_length=MAX_MESSAGE_LENGTH)


def _validation_error(exc: PydanticValidationError) -> ValidationError:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    fields = ", ".join(e["field"] for e in errors)
    return ValidationError(f"Invalid interest request: {fields}", detail=errors)


def validate_party_id(value: Any, field: str) -> str:
    if (
        not isinstance(value, str)
        or not 0 < len(value) <= MAX_ID_LENGTH
        or not re.match(ID_PATTERN, value)
    ):
        raise ValidationError(f"Invalid {field}", detail={"field": field})
    return value


class KeyedLock:
    """One asyncio.Lock per key, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]


def _insert_ignore(session: AsyncSession, model: type, **values: Any):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model)
    elif dialect == "sqlite":
        stmt = sqlite_insert(model)
    else:
        raise NotConfigured(f"Interest ledger does not support the {dialect!r} dialect")
    keys = [column.name for column in model.__table__.primary_key.columns]
    return stmt.values(**values).on_conflict_do_nothing(index_elements=keys)


def _pair_key(investor_id: str, sme_id: str) -> tuple[Any, Any]:
    return (InterestPair.investor_id == investor_id, InterestPair.sme_id == sme_id)


async def _commit(session: AsyncSession, budget: asyncio.Timeout) -> None:
    # Once the commit starts the write is no longer cancellable.
    budget.reschedule(None)
    await asyncio.shield(session.commit())


class InterestLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        emitter: NotificationEmitter | None = None,
        *,
        write_timeout: float = 5.0,
        notify_timeout: float = 2.0,
    ) -> None:
        self._session_factory = session_factory
        self._emitter = emitter or LogNotificationEmitter()
        self._write_timeout = write_timeout
        self._notify_timeout = notify_timeout
        self._locks = KeyedLock()

    # ── Writes ─────────────────────────────────────────────────────────────

    async def express_interest(
        self,
        investor_id: str,
        sme_id: str,
        direction: InterestDirection | str,
        message: str | None = None,
    ) -> InterestOutcome:
        try:
            cmd = InterestCommand(
                investor_id=investor_id,
                sme_id=sme_id,
                direction=direction,
                message=message,
            )
        except PydanticValidationError as exc:
            raise _validation_error(exc) from exc

        outcome = await self._guarded_write(
            (cmd.investor_id, cmd.sme_id, cmd.direction.value),
            partial(self._write, cmd),
        )

        logger.info(
            "interest_expressed",
            investor_id=cmd.investor_id,
            sme_id=cmd.sme_id,
            direction=cmd.direction.value,
            recorded=outcome.recorded,
            mutual=outcome.mutual,
        )

        if outcome.recorded:
            kind = (
                InterestEventKind.MUTUAL_INTEREST
                if outcome.mutual
                else InterestEventKind.ONE_SIDED_INTEREST
            )
            if outcome.mutual:
                logger.info(
                    "mutual_interest_sealed",
                    investor_id=cmd.investor_id,
                    sme_id=cmd.sme_id,
                )
            await self._emit(
                InterestEvent(
                    kind=kind,
                    investor_id=cmd.investor_id,
                    sme_id=cmd.sme_id,
                    direction=cmd.direction,
                    message=cmd.message,
                )
            )
        return outcome

    async def mark_advisor_match(
        self, investor_id: str, sme_id: str, advisor_id: str | None = None
    ) -> PairMark:
        """Flag the pair as matched by an advisor. Independent of either interest direction."""
        return await self._mark(
            investor_id,
            sme_id,
            InterestPair.advisor_matched_at,
            InterestPair.advisor_matched_by,
            advisor_id,
        )

    async def mark_verified(
        self, investor_id: str, sme_id: str, verifier_id: str | None = None
    ) -> PairMark:
        """Record that an advisor has reviewed and verified the pair's match."""
        return await self._mark(
            investor_id,
            sme_id,
            InterestPair.verified_at,
            InterestPair.verified_by,
            verifier_id,
        )

    async def _mark(
        self,
        investor_id: str,
        sme_id: str,
        at_column: Any,
        by_column: Any,
        actor_id: str | None,
    ) -> PairMark:
        validate_party_id(investor_id, "investor_id")
        validate_party_id(sme_id, "sme_id")
        if actor_id is not None:
            validate_party_id(actor_id, "actor_id")
        return await self._guarded_write(
            (investor_id, sme_id, at_column.key),
            partial(self._write_mark, investor_id, sme_id, at_column, by_column, actor_id),
        )

    async def _guarded_write(
        self,
        key: tuple[str, str, str],
        write: Callable[[asyncio.Timeout], Awaitable[_T]],
    ) -> _T:
        """Run ``write`` under the pair lock with a deadline that ends at commit.

        Lock waits and statements count against ``write_timeout``; the commit
        does not, so a write that lands is always reported as landed.
        """
        try:
            async with asyncio.timeout(self._write_timeout) as budget:
                async with self._locks.hold(key[:2]):
                    return await write(budget)
        except TimeoutError as exc:
            logger.error("ledger_write_timeout", timeout=self._write_timeout, key=key)
            raise StorageTransientError(
                "Interest ledger write timed out", idempotency_key=key
            ) from exc
        except SQLAlchemyError as exc:
            logger.error("ledger_write_failed", error=str(exc), key=key)
            raise StorageTransientError(
                "Interest ledger write failed", idempotency_key=key
            ) from exc

    async def _write(self, cmd: InterestCommand, budget: asyncio.Timeout) -> InterestOutcome:
        own_column, other_column = _DIRECTION_COLUMNS[cmd.direction]
        pair_key = _pair_key(cmd.investor_id, cmd.sme_id)
        now = utcnow()

        async with self._session_factory() as session:
            await session.execute(
                _insert_ignore(
                    session,
                    InterestPair,
                    investor_id=cmd.investor_id,
                    sme_id=cmd.sme_id,
                    created_at=now,
                )
            )
            claimed = await session.execute(
                update(InterestPair)
                .where(*pair_key, own_column.is_(None))
                .values({own_column: now})
                .execution_options(synchronize_session=False)
            )
            recorded = claimed.rowcount == 1

            other_at = (
                await session.execute(select(other_column).where(*pair_key))
            ).scalar_one()

            if recorded:
                await session.execute(
                    _insert_ignore(
                        session,
                        InterestRecord,
                        investor_id=cmd.investor_id,
                        sme_id=cmd.sme_id,
                        direction=cmd.direction,
                        message=cmd.message,
                        created_at=now,
                    )
                )
            await _commit(session, budget)

        # Own direction is set either way, so the pair is mutual iff the other one is too.
        return InterestOutcome(recorded=recorded, mutual=other_at is not None)

    async def _write_mark(
        self,
        investor_id: str,
        sme_id: str,
        at_column: Any,
        by_column: Any,
        actor_id: str | None,
        budget: asyncio.Timeout,
    ) -> PairMark:
        pair_key = _pair_key(investor_id, sme_id)
        now = utcnow()

        async with self._session_factory() as session:
            await session.execute(
                _insert_ignore(
                    session,
                    InterestPair,
                    investor_id=investor_id,
                    sme_id=sme_id,
                    created_at=now,
                )
            )
            claimed = await session.execute(
                update(InterestPair)
                .where(*pair_key, at_column.is_(None))
                .values({at_column: now, by_column: actor_id})
                .execution_options(synchronize_session=False)
            )
            recorded = claimed.rowcount == 1
            marked_at = (
                await session.execute(select(at_column).where(*pair_key))
            ).scalar_one()
            await _commit(session, budget)

        return PairMark(recorded=recorded, marked_at=marked_at)

    async def _emit(self, event: InterestEvent) -> None:
        try:
            await asyncio.wait_for(self._emitter.notify(event), timeout=self._notify_timeout)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "notification_failed",
                error=str(exc) or type(exc).__name__,
                **event.to_dict(),
            )

    # ── Reads ──────────────────────────────────────────────────────────────

    async def get_status(self, investor_id: str, sme_id: str) -> InterestStatus:
        validate_party_id(investor_id, "investor_id")
        validate_party_id(sme_id, "sme_id")
        statuses = await self.get_statuses([investor_id], [sme_id])
        return statuses.get((investor_id, sme_id), InterestStatus())

    async def get_statuses(
        self,
        investor_ids: Collection[str] | None = None,
        sme_ids: Collection[str] | None = None,
    ) -> dict[tuple[str, str], InterestStatus]:
        """Sparse map of pairs with a ledger row; absent pairs have no interest or marks."""
        if investor_ids is not None and not investor_ids:
            return {}
        if sme_ids is not None and not sme_ids:
            return {}

        stmt = select(InterestPair)
        if investor_ids is not None and len(investor_ids) <= _IN_CLAUSE_LIMIT:
            stmt = stmt.where(InterestPair.investor_id.in_(list(investor_ids)))
        if sme_ids is not None and len(sme_ids) <= _IN_CLAUSE_LIMIT:
            stmt = stmt.where(InterestPair.sme_id.in_(list(sme_ids)))

        pairs = await self._read(stmt)
        investor_set = set(investor_ids) if investor_ids is not None else None
        sme_set = set(sme_ids) if sme_ids is not None else None
        return {
            (p.investor_id, p.sme_id): InterestStatus(
                investor_interested=p.investor_interested_at is not None,
                sme_interested=p.sme_interested_at is not None,
                advisor_matched=p.advisor_matched_at is not None,
                verified=p.verified_at is not None,
            )
            for p in pairs
            if (investor_set is None or p.investor_id in investor_set)
            and (sme_set is None or p.sme_id in sme_set)
        }

    async def list_interests(
        self,
        *,
        investor_id: str | None = None,
        sme_id: str | None = None,
        direction: InterestDirection | None = None,
    ) -> list[InterestRecord]:
        """Interest records, oldest first, optionally narrowed to one party or direction."""
        stmt = select(InterestRecord).order_by(
            InterestRecord.created_at.asc(),
            InterestRecord.investor_id.asc(),
            InterestRecord.sme_id.asc(),
        )
        if investor_id is not None:
            stmt = stmt.where(
                InterestRecord.investor_id == validate_party_id(investor_id, "investor_id")
            )
        if sme_id is not None:
            stmt = stmt.where(InterestRecord.sme_id == validate_party_id(sme_id, "sme_id"))
        if direction is not None:
            stmt = stmt.where(InterestRecord.direction == direction)
        return await self._read(stmt)

    async def _read(self, stmt) -> list[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.scalars().all())
        except SQLAlchemyError as exc:
            logger.error("ledger_read_failed", error=str(exc))
            raise StorageTransientError("Interest ledger read failed") from exc
