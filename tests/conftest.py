"""Shared test fixtures for the matching test suite."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

from collections.abc import AsyncGenerator  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

import matchmaking.models  # noqa: E402,F401
from factories import RecordingEmitter, make_investor, make_sme  # noqa: E402
from matchmaking.core.config import DEFAULT_SCORING_WEIGHTS  # noqa: E402
from matchmaking.core.database import Base, build_engine, build_session_factory  # noqa: E402
from matchmaking.main import app  # noqa: E402
from matchmaking.models.enums import Stage  # noqa: E402
from matchmaking.modules.matching.algorithm import CompatibilityScorer, ScoringWeights  # noqa: E402
from matchmaking.modules.matching.enumerator import MatchEnumerator  # noqa: E402
from matchmaking.modules.matching.ledger import InterestLedger  # noqa: E402
from matchmaking.modules.matching.profiles import InMemoryProfileStore  # noqa: E402
from matchmaking.modules.matching.router import get_matching_service  # noqa: E402
from matchmaking.modules.matching.service import MatchingService  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ── Scoring ───────────────────────────────────────────────────────────────────


@pytest.fixture
def weights() -> ScoringWeights:
    return ScoringWeights.from_mapping(DEFAULT_SCORING_WEIGHTS)


@pytest.fixture
def scorer(weights: ScoringWeights) -> CompatibilityScorer:
    return CompatibilityScorer(weights)


@pytest.fixture
def enumerator(scorer: CompatibilityScorer) -> MatchEnumerator:
    return MatchEnumerator(scorer)


# ── Database ──────────────────────────────────────────────────────────────────


@pytest.fixture
async def db_engine(tmp_path) -> AsyncGenerator[AsyncEngine]:
    """File-backed SQLite so concurrent sessions see each other's commits.

    NullPool avoids sharing aiosqlite connections across tasks.
    """
    engine = build_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'matching.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture
def ledger(
    session_factory: async_sessionmaker[AsyncSession], emitter: RecordingEmitter
) -> InterestLedger:
    return InterestLedger(session_factory, emitter, write_timeout=5.0, notify_timeout=1.0)


# ── Service / API ─────────────────────────────────────────────────────────────


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore(
        investors=[
            make_investor("inv_fintech"),
            make_investor(
                "inv_agri",
                preferred_sectors=frozenset({"Agriculture"}),
                preferred_stages=frozenset({Stage.GROWTH}),
                requires_certification=True,
            ),
            make_investor("inv_dormant", is_active=False),
        ],
        smes=[
            make_sme("sme_pay"),
            make_sme(
                "sme_farm",
                sector="Agriculture",
                stage=Stage.GROWTH,
                funding_ask=Decimal("150000"),
                is_certified=True,
            ),
            make_sme("sme_closed", is_active=False),
        ],
    )


@pytest.fixture
def service(
    profile_store: InMemoryProfileStore,
    ledger: InterestLedger,
    enumerator: MatchEnumerator,
) -> MatchingService:
    return MatchingService(profile_store, ledger, enumerator)


@pytest.fixture
async def client(service: MatchingService) -> AsyncGenerator[AsyncClient]:
    app.dependency_overrides[get_matching_service] = lambda: service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.pop(get_matching_service, None)
