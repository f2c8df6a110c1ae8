from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import Numeric
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from matchmaking.core.config import settings

logger = structlog.get_logger()


def _engine_options(url: str) -> dict[str, Any]:
    if not url.startswith("postgresql"):
        return {}
    return {
        "pool_size": 20,
        "max_overflow": 10,
        "pool_pre_ping": True,               # Drop stale connections before use
        "pool_recycle": 1800,                 # Recycle connections every 30 min
        "pool_timeout": 30,                   # Wait max 30s for a pool connection before raising
        "connect_args": {
            "server_settings": {
                "statement_timeout": "30000",                    # 30s max per SQL statement
                "idle_in_transaction_session_timeout": "60000",  # Kill idle-in-tx sessions after 60s
                "lock_timeout": "10000",                         # 10s max waiting for a row lock
            },
            "command_timeout": 30,
        },
    }


def build_engine(url: str, **overrides: Any) -> AsyncEngine:
    options = _engine_options(url)
    options.update(overrides)
    return create_async_engine(url, echo=settings.APP_DEBUG, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)
async_session_factory = build_session_factory(engine)


class Base(DeclarativeBase):
    type_annotation_map = {
        Decimal: Numeric(19, 4),
    }

