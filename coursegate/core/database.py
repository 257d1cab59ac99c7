"""
Database engine and sessions.

One engine per process, created lazily from settings. A unit of work is one
session: it commits when the caller finishes cleanly and rolls back when the
caller raises. FastAPI routes get it through ``DbSession``; the arq worker
opens one per job with ``get_db_context``.
"""

import ssl
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from coursegate.config import Settings, get_settings
from coursegate.models.orm.base import Base  # noqa: F401 - imported for Alembic

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _ssl_connect_args(sslmode: str) -> dict[str, Any]:
    """Translate a libpq ``sslmode`` into asyncpg's ``ssl`` connect argument."""
    if sslmode == "prefer":
        return {"ssl": "prefer"}
    if sslmode not in ("require", "verify-ca", "verify-full"):
        return {}

    context = ssl.create_default_context()
    if sslmode != "verify-full":
        context.check_hostname = False
    if sslmode == "require":
        context.verify_mode = ssl.CERT_NONE
    return {"ssl": context}


def _engine_options(settings: Settings) -> tuple[str, dict[str, Any]]:
    """
    Build the URL and keyword arguments for ``create_async_engine``.

    asyncpg rejects ``sslmode`` in the query string, so it is stripped out and
    passed as ``connect_args``. Non-PostgreSQL URLs (SQLite in tests) get no
    pool sizing.
    """
    url = settings.database_url
    if not url.startswith("postgresql"):
        return url, {"echo": settings.debug}

    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    sslmode = query.pop("sslmode", [""])[0]
    cleaned = urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    return cleaned, {
        "echo": settings.debug,
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
        "connect_args": _ssl_connect_args(sslmode),
    }


def get_engine(settings: Settings | None = None) -> AsyncEngine:
    global _engine

    if _engine is None:
        url, options = _engine_options(settings or get_settings())
        _engine = create_async_engine(url, **options)
    return _engine


def get_session_factory(settings: Settings | None = None) -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(settings),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a unit of work outside a request.

    Usage:
        async with get_db_context() as db:
            await PasskeyRegistry(db).reconcile_expired()
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one unit of work per request."""
    async with get_db_context() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def init_db() -> None:
    """Open one connection at startup so a bad DSN fails fast."""
    async with get_engine().connect():
        pass


async def close_db() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
