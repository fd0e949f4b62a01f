"""Engine construction for the local store.

SQLite (aiosqlite) is the device default. A file-backed SQLite store runs
in WAL mode so readers are not blocked by the single writer; an in-memory
one is pinned to a single connection. PostgreSQL (asyncpg) gets a pool.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import StaticPool

if TYPE_CHECKING:
    from offline_pay.config.settings import DatabaseConfig

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)


def is_memory_dsn(dsn: str) -> bool:
    return dsn.startswith("sqlite") and (":memory:" in dsn or dsn.rstrip("/").endswith("sqlite"))


def create_engine(config: DatabaseConfig) -> AsyncEngine:
    """Build the async engine described by *config*."""
    dsn = config.dsn
    kwargs: dict[str, Any] = {"echo": config.debug_sql}

    if is_memory_dsn(dsn):
        # The database lives exactly as long as its one connection.
        kwargs["poolclass"] = StaticPool
        kwargs["connect_args"] = {"check_same_thread": False}
        return create_async_engine(dsn, **kwargs)

    if dsn.startswith("sqlite"):
        engine = create_async_engine(dsn, **kwargs)
        event.listen(engine.sync_engine, "connect", _apply_sqlite_pragmas)
        return engine

    kwargs["pool_size"] = config.max_idle_connections
    kwargs["max_overflow"] = max(0, config.max_open_connections - config.max_idle_connections)
    kwargs["pool_pre_ping"] = True
    return create_async_engine(dsn, **kwargs)


def _apply_sqlite_pragmas(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for pragma in _SQLITE_PRAGMAS:
            cursor.execute(pragma)
    finally:
        cursor.close()
