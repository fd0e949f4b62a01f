"""Device-local datastore — one async engine, many readers, one writer.

Reads open a plain session. Writes go through ``write()``, which
serialises writers on an ``asyncio.Lock`` and commits (or rolls back) on
exit, so read-check-write sequences such as nonce allocation never
interleave across suspension points.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from offline_pay.datastore.engines import create_engine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.orm import DeclarativeBase

    from offline_pay.config.settings import DatabaseConfig

logger = logging.getLogger(__name__)

_ERR_NOT_OPEN = "Datastore is not open. Call open() first."


class Datastore:
    """Engine, session factory and writer lock for the local store.

    Usage::

        ds = Datastore(db_config)
        await ds.open(base=Base)
        async with ds.write() as session:
            session.add(record)
        async with ds.session() as session:
            ...
        await ds.close()
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self._config = config
        self._engine: AsyncEngine | None = None
        self._sessions: async_sessionmaker[AsyncSession] | None = None
        self._writer = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError(_ERR_NOT_OPEN)
        return self._engine

    async def open(self, *, base: type[DeclarativeBase] | None = None) -> None:
        """Create the engine; with *base*, also create any missing tables.

        Calling ``open`` on an open datastore is a no-op.
        """
        if self._engine is not None:
            return
        self._engine = create_engine(self._config)
        self._sessions = async_sessionmaker(self._engine, expire_on_commit=False)
        if base is not None:
            async with self._engine.begin() as conn:
                await conn.run_sync(base.metadata.create_all)
        logger.debug("Datastore open (%s)", self._config.engine)

    async def close(self) -> None:
        """Dispose the engine. Idempotent."""
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._sessions = None

    def session(self) -> AsyncSession:
        """A read session; use it as an async context manager."""
        if self._sessions is None:
            raise RuntimeError(_ERR_NOT_OPEN)
        return self._sessions()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[AsyncSession]:
        """Exclusive write session, committed on success and rolled back on error."""
        async with self._writer, self.session() as session:
            try:
                yield session
                await session.commit()
            except BaseException:
                await session.rollback()
                raise
