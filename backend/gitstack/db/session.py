"""Async engine, session scope and declarative base."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Request
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    """UUID4 primary key as a string (portable across SQLite and PostgreSQL)."""
    return str(uuid.uuid4())


def now_ms() -> int:
    """Milliseconds since epoch."""
    return int(time.time() * 1000)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    """SQLite ignores ON DELETE clauses unless foreign_keys is switched on per connection."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Owns the async engine and hands out request-scoped sessions.

    Created once in the app lifespan and passed explicitly to whoever needs it.
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.engine = create_async_engine(url, echo=echo)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        self._async_session = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

    async def init(self) -> None:
        """Create tables if they do not exist."""
        # Import models so they register with Base before create_all
        from gitstack.code import models as _code_models  # noqa: F401
        from gitstack.projects import models as _project_models  # noqa: F401
        from gitstack.snapshots import models as _snapshot_models  # noqa: F401
        from gitstack.users import models as _user_models  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield an async session; commit on success, roll back on any error, always close."""
        async with self._async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields a session from the app's Database."""
    database: Database = request.app.state.database
    async with database.session() as session:
        yield session
