"""Session record stores: in-memory and PostgreSQL-backed."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from sqlalchemy import delete
from sqlmodel import col
from sqlmodel.ext.asyncio.session import AsyncSession

from tutorhub.models.database import UserSession

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class DatabaseSessionStore:
    """PostgreSQL-backed session records."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def add(self, record: UserSession) -> None:
        async with AsyncSession(self._engine) as session:
            session.add(record)
            await session.commit()

    async def get(self, session_id: str) -> UserSession | None:
        async with AsyncSession(self._engine) as session:
            return await session.get(UserSession, session_id)

    async def delete(self, session_id: str) -> None:
        async with AsyncSession(self._engine) as session:
            await session.execute(delete(UserSession).where(col(UserSession.id) == session_id))
            await session.commit()


class InMemorySessionStore:
    """Process-local session records for dev/testing.

    ``put`` is synchronous so the magic-link repository can write a session
    under its own lock in the same step that consumes a token.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, UserSession] = {}
        self._lock = threading.Lock()

    def put(self, record: UserSession) -> None:
        with self._lock:
            self._sessions[record.id] = record

    async def add(self, record: UserSession) -> None:
        self.put(record)

    async def get(self, session_id: str) -> UserSession | None:
        return self._sessions.get(session_id)

    async def delete(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
