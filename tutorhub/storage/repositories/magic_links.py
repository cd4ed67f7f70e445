"""Magic-link token repository.

Only token hashes are stored. ``redeem`` marks a token consumed and writes the
new session in one unit: either both happen or neither does.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import update
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tutorhub.models.database import MagicLinkToken, UserSession

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncEngine

    from tutorhub.storage.repositories.sessions import InMemorySessionStore

logger = structlog.get_logger(__name__)


class DatabaseMagicLinkRepository:
    """PostgreSQL-backed token store sharing a transaction with ``user_sessions``."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(self, token: MagicLinkToken) -> MagicLinkToken:
        async with AsyncSession(self._engine) as session:
            session.add(token)
            await session.commit()
            await session.refresh(token)
            logger.info("magic_link_token_created", tenant_id=token.tenant_id)
            return token

    async def get_by_hash(self, token_hash: str) -> MagicLinkToken | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(MagicLinkToken).where(col(MagicLinkToken.token_hash) == token_hash)
            result = await session.execute(stmt)
            return result.scalars().first()

    async def redeem(self, token_id: str, consumed_at: datetime, record: UserSession) -> bool:
        """Consume the token and create the session atomically.

        Returns False when the token was already consumed (including by a
        concurrent request that won the conditional update).
        """
        async with AsyncSession(self._engine) as session:
            stmt = (
                update(MagicLinkToken)
                .where(
                    col(MagicLinkToken.id) == token_id,
                    col(MagicLinkToken.consumed_at).is_(None),
                )
                .values(consumed_at=consumed_at)
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.rollback()
                return False
            session.add(record)
            await session.commit()
            return True


class InMemoryMagicLinkRepository:
    """In-memory token store for dev/testing, paired with the in-memory session store."""

    def __init__(self, sessions: InMemorySessionStore) -> None:
        self._sessions = sessions
        self._tokens: dict[str, MagicLinkToken] = {}
        self._lock = threading.Lock()

    async def create(self, token: MagicLinkToken) -> MagicLinkToken:
        with self._lock:
            if any(t.token_hash == token.token_hash for t in self._tokens.values()):
                msg = "Duplicate magic link token hash"
                raise ValueError(msg)
            self._tokens[token.id] = token
        logger.info("magic_link_token_created", tenant_id=token.tenant_id)
        return token

    async def get_by_hash(self, token_hash: str) -> MagicLinkToken | None:
        token = next((t for t in self._tokens.values() if t.token_hash == token_hash), None)
        return token.model_copy() if token else None

    async def redeem(self, token_id: str, consumed_at: datetime, record: UserSession) -> bool:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None or token.consumed_at is not None:
                return False
            token.consumed_at = consumed_at
            self._sessions.put(record)
            return True
