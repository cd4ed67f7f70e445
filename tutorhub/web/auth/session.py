"""Cookie-based session authentication."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import timedelta
from typing import TYPE_CHECKING, Protocol

import structlog

from tutorhub.models.database import UserSession, _utc_now
from tutorhub.web.tenant_context import Principal

if TYPE_CHECKING:
    from tutorhub.types import Clock

logger = structlog.get_logger(__name__)


class SessionStore(Protocol):
    async def add(self, record: UserSession) -> None: ...

    async def get(self, session_id: str) -> UserSession | None: ...

    async def delete(self, session_id: str) -> None: ...


class SessionAuth:
    """Signed session tokens (``<id>.<hmac>``) backed by a session store."""

    def __init__(
        self,
        secret_key: str,
        store: SessionStore,
        max_age: int = 86400,
        clock: Clock = _utc_now,
    ) -> None:
        self._secret = secret_key.encode()
        self._store = store
        self._max_age = max_age
        self._clock = clock

    @property
    def max_age(self) -> int:
        return self._max_age

    def new_session(self, principal: Principal) -> tuple[UserSession, str]:
        """Build a session record and its signed token without persisting it."""
        session_id = secrets.token_urlsafe(32)
        now = self._clock()
        record = UserSession(
            id=session_id,
            user_id=principal.user_id,
            tenant_id=principal.tenant_id,
            role=principal.role,
            parent_id=principal.parent_id,
            email=principal.email,
            created_at=now,
            expires_at=now + timedelta(seconds=self._max_age),
        )
        return record, f"{session_id}.{self._sign(session_id)}"

    async def create_session(self, principal: Principal) -> str:
        """Create and persist a new session and return the token."""
        record, token = self.new_session(principal)
        await self._store.add(record)
        logger.info(
            "session_created",
            user_id=principal.user_id,
            tenant_id=principal.tenant_id,
            role=principal.role,
        )
        return token

    async def validate_session(self, token: str | None) -> Principal | None:
        """Validate a session token and return its claims. Read-only."""
        session_id = self._verified_id(token)
        if session_id is None:
            return None

        record = await self._store.get(session_id)
        if record is None:
            return None

        if self._clock() >= record.expires_at:
            return None

        return Principal.from_record(record)

    async def destroy_session(self, token: str | None) -> None:
        """Remove a session."""
        session_id = self._verified_id(token)
        if session_id is None:
            return
        await self._store.delete(session_id)
        logger.info("session_destroyed")

    def _verified_id(self, token: str | None) -> str | None:
        if not token or "." not in token:
            return None
        session_id, signature = token.rsplit(".", 1)
        if not hmac.compare_digest(signature, self._sign(session_id)):
            return None
        return session_id

    def _sign(self, data: str) -> str:
        """Create HMAC signature for a token."""
        return hmac.new(self._secret, data.encode(), hashlib.sha256).hexdigest()[:32]
