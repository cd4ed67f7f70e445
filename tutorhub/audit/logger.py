"""Immutable, insert-only audit trail.

Uses its own DB session so audit entries survive transaction rollbacks.
Details JSON is sanitized (sensitive fields stripped, 10KB max).
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
from sqlmodel.ext.asyncio.session import AsyncSession

from tutorhub.models.database import AuditEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tutorhub.types import ActorType

logger = structlog.get_logger(__name__)

# Fields to strip from details_json
_SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "secret",
        "token",
        "raw_token",
        "token_hash",
        "email",
        "api_key",
        "authorization",
        "cookie",
        "session",
        "session_token",
        "pepper",
    }
)

_MAX_DETAILS_BYTES = 10_240  # 10KB


def _sanitize_details(details: dict[str, Any]) -> str:
    """Strip sensitive fields and enforce size limit."""
    sanitized = {k: v for k, v in details.items() if k.lower() not in _SENSITIVE_FIELDS}
    encoded = json.dumps(sanitized, default=str)
    if len(encoded) > _MAX_DETAILS_BYTES:
        encoded = encoded[:_MAX_DETAILS_BYTES]
    return encoded


class AuditLogger:
    """Insert-only audit logger with its own DB session.

    The separate session ensures audit entries persist even if the
    calling transaction rolls back.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def log(
        self,
        *,
        action: str,
        actor_type: ActorType,
        tenant_id: str | None = None,
        actor_id: str = "",
        details: dict[str, Any] | None = None,
        ip_hash: str = "",
        request_id: str = "",
    ) -> None:
        """Write an audit event."""
        event = AuditEvent(
            tenant_id=tenant_id,
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            details_json=_sanitize_details(details or {}),
            ip_hash=ip_hash,
            request_id=request_id,
        )
        try:
            async with AsyncSession(self._engine) as session:
                session.add(event)
                await session.commit()
        except Exception:
            # Audit must never break the request
            logger.exception("audit_log_failed", action=action, tenant_id=tenant_id)


class NullAuditLogger:
    """Audit sink used when no database is configured (single-process / dev mode)."""

    async def log(
        self,
        *,
        action: str,
        actor_type: ActorType,
        tenant_id: str | None = None,
        actor_id: str = "",
        details: dict[str, Any] | None = None,
        ip_hash: str = "",
        request_id: str = "",
    ) -> None:
        logger.debug("audit_event", action=action, actor_type=actor_type, tenant_id=tenant_id)


class MemoryAuditLogger(NullAuditLogger):
    """Keeps sanitized events in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def log(
        self,
        *,
        action: str,
        actor_type: ActorType,
        tenant_id: str | None = None,
        actor_id: str = "",
        details: dict[str, Any] | None = None,
        ip_hash: str = "",
        request_id: str = "",
    ) -> None:
        self.events.append(
            AuditEvent(
                tenant_id=tenant_id,
                actor_type=actor_type,
                actor_id=actor_id,
                action=action,
                details_json=_sanitize_details(details or {}),
                ip_hash=ip_hash,
                request_id=request_id,
            )
        )

    def actions(self) -> list[str]:
        return [e.action for e in self.events]
