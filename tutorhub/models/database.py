"""SQLModel database table models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from tutorhub.types import Role


def _utc_now() -> datetime:
    """Return current UTC time as naive datetime for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def _new_uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Identity layer
# ---------------------------------------------------------------------------


class Tenant(SQLModel, table=True):
    __tablename__ = "tenants"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    slug: str = Field(unique=True, index=True)  # lowercase, URL-safe
    name: str
    timezone: str = Field(default="UTC")
    support_email: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    email: str = Field(unique=True, index=True)  # normalized
    name: str = ""
    password_hash: str = ""
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


class TenantMembership(SQLModel, table=True):
    __tablename__ = "tenant_memberships"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    role: str = Field(default=Role.TUTOR.value)  # Owner | Admin | Tutor
    created_at: datetime = Field(default_factory=_utc_now)


class Parent(SQLModel, table=True):
    __tablename__ = "parents"
    __table_args__ = (UniqueConstraint("tenant_id", "email"),)

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    email: str = Field(index=True)  # normalized
    first_name: str = ""
    last_name: str = ""
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utc_now)


class UserSession(SQLModel, table=True):
    __tablename__ = "user_sessions"

    id: str = Field(primary_key=True)
    user_id: str = Field(index=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    role: str
    parent_id: str | None = None
    email: str = ""
    created_at: datetime = Field(default_factory=_utc_now)
    expires_at: datetime


# ---------------------------------------------------------------------------
# Authentication subsystem (never exposed outside it)
# ---------------------------------------------------------------------------


class MagicLinkToken(SQLModel, table=True):
    __tablename__ = "magic_link_tokens"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str = Field(foreign_key="tenants.id", index=True)
    parent_id: str = Field(foreign_key="parents.id", index=True)
    token_hash: str = Field(unique=True, index=True)
    identifier_hash: str = Field(index=True)
    created_ip_hash: str | None = None
    issued_at: datetime = Field(default_factory=_utc_now)
    expires_at: datetime = Field(index=True)
    consumed_at: datetime | None = Field(default=None, index=True)


class ThrottleRecord(SQLModel, table=True):
    __tablename__ = "throttle_records"

    scope_key: str = Field(primary_key=True)
    window_start: datetime
    attempt_count: int = Field(default=0)
    cooldown_until: datetime | None = None
    updated_at: datetime = Field(default_factory=_utc_now)


class AuditEvent(SQLModel, table=True):
    __tablename__ = "audit_events"

    id: str = Field(default_factory=_new_uuid, primary_key=True)
    tenant_id: str | None = Field(default=None, index=True)
    actor_type: str
    actor_id: str = ""
    action: str = Field(index=True)
    details_json: str = "{}"
    ip_hash: str = ""
    request_id: str = ""
    occurred_at: datetime = Field(default_factory=_utc_now, index=True)
