"""Request-scoped identity values: tenant, principal, authorized context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from tutorhub.types import Role

if TYPE_CHECKING:
    from tutorhub.models.database import Tenant, UserSession


@dataclass(frozen=True, slots=True)
class TenantContext:
    """Tenant resolved for the current request. Never cached across requests."""

    tenant_id: str
    slug: str
    name: str
    timezone: str = "UTC"
    support_email: str | None = None

    @classmethod
    def from_model(cls, tenant: Tenant) -> TenantContext:
        return cls(
            tenant_id=tenant.id,
            slug=tenant.slug,
            name=tenant.name,
            timezone=tenant.timezone,
            support_email=tenant.support_email,
        )


@dataclass(frozen=True, slots=True)
class Principal:
    """Claims carried by an authenticated session."""

    user_id: str
    role: Role
    tenant_id: str
    parent_id: str | None = None
    email: str = ""

    @classmethod
    def from_record(cls, record: UserSession) -> Principal:
        return cls(
            user_id=record.user_id,
            role=Role(record.role),
            tenant_id=record.tenant_id,
            parent_id=record.parent_id,
            email=record.email,
        )


@dataclass(frozen=True, slots=True)
class Membership:
    tenant_id: str
    user_id: str
    role: Role


@dataclass(frozen=True, slots=True)
class AuthorizedContext:
    """Output of the RBAC gate; downstream handlers treat it as authoritative."""

    tenant: TenantContext
    user: Principal
    membership: Membership

    @property
    def role(self) -> Role:
        return self.membership.role

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant": {
                "id": self.tenant.tenant_id,
                "slug": self.tenant.slug,
                "name": self.tenant.name,
                "timezone": self.tenant.timezone,
            },
            "user": {
                "id": self.user.user_id,
                "email": self.user.email,
                "parentId": self.user.parent_id,
            },
            "membership": {"tenantId": self.membership.tenant_id, "role": self.role.value},
        }
