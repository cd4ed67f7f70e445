"""Tenant repository: in-memory and PostgreSQL-backed."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tutorhub.models.database import Tenant

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseTenantRepository:
    """PostgreSQL-backed tenant store. Lookups only; tenants are provisioned explicitly."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self,
        slug: str,
        name: str,
        timezone: str = "UTC",
        support_email: str | None = None,
    ) -> Tenant:
        async with AsyncSession(self._engine) as session:
            tenant = Tenant(slug=slug, name=name, timezone=timezone, support_email=support_email)
            session.add(tenant)
            await session.commit()
            await session.refresh(tenant)
            logger.info("tenant_created", tenant_id=tenant.id, slug=slug)
            return tenant

    async def get_by_slug(self, slug: str) -> Tenant | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(Tenant).where(col(Tenant.slug) == slug)
            result = await session.execute(stmt)
            return result.scalars().first()


class InMemoryTenantRepository:
    """In-memory fallback for dev/testing without a database."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}

    async def create(
        self,
        slug: str,
        name: str,
        timezone: str = "UTC",
        support_email: str | None = None,
    ) -> Tenant:
        if any(t.slug == slug for t in self._tenants.values()):
            msg = f"Tenant slug already exists: {slug}"
            raise ValueError(msg)
        tenant = Tenant(slug=slug, name=name, timezone=timezone, support_email=support_email)
        self._tenants[tenant.id] = tenant
        logger.info("tenant_created", tenant_id=tenant.id, slug=slug)
        return tenant

    async def get_by_slug(self, slug: str) -> Tenant | None:
        return next((t for t in self._tenants.values() if t.slug == slug), None)
