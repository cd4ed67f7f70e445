"""Parent account repository: in-memory and PostgreSQL-backed.

Parents are always looked up inside a tenant; there is no cross-tenant query.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tutorhub.models.database import Parent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseParentRepository:
    """PostgreSQL-backed parent store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self, tenant_id: str, email: str, first_name: str = "", last_name: str = ""
    ) -> Parent:
        async with AsyncSession(self._engine) as session:
            parent = Parent(
                tenant_id=tenant_id, email=email, first_name=first_name, last_name=last_name
            )
            session.add(parent)
            await session.commit()
            await session.refresh(parent)
            logger.info("parent_created", parent_id=parent.id, tenant_id=tenant_id)
            return parent

    async def get(self, tenant_id: str, parent_id: str) -> Parent | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(Parent).where(
                col(Parent.tenant_id) == tenant_id,
                col(Parent.id) == parent_id,
                col(Parent.is_active).is_(True),
            )
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get_by_email(self, tenant_id: str, email: str) -> Parent | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(Parent).where(
                col(Parent.tenant_id) == tenant_id,
                col(Parent.email) == email,
                col(Parent.is_active).is_(True),
            )
            result = await session.execute(stmt)
            return result.scalars().first()


class InMemoryParentRepository:
    """In-memory fallback for dev/testing without a database."""

    def __init__(self) -> None:
        self._parents: dict[str, Parent] = {}

    async def create(
        self, tenant_id: str, email: str, first_name: str = "", last_name: str = ""
    ) -> Parent:
        parent = Parent(
            tenant_id=tenant_id, email=email, first_name=first_name, last_name=last_name
        )
        self._parents[parent.id] = parent
        logger.info("parent_created", parent_id=parent.id, tenant_id=tenant_id)
        return parent

    async def get(self, tenant_id: str, parent_id: str) -> Parent | None:
        parent = self._parents.get(parent_id)
        if parent and parent.tenant_id == tenant_id and parent.is_active:
            return parent
        return None

    async def get_by_email(self, tenant_id: str, email: str) -> Parent | None:
        return next(
            (
                p
                for p in self._parents.values()
                if p.tenant_id == tenant_id and p.email == email and p.is_active
            ),
            None,
        )
