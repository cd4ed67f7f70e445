"""Staff user repository: in-memory and PostgreSQL-backed."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tutorhub.models.database import TenantMembership, User
from tutorhub.types import Role

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = structlog.get_logger(__name__)


class DatabaseUserRepository:
    """PostgreSQL-backed user store."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def create(
        self,
        email: str,
        password_hash: str = "",
        name: str = "",
        tenant_id: str | None = None,
        role: Role = Role.TUTOR,
    ) -> User:
        async with AsyncSession(self._engine) as session:
            user = User(email=email, name=name or email, password_hash=password_hash)
            session.add(user)
            await session.flush()  # populate user.id without committing

            if tenant_id:
                # Membership is written in the same transaction
                session.add(TenantMembership(tenant_id=tenant_id, user_id=user.id, role=role))
            await session.commit()
            await session.refresh(user)

            logger.info("user_created", user_id=user.id, tenant_id=tenant_id, role=role)
            return user

    async def add_membership(self, tenant_id: str, user_id: str, role: Role) -> TenantMembership:
        async with AsyncSession(self._engine) as session:
            membership = TenantMembership(tenant_id=tenant_id, user_id=user_id, role=role)
            session.add(membership)
            await session.commit()
            await session.refresh(membership)
            return membership

    async def get_by_email(self, email: str) -> User | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(User).where(col(User.email) == email, col(User.is_active).is_(True))
            result = await session.execute(stmt)
            return result.scalars().first()

    async def get_membership(self, tenant_id: str, user_id: str) -> TenantMembership | None:
        async with AsyncSession(self._engine) as session:
            stmt = select(TenantMembership).where(
                col(TenantMembership.tenant_id) == tenant_id,
                col(TenantMembership.user_id) == user_id,
            )
            result = await session.execute(stmt)
            return result.scalars().first()


class InMemoryUserRepository:
    """In-memory fallback for dev/testing without a database."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._memberships: dict[tuple[str, str], TenantMembership] = {}

    async def create(
        self,
        email: str,
        password_hash: str = "",
        name: str = "",
        tenant_id: str | None = None,
        role: Role = Role.TUTOR,
    ) -> User:
        user = User(email=email, name=name or email, password_hash=password_hash)
        self._users[user.id] = user
        if tenant_id:
            await self.add_membership(tenant_id, user.id, role)
        logger.info("user_created", user_id=user.id, tenant_id=tenant_id, role=role)
        return user

    async def add_membership(self, tenant_id: str, user_id: str, role: Role) -> TenantMembership:
        membership = TenantMembership(tenant_id=tenant_id, user_id=user_id, role=role)
        self._memberships[(tenant_id, user_id)] = membership
        return membership

    async def get_by_email(self, email: str) -> User | None:
        return next((u for u in self._users.values() if u.email == email and u.is_active), None)

    async def get_membership(self, tenant_id: str, user_id: str) -> TenantMembership | None:
        return self._memberships.get((tenant_id, user_id))
