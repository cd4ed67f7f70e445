"""Shared test fixtures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

from tutorhub.audit.logger import MemoryAuditLogger
from tutorhub.config.settings import Settings
from tutorhub.models.database import Parent, Tenant, User
from tutorhub.types import Role
from tutorhub.web.app import create_app
from tutorhub.web.auth.mailer import OutboxMailer
from tutorhub.web.auth.passwords import hash_password
from tutorhub.web.dependencies import AuthServices, build_services

PASSWORD = "correct-horse-battery"  # nosec B105


class FrozenClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Seed:
    acme: Tenant
    other: Tenant
    owner: User
    admin: User
    tutor: User
    other_admin: User
    parent: Parent


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        app_env="test",
        debug=True,
        use_database=False,
        secret_key="test-secret-key",
        auth_secret="test-pepper",
        public_base_url="https://app.tutorhub.test",
    )


@pytest.fixture()
def outbox() -> OutboxMailer:
    return OutboxMailer()


@pytest.fixture()
def audit_log() -> MemoryAuditLogger:
    return MemoryAuditLogger()


@pytest.fixture()
def services(
    settings: Settings, outbox: OutboxMailer, audit_log: MemoryAuditLogger, clock: FrozenClock
) -> AuthServices:
    """In-memory services wired with a frozen clock and an outbox mailer."""
    return build_services(settings, mailer=outbox, audit=audit_log, clock=clock)


@pytest.fixture()
async def seed(services: AuthServices) -> Seed:
    """Two tenants, staff of each role in ``acme`` and one parent."""
    acme = await services.tenants.create("acme", "Acme Tutoring", support_email="help@acme-tutoring.com")
    other = await services.tenants.create("other", "Other Learning")
    password_hash = hash_password(PASSWORD)
    owner = await services.users.create(
        "owner@acme-tutoring.com", password_hash, tenant_id=acme.id, role=Role.OWNER
    )
    admin = await services.users.create(
        "admin@acme-tutoring.com", password_hash, tenant_id=acme.id, role=Role.ADMIN
    )
    tutor = await services.users.create(
        "tutor@acme-tutoring.com", password_hash, tenant_id=acme.id, role=Role.TUTOR
    )
    other_admin = await services.users.create(
        "admin@other-learning.com", password_hash, tenant_id=other.id, role=Role.ADMIN
    )
    parent = await services.parents.create(acme.id, "new@parent.com", "Pat", "Parent")
    return Seed(
        acme=acme,
        other=other,
        owner=owner,
        admin=admin,
        tutor=tutor,
        other_admin=other_admin,
        parent=parent,
    )


@pytest.fixture()
def app(settings: Settings, services: AuthServices):
    """Create a fresh app instance for tests."""
    return create_app(settings, services)


@pytest.fixture()
async def client(app, seed: Seed):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture()
async def async_engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def login(client: AsyncClient):
    """Password-login helper; the client keeps the session cookie."""

    async def _login(tenant: str, email: str, password: str = PASSWORD):
        return await client.post(
            f"/{tenant}/api/auth/login", json={"email": email, "password": password}
        )

    return _login
