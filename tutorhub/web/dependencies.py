"""FastAPI dependency injection and shared state.

Every collaborator the routes need is built once by ``build_services`` and
kept on ``app.state.services``. Nothing request-scoped is stored here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Request

from tutorhub.audit.logger import AuditLogger, NullAuditLogger
from tutorhub.config.settings import MagicLinkConfig
from tutorhub.models.database import _utc_now
from tutorhub.storage.repositories.magic_links import (
    DatabaseMagicLinkRepository,
    InMemoryMagicLinkRepository,
)
from tutorhub.storage.repositories.parents import (
    DatabaseParentRepository,
    InMemoryParentRepository,
)
from tutorhub.storage.repositories.sessions import DatabaseSessionStore, InMemorySessionStore
from tutorhub.storage.repositories.tenants import (
    DatabaseTenantRepository,
    InMemoryTenantRepository,
)
from tutorhub.storage.repositories.throttle import DatabaseThrottleLedger, InMemoryThrottleLedger
from tutorhub.storage.repositories.users import DatabaseUserRepository, InMemoryUserRepository
from tutorhub.web.auth.links import LinkOriginPolicy
from tutorhub.web.auth.magic_link import MagicLinkConsumer, MagicLinkIssuer
from tutorhub.web.auth.mailer import LoggingMailer, Mailer, SmtpMailer
from tutorhub.web.auth.rbac import AccessGate
from tutorhub.web.auth.session import SessionAuth
from tutorhub.web.tenant_resolver import TenantResolver

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from tutorhub.config.settings import Settings
    from tutorhub.types import Clock

logger = structlog.get_logger(__name__)


@dataclass
class AuthServices:
    settings: Settings
    config: MagicLinkConfig
    engine: AsyncEngine | None
    tenants: Any
    users: Any
    parents: Any
    tokens: Any
    ledger: Any
    sessions: SessionAuth
    resolver: TenantResolver
    gate: AccessGate
    issuer: MagicLinkIssuer
    consumer: MagicLinkConsumer
    audit: Any
    mailer: Mailer


def _create_mailer(settings: Settings) -> Mailer:
    """SMTP when a host is configured, log-only delivery otherwise."""
    if settings.smtp_host and settings.email_from:
        return SmtpMailer(
            host=settings.smtp_host,
            port=settings.smtp_port,
            user=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_email=settings.email_from,
        )
    if settings.is_production:
        logger.warning("email_not_configured", detail="magic links will not be delivered")
    return LoggingMailer()


def build_services(
    settings: Settings,
    *,
    engine: AsyncEngine | None = None,
    mailer: Mailer | None = None,
    audit: Any = None,
    clock: Clock = _utc_now,
) -> AuthServices:
    """Wire repositories and auth components for the configured storage backend."""
    config = MagicLinkConfig.from_settings(settings)

    if settings.use_database or engine is not None:
        if engine is None:
            from tutorhub.storage.database import get_engine

            engine = get_engine()
        tenants: Any = DatabaseTenantRepository(engine)
        users: Any = DatabaseUserRepository(engine)
        parents: Any = DatabaseParentRepository(engine)
        session_store: Any = DatabaseSessionStore(engine)
        tokens: Any = DatabaseMagicLinkRepository(engine)
        ledger: Any = DatabaseThrottleLedger(engine, clock=clock)
        audit = audit or AuditLogger(engine)
    else:
        memory_sessions = InMemorySessionStore()
        tenants = InMemoryTenantRepository()
        users = InMemoryUserRepository()
        parents = InMemoryParentRepository()
        session_store = memory_sessions
        tokens = InMemoryMagicLinkRepository(memory_sessions)
        ledger = InMemoryThrottleLedger(clock=clock)
        audit = audit or NullAuditLogger()

    mailer = mailer or _create_mailer(settings)
    sessions = SessionAuth(
        settings.secret_key,
        session_store,
        max_age=settings.session_max_age_seconds,
        clock=clock,
    )
    resolver = TenantResolver(
        tenants,
        base_domain=settings.tenant_base_domain,
        dev_base_domain=settings.tenant_dev_base_domain,
    )
    origins = LinkOriginPolicy(
        public_base_url=settings.public_base_url,
        trusted_hosts=settings.trusted_hosts,
        base_domains=[settings.tenant_base_domain, settings.tenant_dev_base_domain],
        allow_loopback=not settings.is_production,
    )

    return AuthServices(
        settings=settings,
        config=config,
        engine=engine,
        tenants=tenants,
        users=users,
        parents=parents,
        tokens=tokens,
        ledger=ledger,
        sessions=sessions,
        resolver=resolver,
        gate=AccessGate(resolver, sessions),
        issuer=MagicLinkIssuer(
            resolver=resolver,
            parents=parents,
            tokens=tokens,
            ledger=ledger,
            mailer=mailer,
            audit=audit,
            origins=origins,
            config=config,
            clock=clock,
        ),
        consumer=MagicLinkConsumer(
            resolver=resolver,
            parents=parents,
            tokens=tokens,
            sessions=sessions,
            audit=audit,
            pepper=config.pepper,
            clock=clock,
        ),
        audit=audit,
        mailer=mailer,
    )


def get_services(request: Request) -> AuthServices:
    """Return the services container attached by the app factory."""
    services: AuthServices = request.app.state.services
    return services
