"""Parent passwordless sign-in: issuing and consuming magic links.

Issuance counts every attempt against two throttle scopes (the normalized
email and the source address, both per tenant) before anything else
happens, so probing the budget costs budget. A token is only minted for an
active parent and is delivered out-of-band; its raw value never appears in
a response, a log line or the database.

Consumption returns a flat ``{ok, reason}`` result for every outcome. The
reasons do not distinguish a token from another tenant from one that never
existed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError

from tutorhub.exceptions import (
    ApiError,
    Conflict,
    DeliveryError,
    InternalError,
    NotFound,
    StorageError,
    ValidationError,
)
from tutorhub.models.database import MagicLinkToken, Parent, UserSession, _utc_now
from tutorhub.types import ActorType, ConsumeFailure, Role
from tutorhub.web.auth.links import build_verify_url, portal_path
from tutorhub.web.auth.mailer import build_magic_link_email
from tutorhub.web.auth.tokens import (
    email_scope_key,
    generate_token,
    hash_identifier,
    normalize_email,
    parse_email,
    source_scope_key,
)
from tutorhub.web.tenant_context import Principal

if TYPE_CHECKING:
    from datetime import datetime

    from tutorhub.config.settings import MagicLinkConfig
    from tutorhub.storage.repositories.throttle import ThrottleLedger
    from tutorhub.types import Clock
    from tutorhub.web.auth.links import LinkOriginPolicy
    from tutorhub.web.auth.mailer import Mailer
    from tutorhub.web.auth.session import SessionAuth
    from tutorhub.web.request_meta import RequestMeta
    from tutorhub.web.tenant_context import TenantContext
    from tutorhub.web.tenant_resolver import TenantResolver

logger = structlog.get_logger(__name__)

THROTTLED = "throttled"


class ParentLookup(Protocol):
    async def get(self, tenant_id: str, parent_id: str) -> Parent | None: ...

    async def get_by_email(self, tenant_id: str, email: str) -> Parent | None: ...


class TokenStore(Protocol):
    async def create(self, token: MagicLinkToken) -> MagicLinkToken: ...

    async def get_by_hash(self, token_hash: str) -> MagicLinkToken | None: ...

    async def redeem(self, token_id: str, consumed_at: datetime, record: UserSession) -> bool: ...


class AuditSink(Protocol):
    async def log(self, *, action: str, actor_type: ActorType, **kwargs: Any) -> None: ...


@dataclass(frozen=True, slots=True)
class IssueResult:
    issued: bool
    reason: str | None = None
    retry_after: int | None = None

    def to_dict(self) -> dict[str, Any]:
        if self.issued:
            return {"issued": True}
        body: dict[str, Any] = {"issued": False, "reason": self.reason}
        if self.retry_after is not None:
            body["retryAfterSeconds"] = self.retry_after
        return body


@dataclass(frozen=True, slots=True)
class ConsumeResult:
    ok: bool
    redirect_to: str | None = None
    reason: ConsumeFailure | None = None
    session_token: str | None = None  # set on success, for the transport to place in a cookie

    @classmethod
    def failure(cls, reason: ConsumeFailure) -> ConsumeResult:
        return cls(ok=False, reason=reason)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            return {"ok": True, "redirectTo": self.redirect_to}
        return {"ok": False, "reason": self.reason.value if self.reason else None}


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class MagicLinkIssuer:
    def __init__(
        self,
        *,
        resolver: TenantResolver,
        parents: ParentLookup,
        tokens: TokenStore,
        ledger: ThrottleLedger,
        mailer: Mailer,
        audit: AuditSink,
        origins: LinkOriginPolicy,
        config: MagicLinkConfig,
        clock: Clock = _utc_now,
    ) -> None:
        self._resolver = resolver
        self._parents = parents
        self._tokens = tokens
        self._ledger = ledger
        self._mailer = mailer
        self._audit = audit
        self._origins = origins
        self._config = config
        self._clock = clock

    async def request_magic_link(
        self, tenant_slug: str, email: str, meta: RequestMeta
    ) -> IssueResult:
        """Public issuance. Answers ``issued: true`` whether or not the email is known."""
        normalized = parse_email(email or "")
        if normalized is None:
            raise ValidationError("Invalid email", details={"field": "email"})

        tenant = await self._resolver.resolve_slug(tenant_slug)
        email_hash = hash_identifier(normalized, self._config.pepper)
        ip_hash = hash_identifier(meta.client_ip, self._config.pepper)

        retry_after = await self._check_throttle(tenant.tenant_id, email_hash, ip_hash)
        if retry_after is not None:
            logger.warning("magic_link_throttled", tenant_id=tenant.tenant_id)
            await self._audit.log(
                action="parent.magic_link.throttled",
                actor_type=ActorType.SYSTEM,
                tenant_id=tenant.tenant_id,
                details={"retry_after": retry_after, "source": "public"},
                ip_hash=ip_hash,
                request_id=meta.request_id,
            )
            return IssueResult(issued=False, reason=THROTTLED, retry_after=retry_after)

        parent = await self._parents.get_by_email(tenant.tenant_id, normalized)
        sent = False
        if parent is not None and parent.is_active:
            origin = self._origins.resolve_origin(meta)
            if origin is None:
                logger.error("magic_link_no_trusted_origin", tenant_id=tenant.tenant_id)
            else:
                try:
                    await self._mint_and_send(tenant, parent, origin, email_hash, ip_hash)
                    sent = True
                except DeliveryError:
                    logger.error("magic_link_delivery_failed", tenant_id=tenant.tenant_id)

        await self._audit.log(
            action="parent.magic_link.requested",
            actor_type=ActorType.PARENT,
            tenant_id=tenant.tenant_id,
            actor_id=parent.id if parent is not None else "",
            details={"identifier": email_hash[:16], "sent": sent, "source": "public"},
            ip_hash=ip_hash,
            request_id=meta.request_id,
        )
        return IssueResult(issued=True)

    async def send_to_parent(
        self,
        tenant: TenantContext,
        parent_id: str,
        meta: RequestMeta,
        actor_id: str = "",
    ) -> IssueResult:
        """Staff-initiated issuance for a known parent; failures are reported, not hidden."""
        parent = await self._parents.get(tenant.tenant_id, parent_id)
        if parent is None:
            raise NotFound("Parent not found")

        normalized = normalize_email(parent.email)
        email_hash = hash_identifier(normalized, self._config.pepper)
        ip_hash = hash_identifier(meta.client_ip, self._config.pepper)

        retry_after = await self._check_throttle(tenant.tenant_id, email_hash, ip_hash)
        if retry_after is not None:
            await self._audit.log(
                action="parent.magic_link.throttled",
                actor_type=ActorType.STAFF,
                tenant_id=tenant.tenant_id,
                actor_id=actor_id,
                details={"parent_id": parent.id, "retry_after": retry_after, "source": "admin"},
                ip_hash=ip_hash,
                request_id=meta.request_id,
            )
            raise Conflict(
                "Too many sign-in links requested for this parent",
                details={"retryAfterSeconds": retry_after},
            )

        origin = self._origins.resolve_origin(meta)
        if origin is None:
            logger.error("magic_link_no_trusted_origin", tenant_id=tenant.tenant_id)
            raise InternalError()

        try:
            await self._mint_and_send(tenant, parent, origin, email_hash, ip_hash)
        except DeliveryError as exc:
            raise InternalError() from exc

        await self._audit.log(
            action="parent.magic_link.requested",
            actor_type=ActorType.STAFF,
            tenant_id=tenant.tenant_id,
            actor_id=actor_id,
            details={"parent_id": parent.id, "sent": True, "source": "admin"},
            ip_hash=ip_hash,
            request_id=meta.request_id,
        )
        return IssueResult(issued=True)

    async def _check_throttle(self, tenant_id: str, email_hash: str, ip_hash: str) -> int | None:
        """Record the attempt in both scopes; return a retry-after when either denies."""
        email_policy = self._config.email_policy
        ip_policy = self._config.ip_policy
        by_email = await self._ledger.check_and_record(
            email_scope_key(tenant_id, email_hash),
            window_seconds=email_policy.window_seconds,
            max_attempts=email_policy.max_attempts,
            cooldown_seconds=email_policy.cooldown_seconds,
        )
        by_source = await self._ledger.check_and_record(
            source_scope_key(tenant_id, ip_hash),
            window_seconds=ip_policy.window_seconds,
            max_attempts=ip_policy.max_attempts,
            cooldown_seconds=ip_policy.cooldown_seconds,
        )
        if by_email.allowed and by_source.allowed:
            return None
        return max(by_email.retry_after or 0, by_source.retry_after or 0) or 1

    async def _mint_and_send(
        self,
        tenant: TenantContext,
        parent: Parent,
        origin: str,
        email_hash: str,
        ip_hash: str,
    ) -> None:
        raw_token, token_hash = generate_token(self._config.pepper)
        now = self._clock()
        await self._tokens.create(
            MagicLinkToken(
                tenant_id=tenant.tenant_id,
                parent_id=parent.id,
                token_hash=token_hash,
                identifier_hash=email_hash,
                created_ip_hash=ip_hash,
                issued_at=now,
                expires_at=now + timedelta(seconds=self._config.ttl_seconds),
            )
        )
        message = build_magic_link_email(
            to=parent.email,
            tenant_name=tenant.name,
            sign_in_url=build_verify_url(origin, tenant.slug, raw_token),
            expires_in_minutes=self._config.ttl_minutes,
            support_email=tenant.support_email,
        )
        await self._mailer.send(message)
        logger.info("magic_link_issued", tenant_id=tenant.tenant_id, parent_id=parent.id)


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------


class MagicLinkConsumer:
    def __init__(
        self,
        *,
        resolver: TenantResolver,
        parents: ParentLookup,
        tokens: TokenStore,
        sessions: SessionAuth,
        audit: AuditSink,
        pepper: str,
        clock: Clock = _utc_now,
    ) -> None:
        self._resolver = resolver
        self._parents = parents
        self._tokens = tokens
        self._sessions = sessions
        self._audit = audit
        self._pepper = pepper
        self._clock = clock

    async def consume(
        self, tenant_slug: str, raw_token: str | None, meta: RequestMeta
    ) -> ConsumeResult:
        token = (raw_token or "").strip()
        if not token:
            return await self._fail(ConsumeFailure.MISSING, None, meta)

        try:
            tenant = await self._resolver.resolve_slug(tenant_slug)
        except ApiError:
            return await self._fail(ConsumeFailure.INVALID, None, meta)

        try:
            return await self._redeem(tenant, token, meta)
        except (SQLAlchemyError, StorageError):
            logger.exception("magic_link_consume_error", tenant_id=tenant.tenant_id)
            return await self._fail(ConsumeFailure.FAILED, tenant.tenant_id, meta)

    async def _redeem(self, tenant: TenantContext, token: str, meta: RequestMeta) -> ConsumeResult:
        record = await self._tokens.get_by_hash(hash_identifier(token, self._pepper))
        if record is None or record.tenant_id != tenant.tenant_id:
            return await self._fail(ConsumeFailure.INVALID, tenant.tenant_id, meta)

        now = self._clock()
        if now > record.expires_at:
            return await self._fail(ConsumeFailure.EXPIRED, tenant.tenant_id, meta)
        if record.consumed_at is not None:
            return await self._fail(ConsumeFailure.INVALID, tenant.tenant_id, meta)

        parent = await self._parents.get(tenant.tenant_id, record.parent_id)
        if parent is None:
            return await self._fail(ConsumeFailure.INVALID, tenant.tenant_id, meta)

        principal = Principal(
            user_id=parent.id,
            role=Role.PARENT,
            tenant_id=tenant.tenant_id,
            parent_id=parent.id,
            email=parent.email,
        )
        session_record, session_token = self._sessions.new_session(principal)
        if not await self._tokens.redeem(record.id, now, session_record):
            # Lost a race with a concurrent redemption of the same link.
            return await self._fail(ConsumeFailure.INVALID, tenant.tenant_id, meta)

        logger.info("magic_link_consumed", tenant_id=tenant.tenant_id, parent_id=parent.id)
        await self._audit.log(
            action="parent.magic_link.consumed",
            actor_type=ActorType.PARENT,
            tenant_id=tenant.tenant_id,
            actor_id=parent.id,
            ip_hash=hash_identifier(meta.client_ip, self._pepper),
            request_id=meta.request_id,
        )
        return ConsumeResult(
            ok=True, redirect_to=portal_path(tenant.slug), session_token=session_token
        )

    async def _fail(
        self, reason: ConsumeFailure, tenant_id: str | None, meta: RequestMeta
    ) -> ConsumeResult:
        logger.info("magic_link_consume_failed", reason=reason, tenant_id=tenant_id)
        await self._audit.log(
            action="parent.magic_link.consume_failed",
            actor_type=ActorType.PARENT,
            tenant_id=tenant_id,
            details={"reason": reason.value},
            ip_hash=hash_identifier(meta.client_ip, self._pepper),
            request_id=meta.request_id,
        )
        return ConsumeResult.failure(reason)
