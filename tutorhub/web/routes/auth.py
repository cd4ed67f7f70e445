"""Staff authentication routes: password login and logout."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, EmailStr

from tutorhub.exceptions import Unauthorized
from tutorhub.types import ActorType, Role
from tutorhub.web.auth.passwords import verify_password
from tutorhub.web.auth.tokens import hash_identifier, normalize_email
from tutorhub.web.dependencies import AuthServices, get_services
from tutorhub.web.request_meta import SESSION_COOKIE, RequestMeta
from tutorhub.web.tenant_context import Principal

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["auth"])

_INVALID_CREDENTIALS = "Invalid credentials"


def set_session_cookie(response: Response, token: str, services: AuthServices) -> None:
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=not services.settings.debug,
        samesite="lax",
        max_age=services.sessions.max_age,
        path="/",
    )


# ---------------------------------------------------------------------------
# Password login
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


@router.post("/{tenant}/api/auth/login")
async def login(
    tenant: str, body: LoginRequest, request: Request, response: Response
) -> dict[str, str]:
    """Create a staff session for a member of ``tenant``."""
    services = get_services(request)
    meta = RequestMeta.from_request(request)
    ip_hash = hash_identifier(meta.client_ip, services.config.pepper)
    context = await services.resolver.resolve_slug(tenant)

    user = await services.users.get_by_email(normalize_email(body.email))
    password_hash = user.password_hash if user is not None and user.is_active else None
    membership = None
    if verify_password(body.password, password_hash) and user is not None:
        membership = await services.users.get_membership(context.tenant_id, user.id)

    if user is None or membership is None or membership.role == Role.PARENT:
        await services.audit.log(
            action="staff.login_failed",
            actor_type=ActorType.STAFF,
            tenant_id=context.tenant_id,
            ip_hash=ip_hash,
            request_id=meta.request_id,
        )
        logger.info("staff_login_failed", tenant_id=context.tenant_id)
        raise Unauthorized(_INVALID_CREDENTIALS)

    principal = Principal(
        user_id=user.id,
        role=Role(membership.role),
        tenant_id=context.tenant_id,
        email=user.email,
    )
    token = await services.sessions.create_session(principal)
    set_session_cookie(response, token, services)

    await services.audit.log(
        action="staff.login",
        actor_type=ActorType.STAFF,
        tenant_id=context.tenant_id,
        actor_id=user.id,
        details={"role": principal.role.value},
        ip_hash=ip_hash,
        request_id=meta.request_id,
    )
    logger.info("staff_logged_in", user_id=user.id, tenant_id=context.tenant_id)
    return {"status": "ok", "role": principal.role.value}


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------


@router.post("/api/auth/logout")
async def logout(request: Request, response: Response) -> dict[str, str]:
    """Destroy the current session, if any, and clear the cookie."""
    services = get_services(request)
    meta = RequestMeta.from_request(request)

    principal = await services.sessions.validate_session(meta.session_token)
    await services.sessions.destroy_session(meta.session_token)
    response.delete_cookie(SESSION_COOKIE, path="/")

    if principal is not None:
        await services.audit.log(
            action="auth.logout",
            actor_type=ActorType.PARENT if principal.role == Role.PARENT else ActorType.STAFF,
            tenant_id=principal.tenant_id,
            actor_id=principal.user_id,
            ip_hash=hash_identifier(meta.client_ip, services.config.pepper),
            request_id=meta.request_id,
        )
    return {"status": "ok"}
