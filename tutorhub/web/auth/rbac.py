"""Role-based access control for multi-tenant requests.

``AccessGate.authorize`` is a linear check with no backtracking:

1. no valid session          -> Unauthorized
2. tenant resolution fails   -> the resolver's denial (ValidationError / NotFound)
3. session tenant differs    -> Forbidden, whatever the role
4. role not allowed          -> Forbidden
5. otherwise                 -> AuthorizedContext

The gate reads the session and the tenant table and writes nothing.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING

import structlog
from fastapi import Request

from tutorhub.exceptions import Forbidden, Unauthorized
from tutorhub.types import ResolutionMode, Role
from tutorhub.web.request_meta import RequestMeta
from tutorhub.web.tenant_context import AuthorizedContext, Membership

if TYPE_CHECKING:
    from tutorhub.web.auth.session import SessionAuth
    from tutorhub.web.dependencies import AuthServices
    from tutorhub.web.tenant_resolver import TenantResolver

logger = structlog.get_logger(__name__)

ALL_ROLES = frozenset(Role)
STAFF_ROLES = frozenset({Role.OWNER, Role.ADMIN, Role.TUTOR})
ADMIN_ROLES = frozenset({Role.OWNER, Role.ADMIN})


class AccessGate:
    def __init__(self, resolver: TenantResolver, sessions: SessionAuth) -> None:
        self._resolver = resolver
        self._sessions = sessions

    async def authorize(
        self,
        meta: RequestMeta,
        allowed_roles: Iterable[Role],
        mode: ResolutionMode = ResolutionMode.PATH,
    ) -> AuthorizedContext:
        principal = await self._sessions.validate_session(meta.session_token)
        if principal is None:
            raise Unauthorized("Authentication required")

        tenant = await self._resolver.resolve(meta, mode)

        if principal.tenant_id != tenant.tenant_id:
            logger.warning(
                "rbac_tenant_mismatch",
                user_id=principal.user_id,
                claimed_tenant_id=principal.tenant_id,
                tenant_id=tenant.tenant_id,
            )
            raise Forbidden("Access denied")

        if principal.role not in frozenset(allowed_roles):
            logger.info(
                "rbac_role_denied",
                user_id=principal.user_id,
                tenant_id=tenant.tenant_id,
                role=principal.role,
            )
            raise Forbidden("Access denied")

        return AuthorizedContext(
            tenant=tenant,
            user=principal,
            membership=Membership(
                tenant_id=tenant.tenant_id, user_id=principal.user_id, role=principal.role
            ),
        )


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def require_role(
    *roles: Role, mode: ResolutionMode = ResolutionMode.PATH
) -> Callable[[Request], Awaitable[AuthorizedContext]]:
    """Build a dependency that admits only ``roles`` on the request's tenant."""
    allowed = frozenset(roles)

    async def dependency(request: Request) -> AuthorizedContext:
        services: AuthServices = request.app.state.services
        return await services.gate.authorize(RequestMeta.from_request(request), allowed, mode)

    return dependency


require_member = require_role(*ALL_ROLES)
require_staff = require_role(*STAFF_ROLES)
require_admin = require_role(*ADMIN_ROLES)
require_parent = require_role(Role.PARENT, mode=ResolutionMode.PARENT)
