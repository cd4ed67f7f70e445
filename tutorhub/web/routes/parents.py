"""Admin actions on parents."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from tutorhub.web.auth.rbac import require_admin
from tutorhub.web.dependencies import get_services
from tutorhub.web.request_meta import RequestMeta
from tutorhub.web.tenant_context import AuthorizedContext

router = APIRouter(tags=["parents"])


@router.post("/{tenant}/api/admin/parents/{parent_id}/send-magic-link")
async def send_magic_link(
    parent_id: str,
    request: Request,
    ctx: AuthorizedContext = Depends(require_admin),
) -> dict[str, Any]:
    """Email a sign-in link to a parent of this tenant."""
    services = get_services(request)
    result = await services.issuer.send_to_parent(
        ctx.tenant,
        parent_id,
        RequestMeta.from_request(request),
        actor_id=ctx.user.user_id,
    )
    return result.to_dict()
