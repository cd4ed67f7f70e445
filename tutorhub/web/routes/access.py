"""Identity endpoints, one per role requirement."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from tutorhub.web.auth.rbac import require_admin, require_member, require_parent, require_staff
from tutorhub.web.tenant_context import AuthorizedContext

router = APIRouter(tags=["access"])


@router.get("/{tenant}/api/me")
async def me(ctx: AuthorizedContext = Depends(require_member)) -> dict[str, Any]:
    return ctx.to_dict()


@router.get("/{tenant}/api/admin/me")
async def admin_me(ctx: AuthorizedContext = Depends(require_admin)) -> dict[str, Any]:
    return ctx.to_dict()


@router.get("/{tenant}/api/tutor/me")
async def tutor_me(ctx: AuthorizedContext = Depends(require_staff)) -> dict[str, Any]:
    return ctx.to_dict()


@router.get("/{tenant}/api/portal/me")
async def portal_me(ctx: AuthorizedContext = Depends(require_parent)) -> dict[str, Any]:
    return ctx.to_dict()
