"""Parent magic-link routes.

Both endpoints answer 200 for every non-malformed request. Consumption
reports failures as ``{ok: false, reason}`` rather than an error status.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr

from tutorhub.web.dependencies import get_services
from tutorhub.web.request_meta import RequestMeta
from tutorhub.web.routes.auth import set_session_cookie

router = APIRouter(tags=["parent-auth"])


class MagicLinkRequest(BaseModel):
    email: EmailStr


@router.post("/{tenant}/api/parent-auth/magic-link/request")
async def request_magic_link(
    tenant: str, body: MagicLinkRequest, request: Request
) -> dict[str, Any]:
    services = get_services(request)
    result = await services.issuer.request_magic_link(
        tenant, body.email, RequestMeta.from_request(request)
    )
    return result.to_dict()


@router.get("/{tenant}/api/parent-auth/magic-link/consume")
async def consume_magic_link(
    tenant: str, request: Request, token: str | None = None
) -> JSONResponse:
    services = get_services(request)
    result = await services.consumer.consume(tenant, token, RequestMeta.from_request(request))

    response = JSONResponse(result.to_dict(), headers={"Cache-Control": "no-store"})
    if result.ok and result.session_token:
        set_session_cookie(response, result.session_token, services)
    return response
