"""Transport-neutral snapshot of the request fields the access core reads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from starlette.requests import Request

SESSION_COOKIE = "session"


def strip_port(host: str | None) -> str:
    if not host:
        return ""
    return host.split(":")[0].strip().lower()


def parse_path_slug(path: str) -> str | None:
    """Return the raw slug from a ``/t/<slug>/...`` path, if present."""
    segments = [s for s in path.split("/") if s]
    if len(segments) >= 2 and segments[0] == "t":
        return segments[1]
    return None


@dataclass(frozen=True, slots=True)
class RequestMeta:
    path: str = "/"
    host: str = ""  # forwarded host or Host header, port kept
    forwarded_proto: str | None = None
    path_slug: str | None = None  # raw, not yet normalized
    session_token: str | None = None
    client_ip: str = "unknown"
    request_id: str = ""

    @property
    def hostname(self) -> str:
        return strip_port(self.host)

    @classmethod
    def from_request(cls, request: Request) -> RequestMeta:
        headers = request.headers
        # Proxy trust belongs to uvicorn (--proxy-headers, FORWARDED_ALLOW_IPS).
        client_ip = request.client.host if request.client else "unknown"

        path = request.url.path
        path_slug = request.path_params.get("tenant") or parse_path_slug(path)
        request_id = getattr(request.state, "request_id", None) or headers.get("x-request-id", "")
        return cls(
            path=path,
            host=headers.get("x-forwarded-host") or headers.get("host") or "",
            forwarded_proto=headers.get("x-forwarded-proto"),
            path_slug=path_slug,
            session_token=request.cookies.get(SESSION_COOKIE),
            client_ip=client_ip,
            request_id=request_id,
        )
