"""Origin policy for links sent out-of-band.

A redemption URL is only built from an origin we trust: the configured public
base URL, or forwarded/host headers naming a trusted host. There is no
fallback that could point a parent at the wrong environment.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import quote, urlencode, urlsplit

import structlog

if TYPE_CHECKING:
    from tutorhub.web.request_meta import RequestMeta

logger = structlog.get_logger(__name__)

_LOOPBACK_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0"})  # nosec B104
_HOSTNAME_RE = re.compile(r"^[a-z0-9.-]+$")


def is_loopback(hostname: str) -> bool:
    return hostname in _LOOPBACK_HOSTS or hostname.endswith(".localhost")


def parse_authority(host: str) -> tuple[str, int | None] | None:
    """Split a Host header into ``(hostname, port)``.

    Returns None for anything other than a bare ``hostname[:port]``: userinfo,
    paths, queries, fragments and non-numeric ports are all rejected.
    """
    raw = host.strip().lower()
    if not raw:
        return None
    try:
        parts = urlsplit(f"//{raw}")
        port = parts.port
    except ValueError:
        return None
    if parts.username is not None or parts.password is not None:
        return None
    if parts.path or parts.query or parts.fragment:
        return None
    hostname = parts.hostname or ""
    if not _HOSTNAME_RE.match(hostname) or ".." in hostname:
        return None
    return hostname, port


class LinkOriginPolicy:
    def __init__(
        self,
        *,
        public_base_url: str | None = None,
        trusted_hosts: list[str] | None = None,
        base_domains: list[str | None] | None = None,
        allow_loopback: bool = True,
    ) -> None:
        self._public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self._trusted_hosts = {h.strip().lower() for h in trusted_hosts or [] if h.strip()}
        self._base_domains = [d.strip().lower() for d in base_domains or [] if d]
        self._allow_loopback = allow_loopback

    def is_trusted_host(self, hostname: str) -> bool:
        if not hostname:
            return False
        if is_loopback(hostname):
            return self._allow_loopback
        if hostname in self._trusted_hosts:
            return True
        return any(hostname == d or hostname.endswith(f".{d}") for d in self._base_domains)

    def resolve_origin(self, meta: RequestMeta) -> str | None:
        if self._public_base_url:
            return self._public_base_url

        authority = parse_authority(meta.host)
        if authority is None:
            logger.warning("link_origin_malformed")
            return None
        hostname, port = authority
        if not self.is_trusted_host(hostname):
            logger.warning("link_origin_untrusted", host=hostname)
            return None

        proto = (meta.forwarded_proto or "").split(",")[0].strip().lower()
        if proto not in ("http", "https"):
            proto = "http" if is_loopback(hostname) else "https"
        netloc = hostname if port is None else f"{hostname}:{port}"
        return f"{proto}://{netloc}"


def build_verify_url(origin: str, tenant_slug: str, raw_token: str) -> str:
    return f"{origin}/{quote(tenant_slug)}/parent/auth/verify?{urlencode({'token': raw_token})}"


def portal_path(tenant_slug: str) -> str:
    """Tenant-relative landing path after a parent signs in."""
    return f"/{quote(tenant_slug)}/portal"
