"""Tenant resolution: map an inbound request to exactly one tenant, failing closed.

Exactly one slug source is chosen per request:

* ``PATH`` (admin, tutor and API routes): the ``{tenant}`` path segment or
  ``/t/<slug>/`` prefix. The host is ignored.
* ``HOST``: the subdomain under a configured tenant base domain, or
  ``<slug>.localhost``.
* ``PARENT`` (parent-facing routes): the path slug when present, otherwise the
  host slug. A path slug and a host slug that disagree are rejected.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol

import structlog

from tutorhub.exceptions import NotFound, ValidationError
from tutorhub.types import ResolutionMode
from tutorhub.web.tenant_context import TenantContext

if TYPE_CHECKING:
    from tutorhub.models.database import Tenant
    from tutorhub.web.request_meta import RequestMeta

logger = structlog.get_logger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")


class TenantLookup(Protocol):
    async def get_by_slug(self, slug: str) -> Tenant | None: ...


def normalize_slug(raw: str | None) -> str:
    """Trim and lowercase a slug; raise ``ValidationError`` if malformed."""
    slug = (raw or "").strip().lower()
    if not slug or not _SLUG_RE.match(slug):
        raise ValidationError("Invalid tenant")
    return slug


def parse_slug_from_host(
    hostname: str, base_domain: str | None = None, dev_base_domain: str | None = None
) -> str | None:
    """Extract the tenant label immediately left of a base domain."""
    if not hostname:
        return None

    for domain in (base_domain, dev_base_domain):
        if not domain:
            continue
        domain = domain.strip().lower()
        if hostname == domain or not hostname.endswith(f".{domain}"):
            continue
        prefix = hostname[: -len(domain) - 1]
        label = prefix.split(".")[-1]
        if label:
            return label

    if hostname.endswith(".localhost"):
        parts = hostname.split(".")
        if len(parts) >= 2 and parts[0]:
            return parts[0]

    return None


class TenantResolver:
    """Pure lookup; never creates tenants and holds no per-request state."""

    def __init__(
        self,
        tenants: TenantLookup,
        base_domain: str | None = None,
        dev_base_domain: str | None = None,
    ) -> None:
        self._tenants = tenants
        self._base_domain = base_domain
        self._dev_base_domain = dev_base_domain

    def select_slug(self, meta: RequestMeta, mode: ResolutionMode = ResolutionMode.PATH) -> str:
        """Pick and normalize the slug for ``mode``."""
        host_slug = parse_slug_from_host(meta.hostname, self._base_domain, self._dev_base_domain)

        if mode is ResolutionMode.PATH:
            return normalize_slug(meta.path_slug)
        if mode is ResolutionMode.HOST:
            return normalize_slug(host_slug)

        if meta.path_slug:
            slug = normalize_slug(meta.path_slug)
            if host_slug and host_slug != slug:
                logger.warning("tenant_slug_ambiguous", path=meta.path)
                raise ValidationError("Ambiguous tenant")
            return slug
        return normalize_slug(host_slug)

    async def resolve_slug(self, raw_slug: str | None) -> TenantContext:
        """Resolve a slug given directly (e.g. a route parameter)."""
        slug = normalize_slug(raw_slug)
        tenant = await self._tenants.get_by_slug(slug)
        if tenant is None:
            raise NotFound("Tenant not found")
        return TenantContext.from_model(tenant)

    async def resolve(
        self, meta: RequestMeta, mode: ResolutionMode = ResolutionMode.PATH
    ) -> TenantContext:
        return await self.resolve_slug(self.select_slug(meta, mode))
