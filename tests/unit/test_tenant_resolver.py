"""Unit tests for tenant slug parsing and resolution."""

from __future__ import annotations

import pytest

from tutorhub.exceptions import NotFound, ValidationError
from tutorhub.storage.repositories.tenants import InMemoryTenantRepository
from tutorhub.types import ResolutionMode
from tutorhub.web.request_meta import RequestMeta, parse_path_slug, strip_port
from tutorhub.web.tenant_resolver import TenantResolver, normalize_slug, parse_slug_from_host


@pytest.fixture()
async def resolver() -> TenantResolver:
    tenants = InMemoryTenantRepository()
    await tenants.create("acme", "Acme Tutoring")
    await tenants.create("other", "Other Learning")
    return TenantResolver(tenants, base_domain="tutorhub.app", dev_base_domain="lvh.me")


@pytest.mark.unit
class TestNormalizeSlug:
    def test_trims_and_lowercases(self) -> None:
        assert normalize_slug("  ACME ") == "acme"

    @pytest.mark.parametrize("raw", [None, "", "   ", "-acme", "acme-", "ac_me", "a" * 64, "a.b"])
    def test_rejects_malformed(self, raw: str | None) -> None:
        with pytest.raises(ValidationError):
            normalize_slug(raw)


@pytest.mark.unit
class TestHostParsing:
    def test_strip_port(self) -> None:
        assert strip_port("Acme.TutorHub.app:8443") == "acme.tutorhub.app"
        assert strip_port(None) == ""

    def test_base_domain_label(self) -> None:
        assert parse_slug_from_host("acme.tutorhub.app", "tutorhub.app") == "acme"
        assert parse_slug_from_host("www.acme.tutorhub.app", "tutorhub.app") == "acme"

    def test_bare_base_domain_has_no_slug(self) -> None:
        assert parse_slug_from_host("tutorhub.app", "tutorhub.app") is None

    def test_dev_base_domain(self) -> None:
        assert parse_slug_from_host("acme.lvh.me", "tutorhub.app", "lvh.me") == "acme"

    def test_localhost_subdomain(self) -> None:
        assert parse_slug_from_host("acme.localhost") == "acme"

    def test_unrelated_host(self) -> None:
        assert parse_slug_from_host("example.com", "tutorhub.app") is None

    def test_path_prefix(self) -> None:
        assert parse_path_slug("/t/acme/admin") == "acme"
        assert parse_path_slug("/acme/admin") is None


@pytest.mark.unit
class TestTenantResolver:
    async def test_path_mode_uses_path(self, resolver: TenantResolver) -> None:
        meta = RequestMeta(path_slug="ACME", host="other.tutorhub.app")
        tenant = await resolver.resolve(meta, ResolutionMode.PATH)
        assert tenant.slug == "acme"

    async def test_path_mode_ignores_host(self, resolver: TenantResolver) -> None:
        with pytest.raises(ValidationError):
            await resolver.resolve(RequestMeta(host="acme.tutorhub.app"), ResolutionMode.PATH)

    async def test_host_mode(self, resolver: TenantResolver) -> None:
        meta = RequestMeta(host="acme.tutorhub.app:443")
        tenant = await resolver.resolve(meta, ResolutionMode.HOST)
        assert tenant.name == "Acme Tutoring"

    async def test_parent_mode_prefers_path(self, resolver: TenantResolver) -> None:
        meta = RequestMeta(path_slug="acme", host="app.example.com")
        assert (await resolver.resolve(meta, ResolutionMode.PARENT)).slug == "acme"

    async def test_parent_mode_falls_back_to_host(self, resolver: TenantResolver) -> None:
        meta = RequestMeta(host="other.lvh.me")
        assert (await resolver.resolve(meta, ResolutionMode.PARENT)).slug == "other"

    async def test_parent_mode_rejects_disagreeing_sources(
        self, resolver: TenantResolver
    ) -> None:
        meta = RequestMeta(path_slug="acme", host="other.tutorhub.app")
        with pytest.raises(ValidationError):
            await resolver.resolve(meta, ResolutionMode.PARENT)

    async def test_parent_mode_accepts_matching_sources(self, resolver: TenantResolver) -> None:
        meta = RequestMeta(path_slug="acme", host="acme.tutorhub.app")
        assert (await resolver.resolve(meta, ResolutionMode.PARENT)).slug == "acme"

    async def test_unknown_tenant(self, resolver: TenantResolver) -> None:
        with pytest.raises(NotFound):
            await resolver.resolve_slug("acne")

    async def test_does_not_create_tenants(self, resolver: TenantResolver) -> None:
        with pytest.raises(NotFound):
            await resolver.resolve_slug("brand-new")
        with pytest.raises(NotFound):
            await resolver.resolve_slug("brand-new")
