"""Unit tests for the RBAC gate."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from tutorhub.config.logging import setup_logging
from tutorhub.exceptions import Forbidden, NotFound, Unauthorized, ValidationError
from tutorhub.types import ResolutionMode, Role
from tutorhub.web.auth.rbac import ADMIN_ROLES, ALL_ROLES, STAFF_ROLES
from tutorhub.web.request_meta import RequestMeta
from tutorhub.web.tenant_context import Principal

if TYPE_CHECKING:
    from tests.conftest import FrozenClock, Seed
    from tutorhub.web.dependencies import AuthServices


async def _token(services: AuthServices, tenant_id: str, user_id: str, role: Role) -> str:
    principal = Principal(user_id=user_id, role=role, tenant_id=tenant_id)
    return await services.sessions.create_session(principal)


@pytest.mark.unit
class TestAccessGate:
    async def test_owner_authorized(self, services: AuthServices, seed: Seed) -> None:
        token = await _token(services, seed.acme.id, seed.owner.id, Role.OWNER)
        ctx = await services.gate.authorize(
            RequestMeta(path_slug="acme", session_token=token), ADMIN_ROLES
        )
        assert ctx.tenant.slug == "acme"
        assert ctx.user.user_id == seed.owner.id
        assert ctx.role is Role.OWNER
        assert ctx.membership.tenant_id == seed.acme.id

    async def test_admin_of_other_tenant_forbidden(
        self, services: AuthServices, seed: Seed
    ) -> None:
        token = await _token(services, seed.acme.id, seed.admin.id, Role.ADMIN)
        with pytest.raises(Forbidden):
            await services.gate.authorize(
                RequestMeta(path_slug="other", session_token=token), ADMIN_ROLES
            )

    async def test_tenant_mismatch_forbidden_even_when_role_allowed_everywhere(
        self, services: AuthServices, seed: Seed
    ) -> None:
        token = await _token(services, seed.other.id, seed.other_admin.id, Role.ADMIN)
        with pytest.raises(Forbidden):
            await services.gate.authorize(
                RequestMeta(path_slug="acme", session_token=token), ALL_ROLES
            )

    async def test_tenant_mismatch_log_keeps_claimed_tenant(
        self, services: AuthServices, seed: Seed, caplog: pytest.LogCaptureFixture
    ) -> None:
        setup_logging(log_level="INFO", json_output=True)
        caplog.set_level(logging.WARNING)
        token = await _token(services, seed.other.id, seed.other_admin.id, Role.ADMIN)
        with pytest.raises(Forbidden):
            await services.gate.authorize(
                RequestMeta(path_slug="acme", session_token=token), ALL_ROLES
            )
        assert "rbac_tenant_mismatch" in caplog.text
        assert seed.other.id in caplog.text

    async def test_tutor_forbidden_on_admin_route(
        self, services: AuthServices, seed: Seed
    ) -> None:
        token = await _token(services, seed.acme.id, seed.tutor.id, Role.TUTOR)
        with pytest.raises(Forbidden):
            await services.gate.authorize(
                RequestMeta(path_slug="acme", session_token=token), ADMIN_ROLES
            )

    async def test_tutor_allowed_on_staff_route(self, services: AuthServices, seed: Seed) -> None:
        token = await _token(services, seed.acme.id, seed.tutor.id, Role.TUTOR)
        ctx = await services.gate.authorize(
            RequestMeta(path_slug="acme", session_token=token), STAFF_ROLES
        )
        assert ctx.role is Role.TUTOR

    @pytest.mark.parametrize("slug", ["acme", "missing", "!!bad!!", None])
    async def test_no_session_is_unauthorized_before_tenant_checks(
        self, services: AuthServices, seed: Seed, slug: str | None
    ) -> None:
        with pytest.raises(Unauthorized):
            await services.gate.authorize(RequestMeta(path_slug=slug), ADMIN_ROLES)

    async def test_forged_token_unauthorized(self, services: AuthServices, seed: Seed) -> None:
        with pytest.raises(Unauthorized):
            await services.gate.authorize(
                RequestMeta(path_slug="acme", session_token="abc.def"), ALL_ROLES
            )

    async def test_unknown_tenant_propagates(self, services: AuthServices, seed: Seed) -> None:
        token = await _token(services, seed.acme.id, seed.owner.id, Role.OWNER)
        with pytest.raises(NotFound):
            await services.gate.authorize(
                RequestMeta(path_slug="missing", session_token=token), ALL_ROLES
            )

    async def test_malformed_tenant_propagates(self, services: AuthServices, seed: Seed) -> None:
        token = await _token(services, seed.acme.id, seed.owner.id, Role.OWNER)
        with pytest.raises(ValidationError):
            await services.gate.authorize(
                RequestMeta(path_slug="-bad-", session_token=token), ALL_ROLES
            )

    async def test_parent_resolved_in_parent_mode(
        self, services: AuthServices, seed: Seed
    ) -> None:
        principal = Principal(
            user_id=seed.parent.id,
            role=Role.PARENT,
            tenant_id=seed.acme.id,
            parent_id=seed.parent.id,
        )
        token = await services.sessions.create_session(principal)
        ctx = await services.gate.authorize(
            RequestMeta(host="acme.localhost:3000", session_token=token),
            {Role.PARENT},
            ResolutionMode.PARENT,
        )
        assert ctx.user.parent_id == seed.parent.id
        assert ctx.to_dict()["membership"]["role"] == "Parent"

    async def test_parent_cannot_use_staff_routes(
        self, services: AuthServices, seed: Seed
    ) -> None:
        token = await _token(services, seed.acme.id, seed.parent.id, Role.PARENT)
        with pytest.raises(Forbidden):
            await services.gate.authorize(
                RequestMeta(path_slug="acme", session_token=token), STAFF_ROLES
            )

    async def test_expired_session_left_in_place(
        self, services: AuthServices, seed: Seed, clock: FrozenClock
    ) -> None:
        principal = Principal(user_id=seed.owner.id, role=Role.OWNER, tenant_id=seed.acme.id)
        record, token = services.sessions.new_session(principal)
        store = services.sessions._store
        await store.add(record)
        clock.advance(seconds=services.sessions.max_age + 1)

        with pytest.raises(Unauthorized):
            await services.gate.authorize(
                RequestMeta(path_slug="acme", session_token=token), ALL_ROLES
            )
        assert await store.get(record.id) is not None
