"""Unit tests for magic-link consumption."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from urllib.parse import parse_qs, urlparse

import pytest

from tutorhub.exceptions import StorageError
from tutorhub.types import ConsumeFailure, Role
from tutorhub.web.request_meta import RequestMeta

if TYPE_CHECKING:
    from tests.conftest import FrozenClock, Seed
    from tutorhub.audit.logger import MemoryAuditLogger
    from tutorhub.web.auth.mailer import OutboundEmail, OutboxMailer
    from tutorhub.web.dependencies import AuthServices

META = RequestMeta(path_slug="acme", host="app.tutorhub.test", client_ip="203.0.113.5")


def token_from(message: OutboundEmail) -> str:
    link = next(line for line in message.text.splitlines() if line.startswith("http"))
    return parse_qs(urlparse(link).query)["token"][0]


async def issue(services: AuthServices, outbox: OutboxMailer) -> str:
    await services.issuer.request_magic_link("acme", "new@parent.com", META)
    return token_from(outbox.sent[-1])


@pytest.mark.unit
class TestConsumeMagicLink:
    async def test_success_creates_parent_session(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer
    ) -> None:
        raw = await issue(services, outbox)
        result = await services.consumer.consume("acme", raw, META)

        assert result.to_dict() == {"ok": True, "redirectTo": "/acme/portal"}
        principal = await services.sessions.validate_session(result.session_token)
        assert principal is not None
        assert principal.role is Role.PARENT
        assert principal.parent_id == seed.parent.id
        assert principal.tenant_id == seed.acme.id

    async def test_redirect_is_tenant_relative(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer
    ) -> None:
        raw = await issue(services, outbox)
        meta = RequestMeta(path_slug="acme", host="evil.example.com", forwarded_proto="https")
        result = await services.consumer.consume("acme", raw, meta)
        assert result.redirect_to == "/acme/portal"

    async def test_second_consume_fails(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer
    ) -> None:
        raw = await issue(services, outbox)
        first = await services.consumer.consume("acme", raw, META)
        second = await services.consumer.consume("acme", raw, META)
        never_valid = await services.consumer.consume("acme", "never-issued-token", META)

        assert first.ok
        assert second.to_dict() == {"ok": False, "reason": "invalid"}
        assert second.to_dict() == never_valid.to_dict()

    async def test_concurrent_consumes_only_one_wins(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer
    ) -> None:
        raw = await issue(services, outbox)
        results = await asyncio.gather(
            *(services.consumer.consume("acme", raw, META) for _ in range(5))
        )
        assert sum(r.ok for r in results) == 1

    @pytest.mark.parametrize("token", [None, "", "   "])
    async def test_missing(self, services: AuthServices, seed: Seed, token: str | None) -> None:
        result = await services.consumer.consume("acme", token, META)
        assert result.reason is ConsumeFailure.MISSING

    async def test_expired(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer, clock: FrozenClock
    ) -> None:
        raw = await issue(services, outbox)
        clock.advance(minutes=15, seconds=1)
        result = await services.consumer.consume("acme", raw, META)
        assert result.to_dict() == {"ok": False, "reason": "expired"}

    async def test_valid_at_exact_expiry(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer, clock: FrozenClock
    ) -> None:
        raw = await issue(services, outbox)
        clock.advance(minutes=15)
        assert (await services.consumer.consume("acme", raw, META)).ok

    async def test_other_tenant_cannot_consume(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer
    ) -> None:
        raw = await issue(services, outbox)
        foreign = await services.consumer.consume("other", raw, META)
        assert foreign.to_dict() == {"ok": False, "reason": "invalid"}
        # The token is still usable on its own tenant.
        assert (await services.consumer.consume("acme", raw, META)).ok

    @pytest.mark.parametrize("slug", ["nowhere", "-bad-"])
    async def test_unresolvable_tenant_is_invalid(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer, slug: str
    ) -> None:
        raw = await issue(services, outbox)
        result = await services.consumer.consume(slug, raw, META)
        assert result.reason is ConsumeFailure.INVALID

    async def test_deactivated_parent_is_invalid(
        self, services: AuthServices, seed: Seed, outbox: OutboxMailer
    ) -> None:
        raw = await issue(services, outbox)
        seed.parent.is_active = False
        assert (await services.consumer.consume("acme", raw, META)).reason is ConsumeFailure.INVALID

    async def test_storage_failure_is_failed(
        self,
        services: AuthServices,
        seed: Seed,
        outbox: OutboxMailer,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        raw = await issue(services, outbox)

        async def broken(*args: object, **kwargs: object) -> bool:
            raise StorageError("database unavailable")

        monkeypatch.setattr(services.tokens, "redeem", broken)
        result = await services.consumer.consume("acme", raw, META)
        assert result.to_dict() == {"ok": False, "reason": "failed"}

    async def test_audit_trail(
        self,
        services: AuthServices,
        seed: Seed,
        outbox: OutboxMailer,
        audit_log: MemoryAuditLogger,
    ) -> None:
        raw = await issue(services, outbox)
        await services.consumer.consume("acme", raw, META)
        await services.consumer.consume("acme", raw, META)
        assert audit_log.actions()[-2:] == [
            "parent.magic_link.consumed",
            "parent.magic_link.consume_failed",
        ]
        assert raw not in audit_log.events[-1].details_json
        assert '"reason": "invalid"' in audit_log.events[-1].details_json
