import pytest
from httpx import AsyncClient

from tutorhub.audit.logger import MemoryAuditLogger
from tutorhub.web.auth.mailer import OutboxMailer


def send_path(parent_id: str, tenant: str = "acme") -> str:
    return f"/{tenant}/api/admin/parents/{parent_id}/send-magic-link"


@pytest.mark.integration
class TestSendMagicLink:
    async def test_admin_sends(
        self,
        client: AsyncClient,
        login,
        seed,
        outbox: OutboxMailer,
        audit_log: MemoryAuditLogger,
    ) -> None:
        await login("acme", "admin@acme-tutoring.com")
        resp = await client.post(send_path(seed.parent.id))
        assert resp.status_code == 200
        assert resp.json() == {"issued": True}
        assert outbox.sent[0].to == "new@parent.com"
        assert audit_log.events[-1].action == "parent.magic_link.requested"
        assert audit_log.events[-1].actor_id == seed.admin.id

    async def test_tutor_forbidden(self, client: AsyncClient, login, seed) -> None:
        await login("acme", "tutor@acme-tutoring.com")
        assert (await client.post(send_path(seed.parent.id))).status_code == 403

    async def test_unknown_parent(self, client: AsyncClient, login) -> None:
        await login("acme", "owner@acme-tutoring.com")
        resp = await client.post(send_path("no-such-parent"))
        assert resp.status_code == 404
        assert resp.json()["error"] == {
            "code": "NotFound",
            "message": "Parent not found",
            "details": {},
        }

    async def test_throttled_is_409(self, client: AsyncClient, login, seed) -> None:
        await login("acme", "owner@acme-tutoring.com")
        for _ in range(3):
            assert (await client.post(send_path(seed.parent.id))).status_code == 200
        resp = await client.post(send_path(seed.parent.id))
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["code"] == "Conflict"
        assert error["details"]["retryAfterSeconds"] > 0

    async def test_cross_tenant_admin_forbidden(self, client: AsyncClient, login, seed) -> None:
        await login("other", "admin@other-learning.com")
        assert (await client.post(send_path(seed.parent.id))).status_code == 403
        assert (await client.post(send_path(seed.parent.id, "other"))).status_code == 404
