"""Route-level tests: response shapes, error contract and request_id propagation."""
import logging
from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from sheetshare.core.database import COLLABORATIONS, UNIQUE_FIELDS, build_engine, check_connection
from sheetshare.core.errors import InternalError, StoreError
from sheetshare.core.sql_store import SqlDocumentStore
from sheetshare.core.store import InMemoryDocumentStore, Update
from sheetshare.features.collaboration.mailer import InvitationMailer
from sheetshare.main import create_app

OWNER = {"X-User-Email": "owner@example.com"}


@pytest.fixture
def app(store, quiet_settings):
    return create_app(store=store, mailer=InvitationMailer(quiet_settings))


@pytest.fixture
def client(app):
    return TestClient(app)


def _invite(client, upload_id, email="alice@example.com", role="editor"):
    return client.post(f"/api/collaborations/{upload_id}/invite", headers=OWNER, json={"email": email, "role": role})


def _assert_error(resp, status, code):
    assert resp.status_code == status
    body = resp.json()
    rid = resp.headers.get("x-request-id")
    assert rid
    assert body["error"]["code"] == code
    assert body["error"]["request_id"] == rid
    assert body["detail"] == body["error"]["message"]


class TestInvitationRoutes:
    def test_invite_resolve_accept_flow(self, client, store, upload_id):
        created = _invite(client, upload_id)
        assert created.status_code == 200
        data = created.json()["data"]
        assert data["email"] == "alice@example.com"
        assert data["role"] == "editor"
        assert data["invitedBy"] == "owner@example.com"
        assert "invitationToken" not in data

        token = store.find_one(COLLABORATIONS, {"id": data["id"]})["invitation_token"]

        landing = client.get(f"/api/collaborate/{token}")
        assert landing.status_code == 200
        landing_data = landing.json()["data"]
        assert landing_data["collaboration"]["role"] == "editor"
        assert landing_data["upload"]["fileName"] == "sales-q1.xlsx"
        assert landing_data["upload"]["totalRows"] == 2
        assert token not in landing.text

        accepted = client.post(f"/api/collaborate/{token}", json={"userEmail": "alice@example.com", "userName": "Alice"})
        assert accepted.status_code == 200
        assert accepted.json()["success"] is True

        _assert_error(client.post(f"/api/collaborate/{token}", json={"userEmail": "alice@example.com"}), 404, "not_found")

        listed = client.get(f"/api/collaborations/{upload_id}/collaborators").json()
        assert listed["count"] == 1
        assert listed["data"][0]["status"] == "active"
        assert listed["data"][0]["name"] == "Alice"
        assert listed["data"][0]["permissions"] == {"canView": True, "canEdit": True, "canShare": True, "canDelete": False}

    def test_expired_invitation_is_410(self, client, store, upload_id):
        data = _invite(client, upload_id).json()["data"]
        doc = store.find_one(COLLABORATIONS, {"id": data["id"]})
        store.update_one(
            COLLABORATIONS,
            {"id": data["id"]},
            Update(set_fields={"invited_at": doc["invited_at"] - timedelta(days=8)}),
        )

        _assert_error(client.get(f"/api/collaborate/{doc['invitation_token']}"), 410, "expired")

    def test_invite_requires_identity(self, client, upload_id):
        resp = client.post(f"/api/collaborations/{upload_id}/invite", json={"email": "a@example.com", "role": "viewer"})
        assert resp.status_code == 401

    def test_invalid_role_is_400(self, client, upload_id):
        _assert_error(_invite(client, upload_id, role="owner"), 400, "invalid_argument")

    def test_missing_body_field_is_400(self, client, upload_id):
        resp = client.post(f"/api/collaborations/{upload_id}/invite", headers=OWNER, json={"role": "viewer"})
        _assert_error(resp, 400, "invalid_argument")

    def test_malformed_upload_id_is_400(self, client):
        _assert_error(_invite(client, "not-a-uuid"), 400, "invalid_argument")

    def test_invite_reports_email_delivery(self, client, store, upload_id, quiet_settings):
        assert _invite(client, upload_id).json()["emailSent"] is True

        class _DownMailer(InvitationMailer):
            def send_invitation(self, **kwargs):
                return False

        down = TestClient(create_app(store=store, mailer=_DownMailer(quiet_settings)))
        resp = _invite(down, upload_id, email="bob@example.com")
        assert resp.status_code == 200
        body = resp.json()
        assert body["emailSent"] is False
        assert body["message"] == "Invitation created but the email could not be sent"
        assert body["data"]["status"] == "pending"

    def test_duplicate_invite_is_409(self, client, upload_id):
        _invite(client, upload_id)
        _assert_error(_invite(client, upload_id), 409, "conflict")

    def test_change_role_revoke_and_remove(self, client, upload_id):
        bob = _invite(client, upload_id, email="bob@example.com", role="viewer").json()["data"]
        carol = _invite(client, upload_id, email="carol@example.com", role="viewer").json()["data"]

        changed = client.patch(f"/api/collaborations/{upload_id}/collaborators/{bob['id']}", json={"role": "editor"})
        assert changed.status_code == 200

        revoked = client.post(f"/api/collaborations/{upload_id}/invitations/{carol['id']}/revoke")
        assert revoked.status_code == 200

        listed = client.get(f"/api/collaborations/{upload_id}/collaborators").json()["data"]
        assert [(c["email"], c["role"]) for c in listed] == [("bob@example.com", "editor")]

        assert client.delete(f"/api/collaborations/{upload_id}/collaborators/{bob['id']}").status_code == 200
        _assert_error(client.delete(f"/api/collaborations/{upload_id}/collaborators/{bob['id']}"), 404, "not_found")


class TestShareLinkRoutes:
    def test_create_resolve_toggle(self, client, upload_id):
        created = client.post(f"/api/collaborations/{upload_id}/links", headers=OWNER, json={"role": "viewer"})
        assert created.status_code == 200
        body = created.json()
        assert body["success"] is True
        assert body["url"].startswith("http://localhost:3000/shared/")
        token = body["url"].rsplit("/", 1)[1]

        shared = client.get(f"/api/shared/{token}")
        assert shared.status_code == 200
        data = shared.json()["data"]
        assert data["link"]["accessCount"] == 1
        assert data["link"]["role"] == "viewer"
        assert data["upload"]["headers"] == ["region", "revenue"]

        listed = client.get(f"/api/collaborations/{upload_id}/links").json()["data"]
        assert listed[0]["accessCount"] == 1
        assert listed[0]["url"] == body["url"]

        toggled = client.patch(f"/api/collaborations/{upload_id}/links/{body['linkId']}", json={"isActive": False})
        assert toggled.status_code == 200
        _assert_error(client.get(f"/api/shared/{token}"), 404, "not_found")

    def test_past_expiry_rejected(self, client, upload_id):
        resp = client.post(
            f"/api/collaborations/{upload_id}/links",
            headers=OWNER,
            json={"role": "viewer", "expiresAt": "2000-01-01T00:00:00Z"},
        )
        _assert_error(resp, 400, "invalid_argument")

    def test_unknown_link_is_404(self, client):
        _assert_error(client.get("/api/shared/does-not-exist"), 404, "not_found")


class TestWebhookRoutes:
    def test_register_never_returns_secret(self, client):
        resp = client.post(
            "/api/admin/webhooks",
            json={"name": "Charts", "url": "https://hooks.example.com/in", "events": ["chart.created"]},
        )
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert "secret" not in data
        assert data["successCount"] == 0
        assert data["isActive"] is True

        listed = client.get("/api/admin/webhooks").json()
        assert listed["count"] == 1
        assert "secret" not in listed["data"][0]

    def test_empty_events_is_400(self, client):
        resp = client.post("/api/admin/webhooks", json={"name": "x", "url": "https://h.example.com", "events": []})
        _assert_error(resp, 400, "invalid_argument")

    def test_failed_test_delivery_is_an_outcome(self, app, client):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        app.state.webhook_client_factory = lambda **kwargs: httpx.AsyncClient(
            transport=httpx.MockTransport(refuse), **kwargs
        )
        hook = client.post(
            "/api/admin/webhooks",
            json={"name": "Ops", "url": "https://unreachable.invalid", "events": ["error.occurred"]},
        ).json()["data"]

        resp = client.post(f"/api/admin/webhooks/{hook['id']}/test")
        assert resp.status_code == 200
        assert resp.json() == {"success": False, "error": "Failed to send webhook"}

        listed = client.get("/api/admin/webhooks").json()["data"][0]
        assert (listed["successCount"], listed["failureCount"]) == (0, 1)

    def test_toggle_and_delete(self, client):
        hook = client.post(
            "/api/admin/webhooks",
            json={"name": "Ops", "url": "https://h.example.com", "events": ["error.occurred"]},
        ).json()["data"]

        assert client.patch(f"/api/admin/webhooks/{hook['id']}/toggle", json={"isActive": False}).status_code == 200
        assert client.get("/api/admin/webhooks").json()["data"][0]["isActive"] is False

        assert client.delete(f"/api/admin/webhooks/{hook['id']}").status_code == 200
        _assert_error(client.delete(f"/api/admin/webhooks/{hook['id']}"), 404, "not_found")


class TestHealthAndLogging:
    def test_healthz(self, client):
        resp = client.get("/healthz")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_readyz_in_memory(self, client):
        assert client.get("/readyz").json() == {"status": "ok", "store": "memory"}

    def test_readyz_sql(self, sql_store, quiet_settings):
        client = TestClient(create_app(store=sql_store, mailer=InvitationMailer(quiet_settings)))
        assert client.get("/readyz").json() == {"status": "ok", "store": "sql"}

    def test_readyz_sql_unreachable(self, tmp_path, quiet_settings):
        missing = tmp_path / "missing" / "sheetshare.db"
        engine = build_engine(f"sqlite:///{missing}")
        assert check_connection(engine) is False
        client = TestClient(create_app(store=SqlDocumentStore(engine), mailer=InvitationMailer(quiet_settings)))
        resp = client.get("/readyz")
        assert resp.status_code == 503
        assert resp.json() == {"status": "error", "detail": "database unreachable"}

    def test_store_failure_is_internal_error(self, quiet_settings):
        class BrokenStore(InMemoryDocumentStore):
            def find_one(self, collection, filter):
                raise StoreError("connection reset")

            def find(self, collection, filter, sort=None, skip=0, limit=None):
                raise StoreError("connection reset")

        app = create_app(store=BrokenStore(unique_fields=UNIQUE_FIELDS), mailer=InvitationMailer(quiet_settings))
        resp = TestClient(app).get("/api/shared/some-token")
        _assert_error(resp, InternalError.status_code, InternalError.code)
        assert resp.json()["error"]["message"] == "Unexpected error"

    def test_request_id_in_response_and_logs(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="sheetshare"):
            response = client.get("/healthz")
        rid = response.headers.get("x-request-id")
        assert rid
        records = [r for r in caplog.records if getattr(r, "request_id", None) == rid]
        assert records, "Expected logs to contain request_id from response"

    def test_incoming_request_id_is_echoed(self, client):
        response = client.get("/healthz", headers={"x-request-id": "rid-123"})
        assert response.headers["x-request-id"] == "rid-123"

    def test_shared_token_not_logged(self, client, upload_id, caplog):
        token = client.post(f"/api/collaborations/{upload_id}/links", headers=OWNER, json={"role": "viewer"}).json()["url"].rsplit("/", 1)[1]
        with caplog.at_level(logging.INFO, logger="sheetshare"):
            client.get(f"/api/shared/{token}")
        records = [r for r in caplog.records if r.name == "sheetshare"]
        assert all(token not in r.getMessage() and token not in str(getattr(r, "path", "")) for r in records)
        assert any(getattr(r, "path", None) == "/api/shared/{token}" for r in records)
