"""HTTP API: auth, CSRF, role gates, CRM endpoints and the agent routes."""
from unittest.mock import AsyncMock, patch

import pytest

from helpers import llm_message, login, make_user, tool_call

LEAD_ARGS = {"name": "Api Lead", "email": "api.lead@example.com"}


@pytest.fixture
def viewer_api(api, db):
    make_user(db, "viewer")
    resp = login(api, "viewer@studio.test", "secret-pass")
    assert resp.status_code == 200, resp.text
    return api


def scripted(*replies):
    return patch("studiocrm.services.llm.chat_completion", new=AsyncMock(side_effect=list(replies)))


class TestAuth:
    def test_health(self, api):
        assert api.get("/api/health").json() == {"ok": True}

    def test_wrong_password(self, api):
        resp = login(api, "owner@studio.test", "nope")
        assert resp.status_code == 401

    def test_disabled_account(self, api, db):
        make_user(db, "staff", active=False)
        assert login(api, "staff@studio.test", "secret-pass").status_code == 403

    def test_email_case_insensitive(self, api):
        assert login(api, "OWNER@Studio.test").status_code == 200

    def test_me_requires_cookie(self, api):
        assert api.get("/api/me").status_code == 401

    def test_me(self, admin_api):
        body = admin_api.get("/api/me").json()
        assert body["email"] == "owner@studio.test"
        assert body["role"] == "admin"
        assert "ADMIN" in body["scopes"]
        assert body["recommended_mode"] == "auto_full"

    def test_csrf_header_required(self, admin_api):
        del admin_api.headers["X-CSRF-Token"]
        resp = admin_api.post("/api/clients", json={"first_name": "A", "last_name": "B", "email": "a@example.com"})
        assert resp.status_code == 403
        assert resp.json()["detail"] == "CSRF validation failed"

    def test_logout(self, admin_api):
        assert admin_api.post("/api/auth/logout").status_code == 200
        assert admin_api.get("/api/me").status_code == 401


class TestSettings:
    def test_patch(self, admin_api):
        resp = admin_api.patch("/api/settings", json={"currency": "usd", "default_tax_rate": 10})
        assert resp.status_code == 200
        assert resp.json()["currency"] == "USD"
        assert admin_api.get("/api/settings").json()["default_tax_rate"] == 10

    def test_bad_timezone(self, admin_api):
        assert admin_api.patch("/api/settings", json={"timezone": "Mars/Olympus"}).status_code == 422

    def test_viewer_cannot_patch(self, viewer_api):
        assert viewer_api.patch("/api/settings", json={"currency": "USD"}).status_code == 403


class TestClientsApi:
    def test_crud_and_error_mapping(self, admin_api):
        payload = {"first_name": "Lena", "last_name": "Wolf", "email": "lena@example.com"}
        created = admin_api.post("/api/clients", json=payload)
        assert created.status_code == 200
        client_id = created.json()["client"]["id"]

        assert admin_api.post("/api/clients", json=payload).status_code == 400
        assert admin_api.get("/api/clients/999").status_code == 404

        detail = admin_api.get(f"/api/clients/{client_id}").json()
        assert detail["client"]["email"] == "lena@example.com"
        assert detail["invoices"] == [] and detail["sessions"] == []

        patched = admin_api.patch(f"/api/clients/{client_id}", json={"city": "Graz"})
        assert patched.json()["client"]["city"] == "Graz"

        assert admin_api.delete(f"/api/clients/{client_id}").json() == {"ok": True}
        assert admin_api.get(f"/api/clients/{client_id}").status_code == 404

    def test_invalid_email(self, admin_api):
        resp = admin_api.post("/api/clients", json={"first_name": "A", "last_name": "B", "email": "not-an-email"})
        assert resp.status_code == 422

    def test_viewer_reads_but_cannot_write(self, viewer_api):
        assert viewer_api.get("/api/clients").status_code == 200
        resp = viewer_api.post("/api/clients", json={"first_name": "A", "last_name": "B", "email": "a@example.com"})
        assert resp.status_code == 403


class TestPublicGallery:
    def _create(self, admin_api, **extra):
        resp = admin_api.post("/api/galleries", json={"title": "Summer Wedding", **extra})
        assert resp.status_code == 200, resp.text
        return resp.json()["gallery"]["slug"]

    def test_password_flow(self, admin_api):
        slug = self._create(admin_api, password="secret1")
        admin_api.post("/api/auth/logout")
        admin_api.headers.pop("X-CSRF-Token", None)

        assert admin_api.get(f"/api/galleries/public/{slug}").status_code == 401
        wrong = admin_api.post(f"/api/galleries/public/{slug}/access", json={"password": "nope"})
        assert wrong.status_code == 403

        ok = admin_api.post(f"/api/galleries/public/{slug}/access", json={"password": "secret1"})
        assert ok.status_code == 200
        token = ok.json()["access_token"]
        resp = admin_api.get(f"/api/galleries/public/{slug}", headers={"X-Gallery-Token": token})
        assert resp.status_code == 200
        assert resp.json()["gallery"]["is_password_protected"] is True

    def test_private_gallery_hidden(self, admin_api):
        slug = self._create(admin_api, is_public=False)
        assert admin_api.get(f"/api/galleries/public/{slug}").status_code == 404

    def test_open_gallery(self, admin_api):
        slug = self._create(admin_api)
        assert admin_api.get(f"/api/galleries/public/{slug}").json()["gallery"]["images"] == []


class TestVouchersApi:
    def test_sell_pay_redeem(self, admin_api):
        product = admin_api.post("/api/vouchers/products", json={"name": "Family", "price": 150}).json()["product"]
        sale = admin_api.post(
            "/api/vouchers/sales",
            json={"product_id": product["id"], "purchaser_name": "Eva", "purchaser_email": "eva@example.com"},
        ).json()["sale"]
        code = sale["voucher_code"]
        assert sale["final_amount"] == 150

        assert admin_api.post(f"/api/vouchers/sales/{code}/redeem", json={}).status_code == 400
        paid = admin_api.post(f"/api/vouchers/sales/{code}/payment-status", json={"payment_status": "paid"})
        assert paid.json()["sale"]["payment_status"] == "paid"
        redeemed = admin_api.post(f"/api/vouchers/sales/{code}/redeem", json={})
        assert redeemed.json()["sale"]["is_redeemed"] is True

        summary = admin_api.get("/api/vouchers/sales/summary").json()["summary"]
        assert summary["revenue"] == 150
        assert summary["redeemed"] == 1

    def test_unknown_code(self, admin_api):
        assert admin_api.get("/api/vouchers/sales/NAF-000000-0000").status_code == 404


class TestAgentApi:
    def test_v1_chat(self, admin_api):
        with scripted(llm_message("Hallo!")):
            resp = admin_api.post("/api/agent/chat", json={"message": "Hi"})
        body = resp.json()
        assert body["ok"] is True
        assert body["message"] == "Hallo!"
        assert body["session_id"].startswith("sess_")

    def test_v2_confirm_flow(self, admin_api):
        with scripted(llm_message(tool_calls=[tool_call("create_lead", LEAD_ARGS)])):
            resp = admin_api.post("/api/agent/v2/chat", json={"message": "Add a lead", "mode": "auto_safe"})
        body = resp.json()
        assert body["confirm_required"]["tool"] == "create_lead"

        done = admin_api.post("/api/agent/v2/confirm", json={"session_id": body["session_id"]}).json()
        assert done["tool_calls"][0]["ok"] is True

        detail = admin_api.get(f"/api/agent/v2/session/{body['session_id']}").json()["session"]
        assert [a["ok"] for a in detail["audit"]] == [False, True]

        leads = admin_api.get("/api/leads").json()
        assert leads["leads"][0]["email"] == "api.lead@example.com"

    def test_confirm_unknown_session(self, admin_api):
        resp = admin_api.post("/api/agent/v2/confirm", json={"session_id": "sess_nope"})
        assert resp.status_code == 404

    def test_tools_for_viewer(self, viewer_api):
        body = viewer_api.get("/api/agent/v2/tools").json()
        names = {t["name"] for t in body["tools"]}
        assert body["mode"] == "read_only"
        assert "list_leads" in names
        assert "create_invoice" not in names

    def test_stats(self, admin_api):
        stats = admin_api.get("/api/agent/v2/stats").json()["stats"]
        assert stats["total"] >= 40
        assert admin_api.get("/api/agent/v2/audit/stats?hours=24").json()["stats"]["total"] == 0

    def test_shadow_is_admin_only(self, viewer_api):
        assert viewer_api.get("/api/agent/shadow/stats").status_code == 403

    def test_shadow_chat_and_review(self, admin_api):
        with scripted(llm_message("plain answer"), llm_message("plain answer")):
            resp = admin_api.post("/api/agent/shadow/chat", json={"message": "Hi"})
        assert resp.json()["shadow_mode"] is True

        diffs = admin_api.get("/api/agent/shadow/diffs").json()["diffs"]
        assert len(diffs) == 1 and diffs[0]["match"] is True
        reviewed = admin_api.post(f"/api/agent/shadow/diffs/{diffs[0]['id']}/review", json={"notes": "fine"})
        assert reviewed.json()["diff"]["reviewed"] is True
