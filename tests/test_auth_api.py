"""
Auth tests — sheet-backed login, role heuristic, bearer tokens and the
admin-only user list.
"""

import bcrypt
import pytest
from werkzeug.security import generate_password_hash

from app.services.jwt_service import decode_access_token
from app.utils.crypto import hash_password, is_hashed, verify_password


def _login(client, user_id="inf-1", password="pass123"):
    return client.post("/api/v1/auth/login", json={"id": user_id, "password": password})


class TestLogin:
    def test_plain_password(self, client, app, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = _login(client)
        assert res.status_code == 200
        body = res.get_json()
        assert body["id"] == "inf-1"
        assert body["name"] == "山田花子"
        assert body["role"] == "influencer"
        assert body["token_type"] == "Bearer"
        assert "password" not in body

        with app.app_context():
            claims = decode_access_token(body["access_token"])
        assert claims["sub"] == "inf-1"
        assert claims["role"] == "influencer"

    def test_bcrypt_password(self, client, seed_campaigns, campaign_row):
        hashed = bcrypt.hashpw(b"pass123", bcrypt.gensalt(rounds=4)).decode()
        seed_campaigns(campaign_row(password_dashboard=hashed))
        assert _login(client).status_code == 200
        assert _login(client, password="wrong").status_code == 401

    def test_werkzeug_password(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(password_dashboard=generate_password_hash("pass123")))
        assert _login(client).status_code == 200

    def test_wrong_password(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        res = _login(client, password="nope")
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid credentials"

    def test_unknown_user(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row())
        assert _login(client, user_id="ghost").status_code == 401

    def test_row_without_password_cannot_login(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(password_dashboard=""))
        assert _login(client, password="").status_code == 400
        assert _login(client, password="anything").status_code == 401

    def test_rows_without_influencer_id_are_not_accounts(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(), campaign_row(id_campaign="C-002", id_influencer="", password_dashboard="x"))
        assert _login(client, user_id="user_1", password="x").status_code == 401
        assert _login(client, user_id="", password="x").status_code == 400
        assert [u["id"] for u in client.get("/api/v1/users").get_json()] == ["inf-1"]

    @pytest.mark.parametrize("body", [{}, {"id": "inf-1"}, {"password": "x"}])
    def test_missing_fields(self, client, body):
        res = client.post("/api/v1/auth/login", json=body)
        assert res.status_code == 400
        assert res.get_json()["error"] == "ID and password are required"

    def test_admin_by_email_domain(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(id_influencer="staff-1", email="sato@usespeak.com"))
        assert _login(client, user_id="staff-1").get_json()["role"] == "admin"

    def test_admin_by_login_id(self, client, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(id_influencer="admin", password_dashboard="root"))
        assert _login(client, user_id="admin", password="root").get_json()["role"] == "admin"

    def test_unconfigured_is_503(self, client, unconfigured):
        res = _login(client)
        assert res.status_code == 503


class TestTouchOnLogin:
    def test_untouched_campaigns_are_stamped(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(
            campaign_row(status_dashboard="", date_status_updated=""),
            campaign_row(id_campaign="C-002"),
        )
        assert _login(client).status_code == 200
        assert sheets.record("campaigns", "id_campaign", "C-001")["date_status_updated"] != ""
        assert sheets.record("campaigns", "id_campaign", "C-002")["date_status_updated"] == \
            "2024-03-01T09:00:00+00:00"
        assert len(sheets.write_calls) == 1

    def test_read_only_skips_stamp(self, client, read_only, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(status_dashboard="not_started"))
        assert _login(client).status_code == 200
        assert read_only.write_calls == []

    def test_admin_login_does_not_stamp(self, client, sheets, seed_campaigns, campaign_row):
        seed_campaigns(campaign_row(id_influencer="admin", status_dashboard="", password_dashboard="root"))
        _login(client, user_id="admin", password="root")
        assert sheets.write_calls == []


class TestTokens:
    def test_me_with_token(self, client, influencer_headers):
        res = client.get("/api/v1/auth/me", headers=influencer_headers)
        assert res.status_code == 200
        assert res.get_json() == {"id": "inf-1", "role": "influencer", "name": "山田花子"}

    def test_me_without_token(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_garbage_token_is_ignored(self, client):
        res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert res.status_code == 401


class TestUsers:
    def test_list_hides_passwords(self, client, seed_campaigns, campaign_row):
        seed_campaigns(
            campaign_row(),
            campaign_row(id_campaign="C-002"),
            campaign_row(id_campaign="C-003", id_influencer="staff-1", email="sato@usespeak.com"),
        )
        res = client.get("/api/v1/users")
        assert res.status_code == 200
        users = res.get_json()
        assert [u["id"] for u in users] == ["inf-1", "staff-1"]
        assert all("password" not in u for u in users)
        assert [u["role"] for u in users] == ["influencer", "admin"]

    def test_auth_enforced(self, client, seed_campaigns, campaign_row, auth_enabled,
                           admin_headers, influencer_headers):
        seed_campaigns(campaign_row())
        assert client.get("/api/v1/users").status_code == 401
        assert client.get("/api/v1/users", headers=influencer_headers).status_code == 403
        assert client.get("/api/v1/users", headers=admin_headers).status_code == 200

    def test_login_required_routes(self, client, seed_campaigns, campaign_row, auth_enabled,
                                   influencer_headers):
        seed_campaigns(campaign_row(status_dashboard="plan_creating"))
        body = {"campaignId": "C-001", "influencerId": "inf-1", "submittedUrl": "https://docs.example.com/p"}
        assert client.post("/api/v1/campaigns/submit", json=body).status_code == 401
        assert client.post("/api/v1/campaigns/submit", json=body, headers=influencer_headers).status_code == 200


class TestPasswordHashing:
    def test_bcrypt_scheme(self):
        stored = hash_password("secret")
        assert is_hashed(stored)
        assert verify_password("secret", stored)
        assert not verify_password("other", stored)

    def test_werkzeug_scheme(self):
        stored = hash_password("secret", scheme="werkzeug")
        assert stored.startswith(("scrypt:", "pbkdf2:"))
        assert verify_password("secret", stored)

    def test_plain_and_empty(self):
        assert verify_password("abc", "abc")
        assert not verify_password("abc", "")
        assert not is_hashed("abc")
