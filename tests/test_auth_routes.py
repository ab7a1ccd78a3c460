"""
Tests for the HTTP surface of identity claiming and the access guard.
"""

from urllib.parse import urlsplit

import pytest

from opsportal.config.settings import settings
from opsportal.core.access import permission_cache

CALLBACK = "/api/v1/auth/callback"


def set_cookies(response):
    return response.headers.get_list("set-cookie")


def cookie_set(response, name):
    return any(c.startswith(f"{name}=") and "Max-Age=0" not in c for c in set_cookies(response))


def cookie_cleared(response, name):
    return any(c.startswith(f"{name}=") and "Max-Age=0" in c for c in set_cookies(response))


class TestCallback:
    def test_uninvited_email_goes_to_unauthorized_page(self, client, db, idp):
        idp.register("code-1", "u2", "b@x.com")

        response = client.get(CALLBACK, params={"code": "code-1"}, follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "http://testserver/unauthorized?email=b%40x.com"
        assert db.rows("user_profiles") == []
        assert idp.revoked == ["access-u2-code-1"]
        assert cookie_cleared(response, settings.access_token_cookie)
        assert not cookie_set(response, settings.access_token_cookie)

    def test_claim_redirects_to_onboarding_and_sets_session(self, client, db, idp, seed_role):
        role = seed_role("technician", ["work_orders:read"], is_system=True)
        db.add("invitations", email="a@x.com", display_name="A", role_id=role["id"])
        idp.register("code-1", "u1", "A@X.com")

        response = client.get(CALLBACK, params={"code": "code-1", "next": "/dashboard/clients"},
                              follow_redirects=False)

        assert response.headers["location"] == "http://testserver/onboarding"
        assert cookie_set(response, settings.access_token_cookie)
        assert cookie_set(response, settings.refresh_token_cookie)
        assert db.rows("user_profiles")[0]["role_id"] == role["id"]
        assert db.rows("invitations") == []
        cached = permission_cache.get("access-u1-code-1")
        assert cached is not None and cached.has_permission("work_orders:read")

    def test_returning_user_goes_to_requested_path(self, client, db, idp):
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", onboarding_completed=True)
        idp.register("code-1", "u1", "a@x.com")

        response = client.get(CALLBACK, params={"code": "code-1", "next": "/dashboard/timesheets"},
                              follow_redirects=False)

        assert response.headers["location"] == "http://testserver/dashboard/timesheets"

    def test_returning_user_default_path(self, client, db, idp):
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", onboarding_completed=True)
        idp.register("code-1", "u1", "a@x.com")

        response = client.get(CALLBACK, params={"code": "code-1"}, follow_redirects=False)

        assert response.headers["location"] == "http://testserver/dashboard"

    def test_offsite_next_is_ignored(self, client, db, idp):
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", onboarding_completed=True)
        idp.register("code-1", "u1", "a@x.com")

        response = client.get(CALLBACK, params={"code": "code-1", "next": "//evil.example.com/"},
                              follow_redirects=False)

        assert response.headers["location"] == "http://testserver/dashboard"

    def test_deactivated_user(self, client, db, idp):
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", is_active=False)
        idp.register("code-1", "u1", "a@x.com")

        response = client.get(CALLBACK, params={"code": "code-1"}, follow_redirects=False)

        assert response.headers["location"] == "http://testserver/unauthorized?reason=deactivated"
        assert idp.revoked == ["access-u1-code-1"]

    @pytest.mark.parametrize("params", [{}, {"code": "expired"}])
    def test_sign_in_error(self, client, params):
        response = client.get(CALLBACK, params=params, follow_redirects=False)

        location = urlsplit(response.headers["location"])
        assert location.path == "/login"
        assert location.query == "error=Could+not+authenticate+user"

    def test_profile_write_failure_shares_the_generic_error_page(self, client, db, idp):
        db.add("invitations", email="a@x.com", display_name="A")
        idp.register("code-1", "u1", "a@x.com")
        db.fail("user_profiles", "upsert")

        response = client.get(CALLBACK, params={"code": "code-1"}, follow_redirects=False)

        assert urlsplit(response.headers["location"]).path == "/login"
        assert len(db.rows("invitations")) == 1

    def test_allowed_forwarded_host(self, client, db, idp, monkeypatch):
        monkeypatch.setattr(settings, "environment", "production")
        monkeypatch.setattr(settings, "allowed_forwarded_hosts", "portal.example.com")
        idp.register("code-1", "u2", "b@x.com")
        idp.register("code-2", "u2", "b@x.com")

        allowed = client.get(CALLBACK, params={"code": "code-1"},
                             headers={"X-Forwarded-Host": "portal.example.com"}, follow_redirects=False)
        spoofed = client.get(CALLBACK, params={"code": "code-2"},
                             headers={"X-Forwarded-Host": "evil.example.com"}, follow_redirects=False)

        assert allowed.headers["location"].startswith("https://portal.example.com/unauthorized")
        assert spoofed.headers["location"].startswith("http://testserver/unauthorized")


class TestSignInStart:
    def test_login_redirects_to_provider_and_keeps_code_verifier(self, client, idp):
        response = client.get("/api/v1/auth/login", params={"next": "/dashboard/clients"},
                              follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "https://idp.test/authorize?provider=google"
        assert idp.sign_ins == [("google", "http://testserver/api/v1/auth/callback?next=%2Fdashboard%2Fclients")]
        verifier_cookie = [c for c in set_cookies(response) if c.startswith(f"{settings.code_verifier_cookie}=")]
        assert verifier_cookie and "verifier-1" in verifier_cookie[0]
        assert "httponly" in verifier_cookie[0].lower()

    def test_offsite_next_is_not_forwarded(self, client, idp):
        client.get("/api/v1/auth/login", params={"next": "https://evil.example.com"}, follow_redirects=False)

        assert idp.sign_ins == [("google", "http://testserver/api/v1/auth/callback")]

    def test_callback_presents_the_stored_code_verifier(self, client, db, idp):
        db.add("user_profiles", id="u1", email="a@x.com", display_name="A", onboarding_completed=True)
        idp.register("code-1", "u1", "a@x.com")
        presented = []
        exchange_code = idp.exchange_code

        def recording_exchange(code, code_verifier=None):
            presented.append(code_verifier)
            return exchange_code(code, code_verifier)

        idp.exchange_code = recording_exchange
        client.cookies.set(settings.code_verifier_cookie, "verifier-1")

        response = client.get(CALLBACK, params={"code": "code-1"}, follow_redirects=False)

        assert presented == ["verifier-1"]
        assert cookie_cleared(response, settings.code_verifier_cookie)


class TestAccessGuard:
    def test_requires_session(self, client):
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_me_lists_permissions(self, client, db, login_as, seed_role):
        role = seed_role("dispatcher", ["work_orders:manage", "clients:read"])
        profile = db.add("user_profiles", id="u1", email="a@x.com", display_name="A",
                         role_id=role["id"], onboarding_completed=True)

        response = client.get("/api/v1/auth/me", headers=login_as(profile))

        assert response.status_code == 200
        body = response.json()
        assert body["profile"]["id"] == "u1"
        assert body["role"]["name"] == "dispatcher"
        assert body["permissions"] == ["clients:read", "work_orders:manage"]

    def test_unclaimed_identity_is_forbidden(self, client, login_as):
        headers = login_as({"id": "ghost", "email": "ghost@x.com"})
        assert client.get("/api/v1/auth/me", headers=headers).status_code == 403

    def test_deactivated_profile_is_forbidden(self, client, db, login_as):
        profile = db.add("user_profiles", id="u1", email="a@x.com", display_name="A", is_active=False)
        assert client.get("/api/v1/auth/me", headers=login_as(profile)).status_code == 403

    def test_manage_grants_resource_actions(self, client, db, login_as, seed_role):
        role = seed_role("people_admin", ["users:manage"])
        profile = db.add("user_profiles", id="u1", email="a@x.com", display_name="A", role_id=role["id"])

        response = client.post("/api/v1/invitations", headers=login_as(profile),
                               json={"email": "New@x.com", "display_name": "New"})

        assert response.status_code == 201
        assert response.json()["email"] == "new@x.com"
        assert response.json()["invited_by"] == "u1"

    def test_missing_permission_is_forbidden(self, client, db, login_as, seed_role):
        role = seed_role("viewer", ["equipment:manage"])
        profile = db.add("user_profiles", id="u1", email="a@x.com", display_name="A", role_id=role["id"])

        response = client.get("/api/v1/roles", headers=login_as(profile))

        assert response.status_code == 403

    def test_role_change_is_seen_after_refresh(self, client, db, login_as, seed_role):
        viewer = seed_role("viewer", ["dashboard:read"])
        admin = seed_role("role_admin", ["roles:manage"])
        profile = db.add("user_profiles", id="u1", email="a@x.com", display_name="A", role_id=viewer["id"])
        headers = login_as(profile)

        assert client.get("/api/v1/roles", headers=headers).status_code == 403

        db.tables["user_profiles"][0]["role_id"] = admin["id"]
        # Still the permission set loaded for this session
        assert client.get("/api/v1/roles", headers=headers).status_code == 403

        refreshed = client.post("/api/v1/auth/permissions/refresh", headers=headers)
        assert refreshed.json()["permissions"] == ["roles:manage"]
        assert client.get("/api/v1/roles", headers=headers).status_code == 200

    def test_role_less_profile_after_role_deletion(self, client, db, login_as, seed_role):
        admin = seed_role("role_admin", ["roles:manage"])
        doomed = seed_role("dispatcher", ["work_orders:read"])
        admin_profile = db.add("user_profiles", id="admin", email="admin@x.com", display_name="Admin",
                               role_id=admin["id"])
        db.add("user_profiles", id="u2", email="b@x.com", display_name="B", role_id=doomed["id"])

        response = client.delete(f"/api/v1/roles/{doomed['id']}", headers=login_as(admin_profile))

        assert response.status_code == 200
        assert response.json()["unassigned_profiles"] == 1
        remaining = [p for p in db.rows("user_profiles") if p["id"] == "u2"][0]
        assert remaining["role_id"] is None

    def test_logout_drops_cached_permissions(self, client, db, login_as, seed_role):
        role = seed_role("viewer", ["dashboard:read"])
        profile = db.add("user_profiles", id="u1", email="a@x.com", display_name="A", role_id=role["id"])
        headers = login_as(profile)
        client.get("/api/v1/auth/me", headers=headers)
        assert permission_cache.get("token-u1") is not None

        response = client.post("/api/v1/auth/logout", headers=headers)

        assert response.status_code == 200
        assert permission_cache.get("token-u1") is None


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
