"""
Integration tests for the HTTP adapter (api/main.py, api/routes/v1/).

The api_client fixture is module-scoped and shares one database, so every test
registers its own tenant under a unique email.
"""

import uuid

from fastapi.testclient import TestClient

PASSWORD = "password123"


def _register(client: TestClient, **overrides) -> dict:
    email = f"owner-{uuid.uuid4().hex[:8]}@acme.test"
    body = {
        "company_name": "Acme",
        "phone": "+212600000000",
        "city": "Casablanca",
        "company_email": "contact@acme.test",
        "email": email,
        "password": PASSWORD,
        "full_name": "Acme Owner",
    }
    body.update(overrides)
    resp = client.post("/api/v1/auth/register", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def test_health(api_client: TestClient) -> None:
    resp = api_client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


class TestRegisterAndLogin:
    def test_register_returns_tokens_and_organization(self, api_client: TestClient) -> None:
        data = _register(api_client)
        assert data["token_type"] == "bearer"
        assert data["account"]["role"] == "OWNER"
        assert "password_hash" not in data["account"]
        assert data["organization"]["name"] == "Acme"
        assert data["organization"]["city"] == "Casablanca"

    def test_register_twice_is_409(self, api_client: TestClient) -> None:
        data = _register(api_client)
        resp = api_client.post(
            "/api/v1/auth/register",
            json={
                "company_name": "Copycat",
                "phone": "1",
                "company_email": "x@copycat.test",
                "email": data["account"]["email"],
                "password": PASSWORD,
                "full_name": "X",
            },
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "duplicate_email"

    def test_register_validation_error_envelope(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/v1/auth/register", json={"company_name": "Acme"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_multibyte_password_over_bcrypt_limit_is_422(self, api_client: TestClient) -> None:
        """72 characters but 216 UTF-8 bytes: rejected at validation, never reaches bcrypt."""
        resp = api_client.post(
            "/api/v1/auth/register",
            json={
                "company_name": "Acme",
                "phone": "+212600000000",
                "company_email": "contact@acme.test",
                "email": f"owner-{uuid.uuid4().hex[:8]}@acme.test",
                "password": "日" * 72,
                "full_name": "Acme Owner",
            },
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_multibyte_password_at_bcrypt_limit_is_accepted(self, api_client: TestClient) -> None:
        data = _register(api_client, password="日" * 24)
        resp = api_client.post("/api/v1/auth/login", json={"email": data["account"]["email"], "password": "日" * 24})
        assert resp.status_code == 200

    def test_login_sets_no_store(self, api_client: TestClient) -> None:
        data = _register(api_client)
        resp = api_client.post("/api/v1/auth/login", json={"email": data["account"]["email"], "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "no-store"
        assert resp.json()["account"]["id"] == data["account"]["id"]

    def test_login_failures_share_one_body(self, api_client: TestClient) -> None:
        data = _register(api_client)
        wrong = api_client.post("/api/v1/auth/login", json={"email": data["account"]["email"], "password": "nope-nope"})
        unknown = api_client.post("/api/v1/auth/login", json={"email": "ghost@acme.test", "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "invalid_credentials"


class TestSessions:
    def test_me_requires_bearer(self, api_client: TestClient) -> None:
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_resolves_access_token(self, api_client: TestClient) -> None:
        data = _register(api_client)
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(data["access_token"]))
        assert resp.status_code == 200
        assert resp.json()["email"] == data["account"]["email"]

    def test_refresh_replay_is_detected(self, api_client: TestClient) -> None:
        data = _register(api_client)
        first = api_client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert first.status_code == 200

        replay = api_client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "reuse_detected"

        after = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first.json()["refresh_token"]})
        assert after.status_code == 401
        assert after.json()["error"]["code"] == "invalid_token"

    def test_logout_revokes_refresh(self, api_client: TestClient) -> None:
        data = _register(api_client)
        for _ in range(2):
            resp = api_client.post("/api/v1/auth/logout", headers=_bearer(data["access_token"]))
            assert resp.status_code == 200
            assert resp.json() == {"success": True}
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": data["refresh_token"]})
        assert resp.status_code == 401

    def test_change_password(self, api_client: TestClient) -> None:
        data = _register(api_client)
        resp = api_client.post(
            "/api/v1/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "new-password-1"},
            headers=_bearer(data["access_token"]),
        )
        assert resp.status_code == 200
        login = api_client.post(
            "/api/v1/auth/login", json={"email": data["account"]["email"], "password": "new-password-1"}
        )
        assert login.status_code == 200


class TestPasswordReset:
    def test_forgot_password_is_uniform(self, api_client: TestClient) -> None:
        data = _register(api_client)
        known = api_client.post("/api/v1/auth/forgot-password", json={"email": data["account"]["email"]})
        unknown = api_client.post("/api/v1/auth/forgot-password", json={"email": "ghost@acme.test"})
        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"success": True}

    def test_reset_with_delivered_token(self, api_client: TestClient) -> None:
        data = _register(api_client)
        api_client.post("/api/v1/auth/forgot-password", json={"email": data["account"]["email"]})
        token = api_client.app.state.auth_engine.notifier.sent[-1][1]

        resp = api_client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "reset-pass-1"})
        assert resp.status_code == 200

        again = api_client.post("/api/v1/auth/reset-password", json={"token": token, "new_password": "reset-pass-2"})
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "invalid_or_expired_token"

    def test_reset_and_change_reject_oversized_password(self, api_client: TestClient) -> None:
        data = _register(api_client)
        reset = api_client.post("/api/v1/auth/reset-password", json={"token": "0" * 64, "new_password": "é" * 40})
        assert reset.status_code == 422
        change = api_client.post(
            "/api/v1/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "é" * 40},
            headers=_bearer(data["access_token"]),
        )
        assert change.status_code == 422


class TestAccounts:
    def test_owner_manages_members(self, api_client: TestClient) -> None:
        owner = _register(api_client)
        headers = _bearer(owner["access_token"])
        agent_email = f"agent-{uuid.uuid4().hex[:8]}@acme.test"

        created = api_client.post(
            "/api/v1/accounts",
            json={"email": agent_email, "password": "agent-pass-1", "full_name": "Agent"},
            headers=headers,
        )
        assert created.status_code == 201
        agent_id = created.json()["id"]
        assert created.json()["role"] == "AGENT"

        listed = api_client.get("/api/v1/accounts", headers=headers)
        assert {a["email"] for a in listed.json()} == {owner["account"]["email"], agent_email}

        patched = api_client.patch(f"/api/v1/accounts/{agent_id}", json={"role": "ADMIN"}, headers=headers)
        assert patched.status_code == 200
        assert patched.json()["role"] == "ADMIN"

        deleted = api_client.delete(f"/api/v1/accounts/{agent_id}", headers=headers)
        assert deleted.status_code == 204
        login = api_client.post("/api/v1/auth/login", json={"email": agent_email, "password": "agent-pass-1"})
        assert login.status_code == 401

    def test_agent_is_forbidden(self, api_client: TestClient) -> None:
        owner = _register(api_client)
        agent_email = f"agent-{uuid.uuid4().hex[:8]}@acme.test"
        api_client.post(
            "/api/v1/accounts",
            json={"email": agent_email, "password": "agent-pass-1", "full_name": "Agent"},
            headers=_bearer(owner["access_token"]),
        )
        agent = api_client.post("/api/v1/auth/login", json={"email": agent_email, "password": "agent-pass-1"}).json()
        resp = api_client.get("/api/v1/accounts", headers=_bearer(agent["access_token"]))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_cannot_delete_self(self, api_client: TestClient) -> None:
        owner = _register(api_client)
        resp = api_client.delete(f"/api/v1/accounts/{owner['account']['id']}", headers=_bearer(owner["access_token"]))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_deletion"

    def test_other_tenant_member_is_404(self, api_client: TestClient) -> None:
        acme = _register(api_client)
        globex = _register(api_client, company_name="Globex")
        resp = api_client.patch(
            f"/api/v1/accounts/{acme['account']['id']}",
            json={"full_name": "Hijacked"},
            headers=_bearer(globex["access_token"]),
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"
