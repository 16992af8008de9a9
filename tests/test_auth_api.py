"""
End-to-end tests for the HTTP adapter (register / login / check / health).
"""

import base64
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from auth.jwt import TokenIssuer
from config.settings import Settings
from main import create_app

# Secure cookies are only sent back over https.
BASE_URL = "https://testserver"


@pytest.fixture()
def client(settings):
    app = create_app(settings)
    with TestClient(app, base_url=BASE_URL) as test_client:
        yield test_client


def _register(client, identifier="alice", secret="pw1"):
    return client.post("/register", json={"identifier": identifier, "secret": secret})


def _login(client, identifier="alice", secret="pw1"):
    return client.post("/login", json={"identifier": identifier, "secret": secret})


class TestScenario:
    def test_alice(self, client):
        r = _register(client)
        assert r.status_code == 201
        body = r.json()
        assert body["identifier"] == "alice"
        subject_id = body["subject_id"]

        assert _register(client, secret="pw2").status_code == 400

        r = _login(client)
        assert r.status_code == 200
        assert r.json()["profile"] == {"subject_id": subject_id, "identifier": "alice"}
        assert r.json()["expiry_seconds"] == 3600
        assert r.json()["token"] == r.cookies["token"]

        r = _login(client, secret="wrong")
        assert r.status_code == 401
        assert r.json()["error"] == "InvalidCredentials"

        r = client.post("/check")
        assert r.status_code == 200
        profile = r.json()["profile"]
        assert profile["identifier"] == "alice"
        assert profile["subject_id"] == subject_id
        assert "hashed_secret" not in profile

        client.cookies.clear()
        r = client.post("/check")
        assert r.status_code == 401
        assert r.json()["error"] == "InvalidCredentials"


class TestRegisterEndpoint:
    @pytest.mark.parametrize(
        "payload",
        [{}, {"identifier": "alice"}, {"secret": "pw"}, {"identifier": "", "secret": "pw"}, ["alice", "pw"]],
    )
    def test_missing_fields(self, client, payload):
        r = client.post("/register", json=payload)
        assert r.status_code == 400
        assert r.json()["error"] == "MissingField"
        assert r.json()["message"]

    def test_non_json_body(self, client):
        r = client.post("/register", content=b"login=alice", headers={"Content-Type": "text/plain"})
        assert r.status_code == 400

    def test_duplicate(self, client):
        _register(client)
        r = _register(client, secret="other")
        assert r.status_code == 400
        assert r.json()["error"] == "DuplicateIdentifier"

    def test_store_failure_is_generic_500(self, client):
        workflow = client.app.state.workflow
        workflow._store.get_by_identifier = AsyncMock(
            side_effect=OperationalError("SELECT", {}, Exception("db host 10.0.0.5 unreachable"))
        )
        r = _register(client)
        assert r.status_code == 500
        assert "10.0.0.5" not in r.text
        assert r.json()["error"] == "InternalFailure"


class TestLoginEndpoint:
    def test_cookie_attributes(self, client):
        _register(client)
        r = _login(client)
        set_cookie = r.headers["set-cookie"].lower()
        assert set_cookie.startswith("token=")
        assert "httponly" in set_cookie
        assert "secure" in set_cookie
        assert "samesite=strict" in set_cookie
        assert "max-age=3600" in set_cookie

    def test_failures_are_indistinguishable(self, client):
        _register(client)
        wrong_password = _login(client, secret="wrong")
        unknown_user = _login(client, identifier="nobody")

        assert wrong_password.status_code == unknown_user.status_code == 401
        assert wrong_password.json() == unknown_user.json()
        assert "set-cookie" not in wrong_password.headers

    def test_missing_fields_are_invalid_credentials(self, client):
        r = client.post("/login", json={})
        assert r.status_code == 401
        assert r.json()["error"] == "InvalidCredentials"


class TestCheckEndpoint:
    def _rejected(self, client, token=None):
        client.cookies.clear()
        headers = {"Cookie": f"token={token}"} if token is not None else {}
        r = client.post("/check", headers=headers)
        assert r.status_code == 401
        return r.json()

    def test_bad_tokens_share_one_outcome(self, client, settings):
        _register(client)
        foreign = TokenIssuer("not-the-server-secret").issue("x", "alice").token
        expired = TokenIssuer(
            settings.jwt_secret.get_secret_value(), clock=lambda: 1_000_000.0
        ).issue("x", "alice").token

        bodies = [
            self._rejected(client),
            self._rejected(client, "garbage"),
            self._rejected(client, foreign),
            self._rejected(client, expired),
        ]
        assert all(b == bodies[0] for b in bodies)
        assert bodies[0]["error"] == "InvalidCredentials"

    @pytest.mark.parametrize("depth", [2900, 5000])
    def test_deeply_nested_token_is_invalid_credentials(self, client, depth):
        header = base64.urlsafe_b64encode(b"[" * depth).rstrip(b"=").decode()
        token = f"{header}.e30.c2ln"
        client.cookies.clear()

        r = client.post("/check", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 401
        assert r.json()["error"] == "InvalidCredentials"
        assert r.json() == self._rejected(client, "garbage")

    def test_bearer_header_fallback(self, client):
        _register(client)
        token = _login(client).json()["token"]
        client.cookies.clear()

        r = client.post("/check", headers={"Authorization": f"Bearer {token}"})
        assert r.status_code == 200
        assert r.json()["profile"]["identifier"] == "alice"


class TestServiceEndpoints:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "OK", "service": "auth-service"}
        assert "x-process-time" in r.headers
        assert r.headers["cache-control"] == "no-store"

    def test_api_prefix(self, database_url):
        settings = Settings(
            _env_file=None,
            jwt_secret="prefix-secret",
            database_url=database_url,
            bcrypt_rounds=4,
            api_prefix="/api",
        )
        with TestClient(create_app(settings), base_url=BASE_URL) as client:
            assert _register(client).status_code == 404
            r = client.post("/api/register", json={"identifier": "alice", "secret": "pw1"})
            assert r.status_code == 201
            assert client.get("/health").status_code == 200

    def test_factory_reads_settings_from_environment(self, database_url, tmp_path, monkeypatch):
        """`uvicorn main:create_app --factory` calls create_app with no arguments."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABASE_URL", database_url)
        monkeypatch.setenv("JWT_SECRET", "env-secret")
        monkeypatch.setenv("SERVICE_NAME", "env-auth-service")
        monkeypatch.setenv("BCRYPT_ROUNDS", "4")

        with TestClient(create_app(), base_url=BASE_URL) as client:
            assert client.get("/health").json()["service"] == "env-auth-service"
            assert _register(client).status_code == 201

    def test_unreachable_store_is_fatal(self, tmp_path):
        settings = Settings(
            _env_file=None,
            jwt_secret="secret",
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'db.sqlite'}",
        )
        app = create_app(settings)
        with pytest.raises(Exception):
            with TestClient(app, base_url=BASE_URL):
                pass
