"""
Identity, health, CLI, log formatting and error-envelope tests.
"""

import json
import logging

import jwt
import pytest

from conftest import PASSWORD, headers
from labflow.middleware.logging_config import JSONFormatter, ReadableFormatter
from labflow.models.auth import User
from labflow.services.esign_service import ESignService
from labflow.services.jwt_service import decode_access_token, generate_access_token


@pytest.fixture()
def auth_enabled(app, monkeypatch):
    monkeypatch.setitem(app.config, "API_AUTH_ENABLED", "true")


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


class TestJwt:
    def test_round_trip(self):
        token = generate_access_token("qa-1", "QA")
        payload = decode_access_token(token)
        assert payload["sub"] == "qa-1"
        assert payload["role"] == "QA"
        assert payload["type"] == "access"
        assert "client_code" not in payload

    def test_wrong_type_rejected(self, app):
        token = jwt.encode({"sub": "x", "role": "QA", "type": "refresh"}, app.config["SECRET_KEY"], algorithm="HS256")
        with pytest.raises(jwt.InvalidTokenError):
            decode_access_token(token)

    def test_bearer_identity_used_for_requests(self, client, auth_enabled):
        token = generate_access_token("client-1", "CLIENT", client_code="ACME")
        res = client.post("/api/v1/reports", json={"formType": "COA"}, headers=_bearer(token))
        assert res.status_code == 201
        body = res.get_json()
        assert body["client_code"] == "ACME"
        assert body["created_by"] == "client-1"

    def test_headers_ignored_when_auth_enabled(self, client, auth_enabled):
        res = client.post("/api/v1/reports", json={"formType": "COA"}, headers=headers("client-1", "CLIENT", "ACME"))
        assert res.status_code == 401

    def test_invalid_token(self, client):
        res = client.get("/api/v1/reports", headers=_bearer("not-a-token"))
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid token"

    def test_token_with_unknown_role(self, client):
        token = generate_access_token("x-1", "JANITOR")
        res = client.get("/api/v1/reports", headers=_bearer(token))
        assert res.status_code == 401

    def test_unknown_header_role_is_unauthenticated(self, client):
        res = client.get("/api/v1/reports", headers=headers("x-1", "JANITOR"))
        assert res.status_code == 401


def test_health_needs_no_identity(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    body = res.get_json()
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["status"] == "ok"


def test_response_carries_request_id(client):
    res = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
    assert res.headers["X-Request-ID"] == "abc123"
    assert "X-Request-Duration-Ms" in res.headers
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["Cache-Control"] == "no-store"


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/api/v1/nothing-here", headers=headers("qa-1", "QA"))
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_non_json_body_rejected(client):
    res = client.post(
        "/api/v1/reports", data="formType=COA",
        headers={**headers("client-1", "CLIENT", "ACME"), "Content-Type": "text/plain"},
    )
    assert res.status_code == 415


class TestCreateUserCommand:
    def test_creates_user_with_bcrypt_hash(self, app, session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "create-user", "--id", "qa-5", "--role", "qa", "--password", PASSWORD,
            "--email", "qa5@lab.example",
        ])
        assert result.exit_code == 0, result.output
        user = session.get(User, "qa-5")
        assert user.role == "QA"
        assert user.password_hash.startswith("$2")
        assert ESignService().verify_password("qa-5", PASSWORD)

    def test_rerun_resets_password(self, app, session):
        runner = app.test_cli_runner()
        runner.invoke(args=["create-user", "--id", "c-1", "--role", "CLIENT", "--client-code", "ACME", "--password", "one"])
        result = runner.invoke(args=["create-user", "--id", "c-1", "--role", "CLIENT", "--client-code", "ACME", "--password", "two"])
        assert result.exit_code == 0, result.output
        session.expire_all()
        assert ESignService().verify_password("c-1", "two")
        assert not ESignService().verify_password("c-1", "one")

    def test_client_needs_client_code(self, app):
        result = app.test_cli_runner().invoke(args=["create-user", "--id", "c-2", "--role", "CLIENT", "--password", "x"])
        assert result.exit_code != 0


class TestLogFormatters:
    def _record(self, **extra):
        return logging.makeLogRecord({
            "name": "labflow.services.transition_service", "levelname": "INFO", "levelno": logging.INFO,
            "msg": "Report %s locked", "args": ("r-1",), **extra,
        })

    def test_json_carries_workflow_context(self):
        line = JSONFormatter().format(self._record(report_id="r-1", role="CLIENT", request_id="abc", ticket=9))
        entry = json.loads(line)
        assert entry["message"] == "Report r-1 locked"
        assert entry["report_id"] == "r-1"
        assert entry["role"] == "CLIENT"
        assert entry["request_id"] == "abc"
        assert "ticket" not in entry

    def test_readable_line_shows_who_and_what(self):
        line = ReadableFormatter().format(self._record(report_id="r-1", user_id="c-1", duration_ms=3.2))
        assert "Report r-1 locked" in line
        assert "report=r-1 user=c-1" in line
        assert line.endswith("[3ms]")
