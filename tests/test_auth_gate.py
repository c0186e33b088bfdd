# tests/test_auth_gate.py
"""
Auth gate classification and the route-level caller check.
"""
import dataclasses
import datetime

import pytest
from starlette.datastructures import Headers

from mailgate.auth import GateOutcome, classify_request, is_public_path
from mailgate.tokens import TokenIssuer

from conftest import API_KEY


def _classify(issuer, path, headers=None):
    return classify_request(path, Headers(headers or {}), issuer, "X-API-Key")


@pytest.mark.parametrize("path", ["/swagger", "/swagger/index.html", "/swagger/v1/swagger.json",
                                  "/api/auth/token", "/health"])
def test_public_paths(path):
    assert is_public_path(path)


@pytest.mark.parametrize("path", ["/swaggerish", "/api/auth/tokens", "/api/prompt", "/metrics", "/"])
def test_non_public_paths(path):
    assert not is_public_path(path)


def test_classification_order(issuer):
    assert _classify(issuer, "/swagger/index.html") == GateOutcome.PUBLIC
    # public wins even with a bad key
    assert _classify(issuer, "/api/auth/token", {"X-API-Key": "wrong"}) == GateOutcome.PUBLIC
    assert _classify(issuer, "/api/prompt", {"Authorization": "Bearer xyz"}) == GateOutcome.PENDING_BEARER
    # Authorization presence routes around the key check, even with a bad key
    assert _classify(issuer, "/api/prompt", {"Authorization": "junk", "X-API-Key": "wrong"}) == GateOutcome.PENDING_BEARER
    assert _classify(issuer, "/api/prompt") == GateOutcome.MISSING_KEY
    assert _classify(issuer, "/api/prompt", {"X-API-Key": "wrong"}) == GateOutcome.INVALID_KEY
    assert _classify(issuer, "/api/prompt", {"X-API-Key": ""}) == GateOutcome.INVALID_KEY
    assert _classify(issuer, "/api/prompt", {"x-api-key": API_KEY}) == GateOutcome.SECRET_VERIFIED


def test_forwarded_flag():
    assert GateOutcome.PUBLIC.forwarded
    assert GateOutcome.PENDING_BEARER.forwarded
    assert GateOutcome.SECRET_VERIFIED.forwarded
    assert not GateOutcome.MISSING_KEY.forwarded
    assert not GateOutcome.INVALID_KEY.forwarded


# ---------------------------------------------------------------------------
# Through the app
# ---------------------------------------------------------------------------
def test_swagger_is_never_gated(client):
    r = client.get("/swagger/index.html")
    assert r.status_code != 401
    r = client.get("/swagger")
    assert r.status_code == 200


def test_missing_key_rejected_with_header_name(client):
    r = client.get("/api/prompt")
    assert r.status_code == 401
    assert r.headers["content-type"].startswith("text/plain")
    assert "X-API-Key" in r.text


def test_wrong_key_rejected(client):
    r = client.get("/api/prompt", headers={"X-API-Key": "wrong"})
    assert r.status_code == 401
    assert "invalid" in r.text.lower()
    assert API_KEY not in r.text


def test_valid_key_forwarded(client, key_headers):
    r = client.get("/api/prompt", headers=key_headers)
    assert r.status_code == 200


def test_bearer_presence_passes_gate_but_route_rejects_bad_token(client):
    r = client.get("/api/prompt", headers={"Authorization": "Bearer xyz"})
    # past the gate (no plain-text key message), rejected by the route check
    assert r.status_code == 401
    assert r.headers.get("www-authenticate") == "Bearer"
    assert "X-API-Key" not in r.text


def test_route_rejection_uses_error_envelope(client):
    r = client.get("/api/prompt", headers={"Authorization": "Bearer xyz"})
    assert r.status_code == 401
    assert r.headers.get("www-authenticate") == "Bearer"
    assert r.json() == {"status": "error", "error_code": "E_UNAUTHORIZED",
                        "message": "Invalid or expired token"}


def test_non_bearer_authorization_rejected_by_route(client):
    r = client.get("/api/prompt", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert r.status_code == 401
    assert r.json()["error_code"] == "E_UNAUTHORIZED"


def test_valid_bearer_accepted_without_key(client, issuer):
    token = issuer.issue_token().token
    r = client.get("/api/prompt", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200


def test_bearer_takes_precedence_over_valid_key(client, key_headers):
    headers = dict(key_headers, Authorization="Bearer not-a-jwt")
    r = client.get("/api/prompt", headers=headers)
    assert r.status_code == 401


def test_expired_bearer_rejected(client, settings):
    past = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(
        minutes=settings.jwt_expiration_minutes, seconds=5)
    stale = TokenIssuer(settings, clock=lambda: past).issue_token().token
    r = client.get("/api/prompt", headers={"Authorization": f"Bearer {stale}"})
    assert r.status_code == 401


def test_health_is_public_but_metrics_is_gated(client, key_headers):
    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/metrics").status_code == 401
    assert client.get("/metrics", headers=key_headers).status_code in (200, 404)


def test_unconfigured_key_rejects_everything(settings, database):
    from fastapi.testclient import TestClient
    from mailgate.app import create_app

    app = create_app(dataclasses.replace(settings, api_key=""), database=database)
    c = TestClient(app)
    assert c.get("/api/prompt", headers={"X-API-Key": ""}).status_code == 401
    assert c.get("/api/prompt", headers={"X-API-Key": "anything"}).status_code == 401
