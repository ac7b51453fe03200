"""Tests for the example host app: /login -> issuer -> /callback through TestClient's cookie jar."""
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

import pytest
from fastapi.testclient import TestClient

from openauth_strategy import main
from openauth_strategy.main import app


@pytest.fixture
def web(client):
    with patch.object(main.strategy, "client", client):
        yield TestClient(app)


def _state(location: str) -> str:
    return parse_qs(urlsplit(location).query)["state"][0]


def test_health(web):
    r = web.get("/health")
    assert r.status_code == 200
    assert r.json().get("service") == "openauth_strategy"


def test_login_redirects_to_issuer(web):
    r = web.get("/login", follow_redirects=False)
    assert r.status_code == 302
    location = r.headers["location"]
    assert "/authorize?" in location
    assert "response_type=code" in location
    assert "code_challenge=" in location
    assert "code_challenge_method=S256" in location
    assert "state=" in location
    assert "oauth2" in web.cookies


def test_callback_missing_state(web):
    web.get("/login", follow_redirects=False)
    r = web.get("/callback", params={"code": "abc"})
    assert r.status_code == 400
    assert "state" in r.json()["error_description"].lower()


def test_callback_without_login(web):
    r = web.get("/callback", params={"code": "abc", "state": "unknown-state"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_request"


def test_callback_unknown_state(web):
    web.get("/login", follow_redirects=False)
    r = web.get("/callback", params={"code": "abc", "state": "unknown-state"})
    assert r.status_code == 400
    assert "match" in r.json()["error_description"]


def test_callback_error_from_issuer(web):
    r = web.get("/callback", params={"error": "access_denied", "error_description": "User denied"})
    assert r.status_code == 403
    assert r.json() == {"error": "access_denied", "error_description": "User denied"}


def test_login_then_callback(web, issuer):
    r = web.get("/login", follow_redirects=False)
    location = r.headers["location"]
    issuer.issue_code("auth-code-xyz", location)

    r = web.get("/callback", params={"code": "auth-code-xyz", "state": _state(location)})

    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Login success"
    assert body["user"] == {"type": "user", "properties": {"id": "user-auth-code-xyz"}}
    # Used state was the only pending one: cookie is gone
    assert "oauth2" not in web.cookies


def test_replayed_callback_rejected(web, issuer):
    r = web.get("/login", follow_redirects=False)
    location = r.headers["location"]
    issuer.issue_code("auth-code-xyz", location)
    params = {"code": "auth-code-xyz", "state": _state(location)}

    assert web.get("/callback", params=params).status_code == 200
    r = web.get("/callback", params=params)
    assert r.status_code == 400


def test_bad_code_maps_to_401(web):
    r = web.get("/login", follow_redirects=False)
    r = web.get("/callback", params={"code": "never-issued", "state": _state(r.headers["location"])})
    assert r.status_code == 401
    assert r.json()["error"] == "invalid_grant"
