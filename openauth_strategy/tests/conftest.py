"""
Pytest configuration for openauth_strategy. Fixed issuer/client values, and a
fake OpenAuth issuer served through httpx.MockTransport so no test touches
the network.
"""
import base64
import os
import time
from urllib.parse import parse_qs, urlsplit

# Must be set before openauth_strategy.config is imported
os.environ["OAUTH_ISSUER"] = "https://issuer.example"
os.environ["OAUTH_CLIENT_ID"] = "test-client"
os.environ["OAUTH_REDIRECT_URI"] = "https://app.example/callback"
os.environ.pop("OAUTH_PROVIDER", None)
os.environ.pop("OAUTH_COOKIE_NAME", None)
os.environ.pop("OAUTH_COOKIE_MAX_AGE", None)

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi import Request

from openauth_strategy.client import OpenAuthClient
from openauth_strategy.pkce import s256_challenge

ISSUER = "https://issuer.example"
CLIENT_ID = "test-client"
REDIRECT_URI = "https://app.example/callback"
KID = "test-key"

# RSA keygen is slow; one key for the whole session
_SIGNING_KEY = generate_private_key(65537, 2048)


def _b64(n: int) -> str:
    return base64.urlsafe_b64encode(n.to_bytes((n.bit_length() + 7) // 8, "big")).rstrip(b"=").decode("ascii")


def public_jwk(private_key, kid: str) -> dict:
    numbers = private_key.public_key().public_numbers()
    return {"kty": "RSA", "kid": kid, "alg": "RS256", "use": "sig", "n": _b64(numbers.n), "e": _b64(numbers.e)}


class FakeIssuer:
    """Minimal OpenAuth issuer: /token (authorization_code, refresh_token) and JWKS."""

    def __init__(self):
        self.key = _SIGNING_KEY
        self.codes: dict[str, str] = {}  # code -> code_challenge
        self.refresh_tokens: dict[str, str] = {}  # refresh token -> subject id
        self.token_requests: list[dict] = []
        self.jwks_requests = 0

    def issue_code(self, code: str, authorize_url: str) -> None:
        """Register `code` as issued for the authorization request at `authorize_url`."""
        params = parse_qs(urlsplit(authorize_url).query)
        self.codes[code] = params["code_challenge"][0]

    def access_token(self, sub: str, expires_in: int = 600, mode: str = "access", subject_type: str = "user") -> str:
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "sub": sub,
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + expires_in,
            "mode": mode,
            "type": subject_type,
            "properties": {"id": sub},
        }
        return jwt.encode(payload, self.key, algorithm="RS256", headers={"kid": KID})

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/.well-known/jwks.json":
            self.jwks_requests += 1
            return httpx.Response(200, json={"keys": [public_jwk(self.key, KID)]})
        if request.url.path == "/token" and request.method == "POST":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            self.token_requests.append(form)
            if form.get("grant_type") == "authorization_code":
                return self._authorization_code(form)
            if form.get("grant_type") == "refresh_token":
                return self._refresh(form)
            return httpx.Response(400, json={"error": "unsupported_grant_type"})
        return httpx.Response(404)

    def _authorization_code(self, form: dict) -> httpx.Response:
        code = form.get("code", "")
        challenge = self.codes.pop(code, None)
        if challenge is None:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Unknown code"})
        if s256_challenge(form.get("code_verifier", "")) != challenge:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "PKCE verification failed"})
        return self._tokens(f"user-{code}")

    def _refresh(self, form: dict) -> httpx.Response:
        sub = self.refresh_tokens.pop(form.get("refresh_token", ""), None)
        if sub is None:
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Unknown refresh token"})
        return self._tokens(sub)

    def _tokens(self, sub: str) -> httpx.Response:
        refresh = f"refresh-{sub}-{len(self.token_requests)}"
        self.refresh_tokens[refresh] = sub
        return httpx.Response(
            200,
            json={"access_token": self.access_token(sub), "refresh_token": refresh, "expires_in": 600},
        )


@pytest.fixture
def issuer():
    return FakeIssuer()


@pytest.fixture
def client(issuer):
    http = httpx.AsyncClient(transport=httpx.MockTransport(issuer.handler))
    return OpenAuthClient(client_id=CLIENT_ID, issuer=ISSUER, http_client=http)


def make_request(url: str, cookies: list[str] | tuple[str, ...] = ()) -> Request:
    """Starlette request for `url` with one Cookie header per entry in `cookies`."""
    parts = urlsplit(url)
    headers = [(b"host", (parts.netloc or "app.example").encode())]
    headers += [(b"cookie", c.encode()) for c in cookies]
    scope = {
        "type": "http",
        "method": "GET",
        "scheme": parts.scheme or "https",
        "path": parts.path or "/",
        "raw_path": (parts.path or "/").encode(),
        "query_string": parts.query.encode(),
        "headers": headers,
        "root_path": "",
    }
    return Request(scope)


def cookie_pair(set_cookie: str) -> str:
    """'name=value' part of a Set-Cookie header, as a browser would send it back."""
    return set_cookie.split(";", 1)[0].strip()
