"""
Async client for an OpenAuth issuer: build the /authorize URL (with PKCE),
exchange codes and refresh tokens at /token, verify access tokens against the
issuer's JWKS.

Every failure is raised (TokenExchangeError, TokenRefreshError,
TokenVerifyError); nothing is retried.
"""
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import httpx
import jwt

from openauth_strategy.config import HTTP_TIMEOUT
from openauth_strategy.errors import TokenExchangeError, TokenRefreshError, TokenVerifyError
from openauth_strategy.pkce import generate_pkce, generate_state

logger = logging.getLogger(__name__)

# Access tokens with less than this many seconds left are refreshed
REFRESH_LEEWAY = 30

SIGNING_ALGORITHMS = ["ES256", "RS256"]


@dataclass
class Tokens:
    access: str
    refresh: str
    expires_in: int | None = None


@dataclass
class Challenge:
    state: str
    verifier: str | None = None


@dataclass
class AuthorizeResult:
    challenge: Challenge
    url: str


@dataclass
class Subject:
    type: str
    properties: Any


@dataclass
class VerifyResult:
    aud: str | list | None
    subject: Subject
    tokens: Tokens | None = None


@dataclass
class OpenAuthClient:
    client_id: str
    issuer: str
    http_client: httpx.AsyncClient | None = None
    timeout: float = HTTP_TIMEOUT
    _jwks: jwt.PyJWKSet | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.issuer = self.issuer.rstrip("/")

    @property
    def jwks_uri(self) -> str:
        return f"{self.issuer}/.well-known/jwks.json"

    async def authorize(
        self,
        redirect_uri: str,
        response: str,
        *,
        pkce: bool = False,
        provider: str | None = None,
    ) -> AuthorizeResult:
        """Fresh state (and verifier when pkce=True) plus the /authorize URL carrying them."""
        challenge = Challenge(state=generate_state())
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": response,
            "state": challenge.state,
        }
        if provider:
            params["provider"] = provider
        if pkce and response == "code":
            verifier, code_challenge = generate_pkce()
            params["code_challenge_method"] = "S256"
            params["code_challenge"] = code_challenge
            challenge.verifier = verifier
        return AuthorizeResult(challenge=challenge, url=f"{self.issuer}/authorize?{urlencode(params)}")

    async def exchange(self, code: str, redirect_uri: str, verifier: str | None = None) -> Tokens:
        """authorization_code grant. Raises TokenExchangeError on any failure."""
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
        }
        if verifier:
            data["code_verifier"] = verifier
        payload = await self._token_request(data, TokenExchangeError, "Token exchange failed")
        return self._tokens_from(payload, TokenExchangeError)

    async def refresh(self, refresh_token: str, access: str | None = None) -> Tokens | None:
        """
        refresh_token grant. If `access` is given and still valid for more than
        REFRESH_LEEWAY seconds, returns None without calling the issuer.
        """
        if access and not _expiring(access):
            logger.debug("Access token still valid; skipping refresh")
            return None
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        payload = await self._token_request(data, TokenRefreshError, "Token refresh failed")
        return self._tokens_from(payload, TokenRefreshError)

    async def verify(
        self,
        token: str,
        *,
        subjects: Mapping[str, Callable[[Any], Any]] | None = None,
        refresh: str | None = None,
        audience: str | None = None,
    ) -> VerifyResult:
        """
        Verify an access token's signature (issuer JWKS), issuer, expiry and
        optional audience. `subjects` maps subject type -> validator called with
        the token's properties; its return value becomes Subject.properties.
        An expired token is refreshed once when `refresh` is given; the new
        tokens are returned on the result.
        """
        try:
            claims = await self._decode(token, audience)
        except jwt.ExpiredSignatureError:
            if not refresh:
                raise TokenVerifyError("Token expired")
            logger.debug("Access token expired; refreshing before verify")
            try:
                tokens = await self.refresh(refresh)
            except TokenRefreshError as e:
                raise TokenVerifyError(f"Token expired and refresh failed: {e}") from e
            result = await self.verify(tokens.access, subjects=subjects, audience=audience)
            result.tokens = tokens
            return result
        except jwt.InvalidTokenError as e:
            logger.debug("JWT verification failed: %s", e)
            raise TokenVerifyError(f"Token verification failed: {e}") from e

        if claims.get("mode") != "access":
            raise TokenVerifyError("Token is not an access token")
        subject_type = claims.get("type")
        properties = claims.get("properties")
        if subjects is not None:
            validator = subjects.get(subject_type)
            if validator is None:
                raise TokenVerifyError(f"Unknown subject type: {subject_type}")
            try:
                properties = validator(properties)
            except (TypeError, ValueError) as e:
                raise TokenVerifyError(f"Invalid subject properties: {e}") from e
        return VerifyResult(aud=claims.get("aud"), subject=Subject(type=subject_type, properties=properties))

    async def _decode(self, token: str, audience: str | None) -> dict:
        kid = jwt.get_unverified_header(token).get("kid")
        jwks = await self._get_jwks()
        key = _find_key(jwks, kid)
        if key is None:
            # Issuer may have rotated keys since we cached the set
            jwks = await self._get_jwks(refresh=True)
            key = _find_key(jwks, kid)
        if key is None:
            raise jwt.InvalidTokenError(f"No signing key for kid {kid!r}")
        return jwt.decode(
            token,
            key.key,
            algorithms=SIGNING_ALGORITHMS,
            issuer=self.issuer,
            audience=audience,
            options={"verify_exp": True, "verify_iss": True, "verify_aud": audience is not None},
        )

    async def _get_jwks(self, refresh: bool = False) -> jwt.PyJWKSet:
        if self._jwks is None or refresh:
            try:
                r = await self._request("GET", self.jwks_uri)
                r.raise_for_status()
                self._jwks = jwt.PyJWKSet.from_dict(r.json())
            except (httpx.HTTPError, ValueError, jwt.PyJWKSetError) as e:
                raise TokenVerifyError(f"Could not load JWKS from {self.jwks_uri}: {e}") from e
        return self._jwks

    async def _token_request(self, data: dict, error_cls: type, message: str) -> dict:
        try:
            r = await self._request(
                "POST",
                f"{self.issuer}/token",
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise error_cls(f"{message}: {e}", error="server_error", status_code=502) from e
        if not r.is_success:
            err = _error_body(r)
            err_desc = err.get("error_description", err.get("error", r.text)) or message
            logger.debug("%s with status %s: %s", message, r.status_code, err_desc)
            raise error_cls(f"{message}: {err_desc}", error=err.get("error"))
        try:
            return r.json()
        except ValueError as e:
            raise error_cls(f"{message}: invalid JSON response") from e

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self.http_client is not None:
            return await self.http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as http:
            return await http.request(method, url, **kwargs)

    @staticmethod
    def _tokens_from(payload: dict, error_cls: type) -> Tokens:
        if "access_token" not in payload:
            raise error_cls("Token response missing 'access_token' field")
        return Tokens(
            access=payload["access_token"],
            refresh=payload.get("refresh_token", ""),
            expires_in=payload.get("expires_in"),
        )


def _error_body(r: httpx.Response) -> dict:
    """OAuth error JSON from a failed token response; {} when absent or not an object."""
    if not r.headers.get("content-type", "").startswith("application/json"):
        return {}
    try:
        body = r.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _find_key(jwks: jwt.PyJWKSet, kid: str | None) -> jwt.PyJWK | None:
    if kid is None:
        return jwks.keys[0] if len(jwks.keys) == 1 else None
    for key in jwks.keys:
        if key.key_id == kid:
            return key
    return None


def _expiring(access: str) -> bool:
    """True when the (unverified) token expires within REFRESH_LEEWAY seconds or can't be read."""
    try:
        claims = jwt.decode(access, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return True
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)) or isinstance(exp, bool):
        return True
    return exp <= time.time() + REFRESH_LEEWAY
