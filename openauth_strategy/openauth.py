"""
OAuth2 Authorization Code + PKCE strategy for an OpenAuth issuer.

One entry point, authenticate(request):

- ?error=...            -> raise ProviderError
- no ?code (login)      -> new state + verifier, remembered in a cookie,
                           raise RedirectSignal (302 to the issuer)
- ?code=...&state=...   -> match state against the cookie, exchange the code,
                           hand the tokens to the application's verify function
                           and return what it returns
"""
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi import Request, Response

from openauth_strategy import config
from openauth_strategy.client import OpenAuthClient, Tokens, VerifyResult
from openauth_strategy.errors import (
    MissingStateError,
    MissingStoreError,
    MissingVerifierError,
    ProviderError,
    StateMismatchError,
)
from openauth_strategy.redirect import RedirectSignal, redirect
from openauth_strategy.state_store import CookieOptions, StateStore
from openauth_strategy.strategy import Strategy, User

logger = logging.getLogger(__name__)

ExtraParams = Callable[[dict[str, str], Request], dict[str, str]]


@dataclass
class VerifyContext:
    """What the application's verify function receives after a successful code exchange."""

    request: Request
    client: OpenAuthClient
    tokens: Tokens


def default_extra_params(params: dict[str, str], request: Request) -> dict[str, str]:
    return dict(params)


class OpenAuthStrategy(Strategy[User, VerifyContext]):
    """
    Log users in through an OpenAuth issuer.

    Args:
        verify: called with a VerifyContext after the code exchange; returns the user.
        redirect_uri: this app's callback URL, registered with the issuer.
        client_id: client identifier known to the issuer.
        issuer: issuer base URL.
        provider: identity provider configured on the issuer (e.g. "github").
            Fixed per instance; use one instance per provider and register each
            under its own `name`.
        cookie: pending-state cookie name, or full CookieOptions. Default "oauth2".
        extra_params: (params, request) -> params. Adds provider-specific
            parameters to the authorization URL. Default leaves them unchanged.
        client: token client; built from client_id/issuer when omitted.
        name: name the host registers this strategy under. Default "openauth".
    """

    name = "openauth"

    def __init__(
        self,
        verify: Callable[[VerifyContext], User | Awaitable[User]],
        *,
        redirect_uri: str = config.REDIRECT_URI,
        client_id: str = config.CLIENT_ID,
        issuer: str = config.ISSUER,
        provider: str | None = config.PROVIDER,
        cookie: str | CookieOptions | None = None,
        extra_params: ExtraParams | None = None,
        client: OpenAuthClient | None = None,
        name: str | None = None,
    ):
        super().__init__(verify)
        self.redirect_uri = redirect_uri
        self.provider = provider
        self.cookie = _cookie_options(cookie)
        self.extra_params = extra_params or default_extra_params
        self.client = client or OpenAuthClient(client_id=client_id, issuer=issuer)
        if name:
            self.name = name

    @property
    def cookie_name(self) -> str:
        return self.cookie.name

    async def authenticate(self, request: Request) -> User:
        logger.debug("Request URL %s", request.url)
        query = request.query_params

        code = query.get("code")
        state_url = query.get("state")
        error = query.get("error")

        if error:
            raise ProviderError(
                error,
                description=query.get("error_description"),
                uri=query.get("error_uri"),
                state=state_url,
            )

        if not code:
            logger.debug("No code found in the URL, redirecting to authorization endpoint")
            raise await self._authorization_redirect(request)

        if not state_url:
            raise MissingStateError()

        store = StateStore.from_request(request, self.cookie_name)

        if not store.has():
            raise MissingStoreError()

        if not store.has(state_url):
            raise StateMismatchError()

        code_verifier = store.get(state_url)
        if not code_verifier:
            raise MissingVerifierError()

        logger.debug("Validating authorization code")
        tokens = await self.client.exchange(code, self.redirect_uri, code_verifier)

        logger.debug("Verifying the user profile")
        user = await self.verify(VerifyContext(request=request, client=self.client, tokens=tokens))

        logger.info("User authenticated via %s", self.name)
        return user

    async def _authorization_redirect(self, request: Request) -> RedirectSignal:
        """Redirect to the issuer, with the new state/verifier pair added to the cookie."""
        result = await self.client.authorize(
            self.redirect_uri, "code", pkce=True, provider=self.provider
        )
        state = result.challenge.state
        logger.debug("State %s", state)

        url = self._apply_extra_params(result.url, request)
        logger.debug("Authorization URL %s", url)

        store = StateStore.from_request(request, self.cookie_name)
        store.set(state, result.challenge.verifier)

        signal = redirect(url)
        store.to_set_cookie(signal.response, self.cookie)
        return signal

    def _apply_extra_params(self, url: str, request: Request) -> str:
        parts = urlsplit(url)
        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        params = self.extra_params(dict(params), request)
        return urlunsplit(parts._replace(query=urlencode(params)))

    def consume_state(self, request: Request, response: Response) -> Response:
        """
        Drop the callback's state from the pending-state cookie on `response`.
        Expires the cookie when nothing else is pending. Call after a
        successful authenticate() so the state can't be replayed before Max-Age.
        """
        store = StateStore.from_request(request, self.cookie_name)
        state = request.query_params.get("state")
        if state:
            store.delete(state)
        if store.has():
            return store.to_set_cookie(response, self.cookie)
        response.delete_cookie(
            key=self.cookie.name,
            path=self.cookie.path,
            domain=self.cookie.domain,
            secure=self.cookie.secure,
            httponly=self.cookie.http_only,
            samesite=self.cookie.same_site,
        )
        return response

    async def refresh(self, refresh_token: str, access: str | None = None) -> Tokens | None:
        """Delegates to the token client; None when `access` doesn't need refreshing yet."""
        return await self.client.refresh(refresh_token, access=access)

    async def verify_token(self, token: str, **options) -> VerifyResult:
        """Delegates to OpenAuthClient.verify."""
        return await self.client.verify(token, **options)


def _cookie_options(cookie: str | CookieOptions | None) -> CookieOptions:
    if isinstance(cookie, CookieOptions):
        if not cookie.name:
            return replace(cookie, name=config.COOKIE_NAME or "oauth2")
        return cookie
    return CookieOptions(name=cookie or config.COOKIE_NAME or "oauth2")
