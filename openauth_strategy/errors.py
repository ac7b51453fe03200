"""
Errors raised by the strategy and the token client.

Each error carries an OAuth-style ``error`` code and a suggested HTTP
``status_code`` so a host app can map it to a response; the strategy itself
never builds error responses.

    OAuth2StrategyError
    +-- ProviderError            (401, callback carried ?error=...)
    +-- CallbackError            (400)
    |   +-- MissingStateError
    |   +-- MissingStoreError
    |   +-- StateMismatchError
    |   +-- MissingVerifierError
    +-- TokenError               (401)
        +-- TokenExchangeError
        +-- TokenRefreshError
        +-- TokenVerifyError

Exceptions raised by the application's verify function are not wrapped.
"""


class OAuth2StrategyError(Exception):
    """Base class for every failure the strategy reports."""

    status_code: int = 400
    error: str = "invalid_request"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code

    @property
    def description(self) -> str | None:
        return str(self) or None

    def to_dict(self) -> dict:
        """OAuth error body: {"error", "error_description"}."""
        return {"error": self.error, "error_description": self.description}


class ProviderError(OAuth2StrategyError):
    """The identity provider redirected back with ``?error=...``. Terminal; never retried."""

    status_code = 401

    def __init__(
        self,
        code: str,
        description: str | None = None,
        uri: str | None = None,
        state: str | None = None,
    ):
        super().__init__(f"OAuth request error: {code}")
        self.code = code
        self.error = code
        self.error_description = description
        self.uri = uri
        self.state = state
        if code == "access_denied":
            self.status_code = 403

    @property
    def description(self) -> str | None:
        return self.error_description


class CallbackError(OAuth2StrategyError):
    """Callback request does not line up with a pending flow."""

    status_code = 400
    error = "invalid_request"


class MissingStateError(CallbackError):
    def __init__(self, message: str = "Missing state in URL."):
        super().__init__(message)


class MissingStoreError(CallbackError):
    def __init__(self, message: str = "Missing state on cookie."):
        super().__init__(message)


class StateMismatchError(CallbackError):
    def __init__(self, message: str = "State in URL doesn't match state in cookie."):
        super().__init__(message)


class MissingVerifierError(CallbackError):
    def __init__(self, message: str = "Missing code verifier on cookie."):
        super().__init__(message)


class TokenError(OAuth2StrategyError):
    """Token endpoint or token verification failure."""

    status_code = 401
    error = "invalid_grant"

    def __init__(self, message: str, error: str | None = None, status_code: int | None = None):
        super().__init__(message, status_code=status_code)
        if error:
            self.error = error


class TokenExchangeError(TokenError):
    """Authorization code could not be exchanged for tokens."""


class TokenRefreshError(TokenError):
    """Refresh token was rejected or the refresh request failed."""


class TokenVerifyError(TokenError):
    """Access token failed signature, claim, or subject validation."""

    error = "invalid_token"
