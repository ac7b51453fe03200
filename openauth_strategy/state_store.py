"""
Cookie-backed store for pending authorization flows (state -> code_verifier).
Written on /login, read back on /callback. Nothing is kept server-side: the
browser's cookie jar is the only storage and Max-Age bounds how long a
pending state stays usable.

Cookie value is the urlencoded pair list, percent-encoded once more:

    oauth2=state%3DS1%26verifier%3DV1%26state%3DS2%26verifier%3DV2

Each /login adds one pair on top of whatever the request already carried.
Two logins started in parallel from the same browser each write a cookie
with the same name; both flows can only complete if the client keeps every
such cookie and sends them all back. from_request() merges all same-named
cookies it finds to support that.

Every write resets Max-Age for the whole cookie, so old pairs only age out
when logins stop. set() keeps the newest MAX_PENDING pairs so the value
stays well under the browser's 4 KB cookie limit (~150 bytes per pair).
"""
import logging
from dataclasses import dataclass
from typing import Iterator
from urllib.parse import parse_qsl, quote, unquote, urlencode

from fastapi import Request, Response

from openauth_strategy.config import COOKIE_MAX_AGE, COOKIE_NAME

logger = logging.getLogger(__name__)

# Oldest pending pairs are dropped beyond this
MAX_PENDING = 10


@dataclass
class PendingAuthorization:
    state: str
    verifier: str


@dataclass
class CookieOptions:
    """Set-Cookie attributes for the pending-state cookie."""

    name: str = COOKIE_NAME
    path: str = "/"
    same_site: str = "Lax"
    http_only: bool = True
    max_age: int = COOKIE_MAX_AGE
    secure: bool = False
    domain: str | None = None


def cookie_values(cookie_header: str, name: str) -> list[str]:
    """All values for cookie `name` in a Cookie header, in order. Duplicates are kept."""
    values = []
    for chunk in cookie_header.split(";"):
        key, sep, value = chunk.strip().partition("=")
        if not sep or key.strip() != name:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        values.append(value)
    return values


class StateStore:
    """Ordered set of pending state -> verifier pairs. Verifier may be empty."""

    def __init__(self, pairs: dict[str, str] | None = None):
        self._pairs: dict[str, str] = dict(pairs or {})

    @classmethod
    def from_cookie(cls, raw: str | None) -> "StateStore":
        """Parse one cookie value. Missing or malformed input gives an empty store; never raises."""
        store = cls()
        store._merge(raw)
        return store

    @classmethod
    def from_request(cls, request: Request, cookie_name: str = COOKIE_NAME) -> "StateStore":
        """Load every `cookie_name` cookie sent with the request into one store."""
        store = cls()
        for header in request.headers.getlist("cookie"):
            for raw in cookie_values(header, cookie_name):
                store._merge(raw)
        return store

    def _merge(self, raw: str | None) -> None:
        if not raw:
            return
        try:
            pairs = parse_qsl(unquote(raw), keep_blank_values=True, strict_parsing=True)
        except ValueError:
            logger.warning("Ignoring malformed pending-state cookie")
            return
        current = None
        for key, value in pairs:
            if key == "state":
                if not value:
                    current = None
                    continue
                current = value
                self._pairs.setdefault(value, "")
            elif key == "verifier" and current is not None:
                self._pairs[current] = value
                current = None

    def set(self, state: str, verifier: str | None = None) -> None:
        """Add (or overwrite) a pending pair as the newest; drops the oldest beyond MAX_PENDING."""
        self._pairs.pop(state, None)
        self._pairs[state] = verifier or ""
        while len(self._pairs) > MAX_PENDING:
            oldest = next(iter(self._pairs))
            logger.debug("Dropping oldest pending state %s", oldest)
            del self._pairs[oldest]

    def has(self, state: str | None = None) -> bool:
        """Without `state`: store is non-empty. With `state`: that state is pending."""
        if state is None:
            return bool(self._pairs)
        return state in self._pairs

    def get(self, state: str) -> str | None:
        """Verifier for `state`; None when unknown, "" when the slot is empty."""
        return self._pairs.get(state)

    def delete(self, state: str) -> None:
        self._pairs.pop(state, None)

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self) -> Iterator[PendingAuthorization]:
        for state, verifier in self._pairs.items():
            yield PendingAuthorization(state=state, verifier=verifier)

    def serialize(self) -> str:
        pairs = []
        for state, verifier in self._pairs.items():
            pairs.append(("state", state))
            pairs.append(("verifier", verifier))
        return quote(urlencode(pairs), safe="")

    def __str__(self) -> str:
        return self.serialize()

    def to_set_cookie(self, response: Response, options: CookieOptions) -> Response:
        """Write this store onto `response` as a Set-Cookie header."""
        response.set_cookie(
            key=options.name,
            value=self.serialize(),
            max_age=options.max_age,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.http_only,
            samesite=options.same_site,
        )
        return response

    def set_cookie_header(self, options: CookieOptions) -> str:
        """Set-Cookie header value for this store."""
        response = self.to_set_cookie(Response(), options)
        return response.headers["set-cookie"]
