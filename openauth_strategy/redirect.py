"""
Early exit from authenticate() with a ready-made HTTP response.

authenticate() either returns a user or raises. Starting a login has no user
to return, so it raises RedirectSignal carrying the 302 to the issuer; hosts
catch it and send `exc.response` as-is:

    try:
        user = await strategy.authenticate(request)
    except RedirectSignal as exc:
        return exc.response
"""
from collections.abc import Mapping

from fastapi import Response
from fastapi.responses import RedirectResponse


class RedirectSignal(Exception):
    """Not an error: the request must be answered with `response` verbatim."""

    def __init__(self, response: Response):
        super().__init__(f"Redirect to {response.headers.get('location')}")
        self.response = response

    @property
    def location(self) -> str | None:
        return self.response.headers.get("location")

    @property
    def status_code(self) -> int:
        return self.response.status_code


def redirect(url: str, headers: Mapping[str, str] | None = None, status_code: int = 302) -> RedirectSignal:
    """Build a RedirectSignal for `url`. Caller raises it."""
    response = RedirectResponse(url=url, status_code=status_code, headers=dict(headers or {}))
    return RedirectSignal(response)
