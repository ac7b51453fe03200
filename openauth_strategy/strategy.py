"""
Base class for pluggable authentication strategies.

A strategy turns a request into a user. The application supplies a verify
function at construction; the strategy calls it once it has validated
whatever credentials the request carried. Hosts register strategies under
`name` and dispatch to `authenticate`.
"""
import inspect
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

from fastapi import Request

User = TypeVar("User")
VerifyOptions = TypeVar("VerifyOptions")


class Strategy(ABC, Generic[User, VerifyOptions]):
    name: str

    def __init__(self, verify: Callable[[VerifyOptions], User | Awaitable[User]]):
        self._verify = verify

    async def verify(self, options: VerifyOptions) -> User:
        """Call the application's verify function; sync or async."""
        result = self._verify(options)
        if inspect.isawaitable(result):
            result = await result
        return result

    @abstractmethod
    async def authenticate(self, request: Request) -> User:
        """Return the authenticated user or raise."""
