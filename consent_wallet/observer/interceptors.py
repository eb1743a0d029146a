"""
Network interception registry.

The page's network layer (an HTTP client hook, a proxy, a test) reports
every completed request to ``InterceptorRegistry.dispatch``; registered
interceptors are awaited in registration order. Exceptions are caught and
logged, so a failing interceptor never breaks the request that triggered it
or the interceptors after it.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from consent_wallet.constants.heuristics import LOGIN_BODY_PATTERN, LOGIN_URL_PATTERN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestInfo:
    """A completed outgoing request as seen by the page."""

    url: str
    method: str = "GET"
    body: Any = None

    @property
    def body_text(self) -> str:
        if self.body is None:
            return ""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8", errors="replace")
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body, default=str)


Interceptor = Callable[[RequestInfo], Awaitable[None]]


def is_login_request(request: RequestInfo) -> bool:
    """URL looks like a login/session endpoint, or the body carries credential-like fields."""
    if LOGIN_URL_PATTERN.search(request.url or ""):
        return True
    return bool(LOGIN_BODY_PATTERN.search(request.body_text))


class InterceptorRegistry:
    def __init__(self) -> None:
        self._interceptors: list[Interceptor] = []

    def register(self, interceptor: Interceptor) -> Callable[[], None]:
        """Add an interceptor. Returns a callable that removes it again."""
        self._interceptors.append(interceptor)

        def unregister() -> None:
            if interceptor in self._interceptors:
                self._interceptors.remove(interceptor)

        return unregister

    def __len__(self) -> int:
        return len(self._interceptors)

    async def dispatch(self, request: RequestInfo) -> None:
        for interceptor in list(self._interceptors):
            try:
                await interceptor(request)
            except Exception as exc:
                logger.warning("Interceptor %r raised for %s: %s", interceptor, request.url, exc)
