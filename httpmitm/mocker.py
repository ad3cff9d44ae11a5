"""A single registered expectation: method + URL, matcher, response, times."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from threading import Lock
from urllib.parse import unquote

import httpx

from httpmitm.matching import (
    DEFAULT_TIMES,
    MOCK_SCHEME,
    UNLIMITED_TIMES,
    WILDCARD,
    RequestMatcher,
    default_matcher,
    normalize_path,
    parse_url,
    with_scheme,
)

logger = logging.getLogger(__name__)

Passthrough = Callable[[httpx.Request], httpx.Response]


class Route(Enum):
    """Outcome of the counting decision for one request."""

    MOCKED = "mocked"
    EXHAUSTED = "exhausted"
    UNMATCHED = "unmatched"


class Mocker:
    """A request with a stubbed response.

    Counters are only mutated under the mocker's own lock. ``invoked_times``
    never exceeds ``expected_times`` for a limited mocker: once exhausted,
    matched requests are restored to the original scheme and handed to the
    real transport, and only ``passthrough_times`` keeps counting them.

    Example:
        >>> mocker = Mocker("http://api.example.com/users", responder, times=2,
        ...                 passthrough=real_transport.handle_request)
        >>> mocker.handle_request(request)  # served by responder
    """

    def __init__(
        self,
        rawurl: str,
        responder: httpx.BaseTransport,
        times: int = DEFAULT_TIMES,
        passthrough: Passthrough | None = None,
        matcher: RequestMatcher | None = None,
        mock_scheme: str = MOCK_SCHEME,
        default_origin_scheme: str = "http",
    ) -> None:
        url = parse_url(rawurl)

        self.rawurl = rawurl
        self.url = url
        self.path = normalize_path(unquote(url.path))
        self.responder = responder
        self.mock_scheme = mock_scheme
        # a URL registered with the mock scheme has no real scheme to restore
        if url.scheme and url.scheme.lower() != mock_scheme:
            self.origin_scheme = url.scheme.lower()
        else:
            self.origin_scheme = default_origin_scheme

        self._passthrough = passthrough
        self._matcher: RequestMatcher = matcher or default_matcher
        self._expected_times = times
        self._invoked_times = 0
        self._passthrough_times = 0
        self._lock = Lock()

    @property
    def scheme(self) -> str:
        """The original URL scheme restored for real round trips."""
        return self.origin_scheme

    @property
    def is_wildcard(self) -> bool:
        return self.path == WILDCARD

    @property
    def expected_times(self) -> int:
        return self._expected_times

    @property
    def invoked_times(self) -> int:
        return self._invoked_times

    @property
    def passthrough_times(self) -> int:
        """Matched requests that arrived after the mocker was exhausted."""
        return self._passthrough_times

    @property
    def matcher(self) -> RequestMatcher:
        return self._matcher

    def times(self) -> tuple[int, int]:
        """Return ``(expected, actual)`` where actual includes overshoot."""
        with self._lock:
            return self._expected_times, self._invoked_times + self._passthrough_times

    def is_times_unlimited(self) -> bool:
        return self._expected_times == UNLIMITED_TIMES

    def is_exhausted(self) -> bool:
        if self.is_times_unlimited():
            return False
        with self._lock:
            return self._invoked_times >= self._expected_times

    def is_times_satisfied(self) -> bool:
        """Whether the final call count equals the expectation."""
        if self.is_times_unlimited():
            return True
        expected, actual = self.times()
        return actual == expected

    def set_matcher(self, matcher: RequestMatcher) -> None:
        with self._lock:
            self._matcher = matcher

    def set_expected_times(self, expected: int) -> None:
        with self._lock:
            self._expected_times = expected

    def is_request_matched(self, request: httpx.Request) -> bool:
        if self.is_wildcard:
            return True
        with self._lock:
            matcher = self._matcher
        return matcher(request, with_scheme(self.url, self.mock_scheme))

    def restore_scheme(self, request: httpx.Request) -> httpx.Request:
        """Point ``request`` back at its original scheme."""
        request.url = request.url.copy_with(scheme=self.origin_scheme)
        return request

    def route(self, request: httpx.Request) -> Route:
        """Match ``request``, then count it under the lock.

        The matcher runs outside the lock so it may inspect this mocker.
        """
        if not self.is_request_matched(request):
            return Route.UNMATCHED

        with self._lock:
            if self.is_times_unlimited() or self._invoked_times < self._expected_times:
                self._invoked_times += 1
                return Route.MOCKED

            self._passthrough_times += 1
            return Route.EXHAUSTED

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        route = self.route(request)

        if route is Route.MOCKED:
            return self.responder.handle_request(request)

        if route is Route.EXHAUSTED:
            logger.debug(
                "Mock for %s exhausted after %d times, passing %s %s through",
                self.rawurl,
                self._expected_times,
                request.method,
                request.url,
            )
        else:
            logger.debug("Request %s %s does not match %s", request.method, request.url, self.rawurl)

        return self.passthrough(request)

    def passthrough(self, request: httpx.Request) -> httpx.Response:
        """Send ``request`` to the real transport at the original scheme."""
        self.restore_scheme(request)
        if self._passthrough is None:
            raise RuntimeError(f"no real transport configured for {self.rawurl}")
        return self._passthrough(request)

    def __repr__(self) -> str:
        expected = "unlimited" if self.is_times_unlimited() else self._expected_times
        return (
            f"Mocker(rawurl={self.rawurl!r}, responder={self.responder!r}, "
            f"expected_times={expected}, invoked_times={self._invoked_times}, "
            f"passthrough_times={self._passthrough_times})"
        )
