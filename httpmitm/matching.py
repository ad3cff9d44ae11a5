"""Request matching primitives.

A registered URL such as ``http://api.example.com/users`` is served to
requests issued against ``mitm://api.example.com/users``: the distinguished
mock scheme marks a request for interception, while the original scheme is
kept so that the request can be restored for a real round trip.
"""

from __future__ import annotations

from collections.abc import Callable
from urllib.parse import SplitResult, unquote, urlsplit, urlunsplit

import httpx

from httpmitm.errors import InvalidURLError

MOCK_SCHEME = "mitm"
DEFAULT_TIMES = 1
UNLIMITED_TIMES = -1
WILDCARD = "*"

RequestMatcher = Callable[[httpx.Request, SplitResult], bool]
"""Decides whether a live request corresponds to a registered URL.

The second argument is the registered URL with the mock scheme substituted.
"""


def default_matcher(request: httpx.Request, url: SplitResult) -> bool:
    """Match a request against a registered URL, case-insensitively.

    First the fully quoted URLs are compared; failing that, only host and
    path are compared, with the trailing slash, query string and fragment
    stripped. The registered path is percent-decoded like ``request.url.path``.
    """
    if str(request.url).lower() == urlunsplit(url).lower():
        return True

    live = request_host(request) + request.url.path.rstrip("/")
    registered = url_host(url) + unquote(url.path).rstrip("/")
    return live.lower() == registered.lower()


def parse_url(rawurl: str) -> SplitResult:
    """Parse a registered URL, raising InvalidURLError when unusable."""
    try:
        url = urlsplit(rawurl)
        # port is validated lazily by urllib
        url.port
    except ValueError as e:
        raise InvalidURLError(f"invalid URL {rawurl!r}: {e}", cause=e, url=rawurl) from e

    if not url.netloc:
        raise InvalidURLError(f"invalid URL {rawurl!r}: missing host", url=rawurl)
    return url


def request_host(request: httpx.Request) -> str:
    """Return ``host[:port]`` of a live request."""
    url = request.url
    if url.port is None:
        return url.host
    return f"{url.host}:{url.port}"


def url_host(url: SplitResult) -> str:
    """Return ``host[:port]`` of a registered URL, without user info."""
    host = url.hostname or ""
    if url.port is None:
        return host
    return f"{host}:{url.port}"


def normalize_path(path: str) -> str:
    """Normalize a URL path into a registry key.

    Empty paths become the root path ``/``, trailing slashes are trimmed and
    ``*`` or ``/*`` become the wildcard marker.
    """
    if path in (WILDCARD, "/" + WILDCARD):
        return WILDCARD
    path = path.rstrip("/")
    return path or "/"


def normalize_key(method: str, scheme: str, host: str) -> str:
    """Build the origin key used to locate a registry.

    Example:
        >>> normalize_key("get", "MITM", "Example.com/")
        'GET mitm://example.com'
    """
    return method.upper() + " " + f"{scheme}://{host}".lower().rstrip("/")


def with_scheme(url: SplitResult, scheme: str) -> SplitResult:
    """Return a copy of ``url`` using ``scheme``."""
    return url._replace(scheme=scheme)
