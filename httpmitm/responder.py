"""Response sources.

Responders are ``httpx.BaseTransport`` implementations producing the
response of a mock: a static status/headers/body triple, a callee invoked
per request, or bytes read from a replay store. The always-failing
responders stand in for refused connections, missing resources and
timeouts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Union

import httpx

from httpmitm.body import BodyEncoding, BodySource, body_source
from httpmitm.errors import (
    CalleeError,
    MitmError,
    MitmTimeoutError,
    NotFoundError,
    RefusedError,
    ReplayNotFoundError,
    UnsupportedBodyError,
)
from httpmitm.testdata import ReplayStore

logger = logging.getLogger(__name__)

HeaderTypes = Union[httpx.Headers, Mapping[str, str], None]
CalleeResult = tuple[int, HeaderTypes, Any]
Callee = Callable[[httpx.Request], CalleeResult]

CONTENT_TYPES = {
    BodyEncoding.JSON: "application/json",
    BodyEncoding.XML: "text/xml",
}


def build_response(
    request: httpx.Request,
    status_code: int,
    headers: HeaderTypes,
    content: bytes,
) -> httpx.Response:
    """Create a response, injecting Content-Length when absent.

    A caller-supplied Content-Length is kept as is and the body is not
    truncated or padded to match it.
    """
    response_headers = httpx.Headers(headers)
    if "content-length" not in response_headers:
        response_headers["Content-Length"] = str(len(content))

    return httpx.Response(
        status_code=status_code,
        headers=response_headers,
        content=content,
        request=request,
    )


class Responder(httpx.BaseTransport):
    """A static, callee or replay-backed response source.

    Args:
        status_code: Response status code
        headers: Response headers (copied, never mutated)
        body: Body value, see ``httpmitm.body.body_source``; a ReplayStore
            makes the responder read its body from the store
        encoding: Fallback encoding for structured values; JSON and XML also
            force the matching Content-Type header
        callee: Function producing ``(status_code, headers, body)`` per
            request; supersedes the static values

    Body conversion problems do not raise here: they are remembered and
    raised from ``handle_request`` so the HTTP client sees them as a
    failed request.
    """

    def __init__(
        self,
        status_code: int = 200,
        headers: HeaderTypes = None,
        body: Any = None,
        encoding: BodyEncoding | str = BodyEncoding.RAW,
        callee: Callee | None = None,
    ) -> None:
        self.status_code = status_code
        self.encoding = BodyEncoding(encoding)
        self.callee = callee
        self.headers = httpx.Headers(headers)
        if self.encoding in CONTENT_TYPES:
            self.headers["Content-Type"] = CONTENT_TYPES[self.encoding]

        self.store: ReplayStore | None = None
        self._content: bytes | None = None
        self._error: UnsupportedBodyError | None = None

        if isinstance(body, ReplayStore):
            self.store = body
        elif callee is None:
            try:
                self._content = body_source(body, self.encoding).to_bytes()
            except UnsupportedBodyError as e:
                self._error = e

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if self._error is not None:
            raise UnsupportedBodyError(
                self._error.message, request=request, cause=self._error.cause
            )

        if self.callee is not None:
            return self._call(request, self.callee)

        if self.store is not None:
            return build_response(request, self.status_code, self.headers, self._replay(request, self.store))

        return build_response(request, self.status_code, self.headers, self._content or b"")

    def record(self, method: str, url: httpx.URL, data: bytes) -> bool:
        """Write real response bytes back into the replay store.

        Returns:
            True if the responder is replay-backed and the data was stored
        """
        if self.store is None:
            return False
        self.store.write(self.store.key(method, url), data)
        return True

    def _replay(self, request: httpx.Request, store: ReplayStore) -> bytes:
        key = store.key(request.method, request.url)
        try:
            return store.read(key)
        except KeyError as e:
            raise ReplayNotFoundError(
                f"no recorded response for {key!r}", request=request, cause=e, key=key
            ) from e

    def _call(self, request: httpx.Request, callee: Callee) -> httpx.Response:
        try:
            status_code, headers, body = callee(request)
        except MitmError:
            raise
        except Exception as e:
            raise CalleeError(
                f"callee response failed for {request.method} {request.url}: {e}",
                request=request,
                cause=e,
            ) from e

        headers = httpx.Headers(headers)
        if self.encoding in CONTENT_TYPES:
            headers["Content-Type"] = CONTENT_TYPES[self.encoding]

        try:
            content = body_source(body, self.encoding).to_bytes()
        except UnsupportedBodyError as e:
            raise UnsupportedBodyError(e.message, request=request, cause=e.cause) from e
        return build_response(request, status_code, headers, content)

    def __repr__(self) -> str:
        if self.callee is not None:
            source = f"callee={getattr(self.callee, '__name__', self.callee)!r}"
        elif self.store is not None:
            source = f"store={type(self.store).__name__}"
        else:
            source = f"body={len(self._content or b'')} bytes"
        return f"Responder(status_code={self.status_code}, {source})"


def json_responder(status_code: int, headers: HeaderTypes, body: Any) -> Responder:
    """Responder encoding ``body`` as JSON with ``Content-Type: application/json``."""
    return Responder(status_code, headers, body, encoding=BodyEncoding.JSON)


def xml_responder(status_code: int, headers: HeaderTypes, body: Any) -> Responder:
    """Responder encoding ``body`` as XML with ``Content-Type: text/xml``."""
    return Responder(status_code, headers, body, encoding=BodyEncoding.XML)


def callee_responder(callee: Callee) -> Responder:
    return Responder(callee=callee)


class RefusedResponder(httpx.BaseTransport):
    """Fails every request as a refused connection."""

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        raise RefusedError(request=request, method=request.method, url=str(request.url))

    def __repr__(self) -> str:
        return "RefusedResponder()"


class NotFoundResponder(httpx.BaseTransport):
    """Fails every request as a resource that was never stubbed."""

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        raise NotFoundError(request=request, method=request.method, url=str(request.url))

    def __repr__(self) -> str:
        return "NotFoundResponder()"


class TimeoutResponder(httpx.BaseTransport):
    """Fails every request with a read timeout, without waiting."""

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        raise MitmTimeoutError(request=request, method=request.method, url=str(request.url))

    def __repr__(self) -> str:
        return "TimeoutResponder()"
