"""Pytest fixtures for httpmitm tests."""

from __future__ import annotations

from collections.abc import Iterator
from threading import Lock

import httpx
import pytest

from httpmitm import MitmSettings, MitmTransport, RecordingReporter

MOCK_URL = "http://127.0.0.1:8080"
STUB_URL = "mitm://127.0.0.1:8080"


class RealServer:
    """Stands in for the network behind the real transport.

    Responds 200 with ``"<METHOD> OK"``, ``"<METHOD> MOCK OK"`` on /mock,
    and an ``X-Http-Mitm`` header on /httpmitm.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._lock = Lock()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        with self._lock:
            self.requests.append(request)

        headers = {}
        if request.url.path == "/mock":
            body = f"{request.method} MOCK OK"
        elif request.url.path == "/httpmitm":
            headers["X-Http-Mitm"] = "true"
            body = f"{request.method} OK"
        else:
            body = f"{request.method} OK"

        return httpx.Response(200, headers=headers, text=body.upper())

    @property
    def call_count(self) -> int:
        return len(self.requests)


@pytest.fixture
def real_server() -> RealServer:
    return RealServer()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def settings() -> MitmSettings:
    return MitmSettings(_env_file=None)


@pytest.fixture
def mitm(
    real_server: RealServer, reporter: RecordingReporter, settings: MitmSettings
) -> Iterator[MitmTransport]:
    """An unstubbed transport whose real traffic goes to ``real_server``."""
    transport = MitmTransport(
        real_transport=httpx.MockTransport(real_server),
        settings=settings,
        reporter=reporter,
    )
    yield transport
    if transport.is_stubbed:
        transport.unstub_default_transport()


@pytest.fixture
def client(mitm: MitmTransport) -> Iterator[httpx.Client]:
    with httpx.Client(transport=mitm) as http_client:
        yield http_client
