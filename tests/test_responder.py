"""Tests for responders."""

from __future__ import annotations

import httpx
import pytest

from httpmitm.body import BodyEncoding
from httpmitm.errors import (
    CalleeError,
    MitmTimeoutError,
    NotFoundError,
    RefusedError,
    ReplayNotFoundError,
    UnsupportedBodyError,
)
from httpmitm.responder import (
    NotFoundResponder,
    RefusedResponder,
    Responder,
    TimeoutResponder,
    build_response,
    callee_responder,
    json_responder,
    xml_responder,
)
from httpmitm.testdata import MemoryStore, Testdata


@pytest.fixture
def request_() -> httpx.Request:
    return httpx.Request("GET", "mitm://api.example.com/users")


class TestBuildResponse:
    """Tests for build_response."""

    def test_injects_content_length(self, request_: httpx.Request) -> None:
        response = build_response(request_, 200, None, b"hello")

        assert response.headers["Content-Length"] == "5"
        assert response.request is request_

    def test_keeps_caller_content_length(self, request_: httpx.Request) -> None:
        response = build_response(request_, 200, {"content-length": "42"}, b"hello")

        assert response.headers["Content-Length"] == "42"
        assert response.content == b"hello"


class TestResponder:
    """Tests for the static responder."""

    def test_static_body(self, request_: httpx.Request) -> None:
        responder = Responder(201, {"X-Mock": "1"}, "created")

        response = responder.handle_request(request_)

        assert response.status_code == 201
        assert response.headers["X-Mock"] == "1"
        assert response.text == "created"

    def test_headers_are_copied(self, request_: httpx.Request) -> None:
        headers = {"X-Mock": "1"}
        responder = json_responder(200, headers, {"n": 1})

        responder.handle_request(request_)

        assert headers == {"X-Mock": "1"}

    def test_json_sets_content_type(self, request_: httpx.Request) -> None:
        response = json_responder(200, {"Content-Type": "text/plain"}, [1, 2]).handle_request(request_)

        assert response.headers["Content-Type"] == "application/json"
        assert response.json() == [1, 2]

    def test_xml_sets_content_type(self, request_: httpx.Request) -> None:
        response = xml_responder(200, None, {"ok": True}).handle_request(request_)

        assert response.headers["Content-Type"] == "text/xml"
        assert response.content == b"<ok>true</ok>"

    def test_json_string_body_is_sent_raw(self, request_: httpx.Request) -> None:
        response = json_responder(200, None, '{"already":"encoded"}').handle_request(request_)

        assert response.content == b'{"already":"encoded"}'

    def test_empty_body(self, request_: httpx.Request) -> None:
        response = Responder(204).handle_request(request_)

        assert response.content == b""
        assert response.headers["Content-Length"] == "0"

    def test_unsupported_body_raises_on_request(self, request_: httpx.Request) -> None:
        responder = Responder(200, None, 3.14)

        with pytest.raises(UnsupportedBodyError) as exc_info:
            responder.handle_request(request_)

        assert exc_info.value.request is request_

    def test_encoding_from_string(self) -> None:
        assert Responder(200, None, {"n": 1}, encoding="json").encoding is BodyEncoding.JSON

    def test_repr(self) -> None:
        assert repr(Responder(200, None, "abc")) == "Responder(status_code=200, body=3 bytes)"


class TestCalleeResponder:
    """Tests for callee responders."""

    def test_called_per_request(self, request_: httpx.Request) -> None:
        responder = callee_responder(lambda request: (200, None, request.url.path))

        assert responder.handle_request(request_).text == "/users"

    def test_unsupported_body_from_callee(self, request_: httpx.Request) -> None:
        responder = callee_responder(lambda request: (200, None, {"n": 1}))

        with pytest.raises(UnsupportedBodyError):
            responder.handle_request(request_)

    def test_callee_exception_is_wrapped(self, request_: httpx.Request) -> None:
        def callee(request: httpx.Request):
            raise KeyError("missing")

        with pytest.raises(CalleeError) as exc_info:
            callee_responder(callee).handle_request(request_)

        assert isinstance(exc_info.value.cause, KeyError)
        assert exc_info.value.request is request_

    def test_mitm_errors_propagate_unchanged(self, request_: httpx.Request) -> None:
        def callee(request: httpx.Request):
            raise RefusedError(request=request)

        with pytest.raises(RefusedError):
            callee_responder(callee).handle_request(request_)


class TestReplayResponder:
    """Tests for store-backed responders."""

    def test_reads_from_store(self, request_: httpx.Request) -> None:
        store = MemoryStore({"GET /users": b'{"users":[]}'})
        responder = Responder(200, None, store)

        response = responder.handle_request(request_)

        assert responder.store is store
        assert response.content == b'{"users":[]}'

    def test_missing_recording(self, request_: httpx.Request) -> None:
        with pytest.raises(ReplayNotFoundError) as exc_info:
            Responder(200, None, MemoryStore()).handle_request(request_)

        assert exc_info.value.context["key"] == "GET /users"

    def test_testdata_store(self, request_: httpx.Request) -> None:
        response = Responder(200, None, Testdata(b"Hello, httpmitm!")).handle_request(request_)

        assert response.text == "Hello, httpmitm!"

    def test_record(self) -> None:
        store = MemoryStore()
        responder = Responder(200, None, store)

        assert responder.record("GET", httpx.URL("http://api.example.com/users"), b"real") is True
        assert store.read("GET /users") == b"real"

    def test_record_without_store(self) -> None:
        assert Responder(200, None, "static").record("GET", httpx.URL("http://h/"), b"real") is False


class TestFailingResponders:
    """Tests for refused, not found and timeout responders."""

    def test_refused(self, request_: httpx.Request) -> None:
        with pytest.raises(httpx.ConnectError):
            RefusedResponder().handle_request(request_)

    def test_not_found(self, request_: httpx.Request) -> None:
        with pytest.raises(NotFoundError):
            NotFoundResponder().handle_request(request_)

    def test_timeout(self, request_: httpx.Request) -> None:
        with pytest.raises(MitmTimeoutError) as exc_info:
            TimeoutResponder().handle_request(request_)

        assert exc_info.value.context["url"] == "mitm://api.example.com/users"
