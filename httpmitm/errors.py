"""Exception hierarchy for httpmitm.

httpmitm separates errors into two families:

- Configuration errors are raised while a test builds its mocks
  (``mock_request(...).times(...).with_response(...)``). They indicate a
  defect in the test itself and are never recoverable.
- Dispatch errors are raised from ``MitmTransport.handle_request`` while an
  HTTP client is sending a request. They subclass the matching
  ``httpx.TransportError`` so the client surfaces them exactly like a real
  network failure (``httpx.ConnectError``, ``httpx.ReadTimeout``...).

Unmet call-count expectations are not exceptions: they are collected as
``httpmitm.reporting.ExpectationFailure`` records at teardown.

Example:
    try:
        client.get("mitm://api.example.com/users")
    except httpx.ConnectError as e:
        # RefusedError: nothing was registered for this origin
        print(e.suggestions)
"""

from __future__ import annotations

from enum import Enum
from typing import Any

import httpx


class ErrorCode(Enum):
    """Standardized error codes for httpmitm.

    - M0xx: configuration (builder chain) errors
    - M1xx: dispatch errors
    """

    INVOCATION = "M001"
    RESPONSE_CHAIN = "M002"
    INVALID_TIMES = "M003"
    INVALID_URL = "M004"
    INSTALLATION = "M005"

    NOT_FOUND = "M101"
    REFUSED = "M102"
    TIMEOUT = "M103"
    UNSUPPORTED_BODY = "M104"
    CALLEE_FAILED = "M105"
    REPLAY_NOT_FOUND = "M106"

    @property
    def category(self) -> str:
        """Get the error category name."""
        if int(self.value[1:]) < 100:
            return "configuration"
        return "dispatch"


class MitmError(Exception):
    """Base exception for all httpmitm errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        suggestions: Actionable steps to resolve the issue
        recoverable: Whether retrying the request can succeed
        cause: The underlying exception (if any)
        context: Extra key/value details (method, url, key...)
    """

    error_code: ErrorCode = ErrorCode.NOT_FOUND
    default_message: str = "httpmitm error"
    default_suggestions: list[str] = []
    default_recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        request: httpx.Request | None = None,
        cause: Exception | None = None,
        suggestions: list[str] | None = None,
        **context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.cause = cause
        self.recoverable = self.default_recoverable
        self.context = context
        self._suggestions = suggestions

        super().__init__(self.message)

        if request is not None and isinstance(self, httpx.RequestError):
            self.request = request

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        return f"[{self.error_code.value}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "category": self.error_code.category,
            "message": self.message,
            "recoverable": self.recoverable,
            "suggestions": self.suggestions,
            "context": dict(self.context),
            "cause": str(self.cause) if self.cause else None,
        }


# Configuration errors


class ConfigurationError(MitmError):
    """The mock configuration DSL was used incorrectly.

    These errors point at a bug in the test code and abort the test
    immediately.
    """

    default_recoverable = False


class InvocationError(ConfigurationError):
    """A chain-continuation method was called outside of a chain."""

    error_code = ErrorCode.INVOCATION
    default_message = (
        "not a chained invocation. Please invoke mock_request(method, url) first"
    )
    default_suggestions = [
        "Start every registration with mock_request(method, url)",
        "Call times(), any_times() and by_matcher() right after mock_request() "
        "or right after a with_*_response() call",
    ]


class ResponseChainError(ConfigurationError):
    """A response was attached to a chain that already has one."""

    error_code = ErrorCode.RESPONSE_CHAIN
    default_message = (
        "not a chained response. Please invoke mock_request(method, url) "
        "before attaching another response"
    )
    default_suggestions = [
        "Attach exactly one with_*_response() per mock_request() call",
        "Call mock_request() again with the same method and URL to overwrite a response",
    ]


class TimesError(ConfigurationError):
    """An invalid expected-times value was supplied."""

    error_code = ErrorCode.INVALID_TIMES
    default_message = "invalid value of times. It must be a non-negative integer"
    default_suggestions = [
        "Use times(n) with n >= 0",
        "Use any_times() for an unlimited expectation",
    ]


class InvalidURLError(ConfigurationError):
    """A URL given to mock_request could not be parsed."""

    error_code = ErrorCode.INVALID_URL
    default_message = "invalid URL"
    default_suggestions = [
        "Pass an absolute URL such as 'http://api.example.com/users'",
    ]


class InstallationError(ConfigurationError):
    """The default transport is already stubbed by another MitmTransport."""

    error_code = ErrorCode.INSTALLATION
    default_message = "the default transport is already stubbed by another MitmTransport"
    default_suggestions = [
        "Call unstub_default_transport() on the previous transport first",
        "Share a single MitmTransport per test",
    ]


# Dispatch errors


class DispatchError(MitmError, httpx.TransportError):
    """A request could not be served by the registered mocks."""


class NotFoundError(DispatchError):
    """No mock is registered for the request path."""

    error_code = ErrorCode.NOT_FOUND
    default_message = "not found. Please make sure the resource has been stubbed"
    default_suggestions = [
        "Register the path with mock_request(method, url)",
        "Register the origin root '/' or '*' to catch every path",
    ]


class ReplayNotFoundError(NotFoundError):
    """The replay store has no recorded response for the request."""

    error_code = ErrorCode.REPLAY_NOT_FOUND
    default_message = "no recorded response found in the replay store"
    default_suggestions = [
        "Record the response first by running the test with the transport paused",
    ]


class RefusedError(DispatchError, httpx.ConnectError):
    """No expectation was registered for the request origin."""

    error_code = ErrorCode.REFUSED
    default_message = "connection refused. Please make sure the request has been stubbed"
    default_suggestions = [
        "Register the request with mock_request(method, url).with_response(...)",
        "Check the request method: registrations are per method and host",
    ]


class MitmTimeoutError(DispatchError, httpx.ReadTimeout):
    """A mock configured to time out was hit."""

    error_code = ErrorCode.TIMEOUT
    default_message = "request timeout"


class UnsupportedBodyError(DispatchError):
    """The configured response body cannot be converted to bytes."""

    error_code = ErrorCode.UNSUPPORTED_BODY
    default_message = "unsupported type of response data"
    default_suggestions = [
        "Use str, bytes, httpx.QueryParams or a file-like object with with_response()",
        "Use with_json_response() or with_xml_response() for structured values",
    ]


class CalleeError(DispatchError):
    """A callee response function raised an exception."""

    error_code = ErrorCode.CALLEE_FAILED
    default_message = "callee response failed"
