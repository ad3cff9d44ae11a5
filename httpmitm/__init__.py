"""httpmitm - man-in-the-middle mocking for httpx.

httpmitm replaces the transport of an httpx client so that outbound
requests are resolved against registered expectations instead of the
network.

Key Features:
    - Chained registration DSL: mock_request().times().with_response()
    - Deterministic resolution: exact path, then root path, then wildcard
    - Thread-safe call counting with pass-through once a mock is exhausted
    - Pause/resume to observe (and record) real traffic
    - Teardown report of every unmet call-count expectation

Example:
    >>> import httpx
    >>> from httpmitm import MitmTransport
    >>>
    >>> mitm = MitmTransport().stub_default_transport()
    >>> mitm.mock_request("GET", "http://api.example.com/users").times(2).with_json_response(
    ...     200, None, {"users": [{"id": 1}]}
    ... )
    >>>
    >>> response = httpx.get("mitm://api.example.com/users")
    >>> response.json()
    {'users': [{'id': 1}]}
    >>>
    >>> mitm.unstub_default_transport()  # fails: expected 2 times, got 1

Registration:
    MitmTransport: Registration DSL and httpx transport
    Registry: Mocks of one method and origin, keyed by path
    Mocker: A single registered expectation

Responses:
    Responder: Static, callee or replay-backed response source
    MemoryStore, DirectoryStore, Testdata: Record/replay storage

Errors:
    ConfigurationError: Misuse of the registration DSL
    DispatchError: Request could not be served (an httpx.TransportError)
"""

from httpmitm.body import (
    BodyEncoding,
    BodySource,
    BytesBody,
    EmptyBody,
    FormBody,
    ReaderBody,
    StructuredBody,
    TextBody,
    body_source,
)
from httpmitm.config import MitmSettings, load_config
from httpmitm.errors import (
    CalleeError,
    ConfigurationError,
    DispatchError,
    ErrorCode,
    InstallationError,
    InvalidURLError,
    InvocationError,
    MitmError,
    MitmTimeoutError,
    NotFoundError,
    RefusedError,
    ReplayNotFoundError,
    ResponseChainError,
    TimesError,
    UnsupportedBodyError,
)
from httpmitm.installation import DefaultTransportInstallation
from httpmitm.matching import (
    DEFAULT_TIMES,
    MOCK_SCHEME,
    UNLIMITED_TIMES,
    WILDCARD,
    RequestMatcher,
    default_matcher,
    normalize_key,
)
from httpmitm.mocker import Mocker
from httpmitm.registry import Registry
from httpmitm.reporting import (
    ExpectationFailure,
    LoggingReporter,
    PytestReporter,
    RecordingReporter,
    Reporter,
)
from httpmitm.responder import (
    NotFoundResponder,
    RefusedResponder,
    Responder,
    TimeoutResponder,
)
from httpmitm.testdata import DirectoryStore, MemoryStore, ReplayStore, Testdata
from httpmitm.transport import ChainState, MitmTransport

__version__ = "0.1.0"

__all__ = [
    # Transport
    "MitmTransport",
    "ChainState",
    "Registry",
    "Mocker",
    "DefaultTransportInstallation",
    # Matching
    "MOCK_SCHEME",
    "DEFAULT_TIMES",
    "UNLIMITED_TIMES",
    "WILDCARD",
    "RequestMatcher",
    "default_matcher",
    "normalize_key",
    # Responses
    "Responder",
    "RefusedResponder",
    "NotFoundResponder",
    "TimeoutResponder",
    "BodyEncoding",
    "BodySource",
    "EmptyBody",
    "TextBody",
    "BytesBody",
    "FormBody",
    "ReaderBody",
    "StructuredBody",
    "body_source",
    # Record/replay
    "ReplayStore",
    "MemoryStore",
    "DirectoryStore",
    "Testdata",
    # Reporting
    "ExpectationFailure",
    "Reporter",
    "PytestReporter",
    "RecordingReporter",
    "LoggingReporter",
    # Configuration
    "MitmSettings",
    "load_config",
    # Errors
    "ErrorCode",
    "MitmError",
    "ConfigurationError",
    "InvocationError",
    "ResponseChainError",
    "TimesError",
    "InvalidURLError",
    "InstallationError",
    "DispatchError",
    "NotFoundError",
    "ReplayNotFoundError",
    "RefusedError",
    "MitmTimeoutError",
    "UnsupportedBodyError",
    "CalleeError",
]
