"""The MitmTransport: mock registration DSL and request dispatch.

Example:
    >>> mitm = MitmTransport().stub_default_transport()
    >>>
    >>> # Serve GET http://api.example.com/users once
    >>> mitm.mock_request("GET", "http://api.example.com/users").with_json_response(
    ...     200, None, {"users": []}
    ... )
    >>>
    >>> # Requests using the mock scheme are intercepted
    >>> httpx.get("mitm://api.example.com/users").json()
    {'users': []}
    >>>
    >>> # Fails the test if an expectation was not met
    >>> mitm.unstub_default_transport()
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Any

import httpx
from rich.console import Console
from rich.tree import Tree

from httpmitm.config import MitmSettings
from httpmitm.errors import InvocationError, NotFoundError, RefusedError, ResponseChainError, TimesError
from httpmitm.installation import DefaultTransportInstallation, real_handle_request
from httpmitm.matching import (
    UNLIMITED_TIMES,
    RequestMatcher,
    normalize_key,
    parse_url,
    request_host,
    url_host,
)
from httpmitm.mocker import Mocker
from httpmitm.registry import Registry
from httpmitm.reporting import ExpectationFailure, PytestReporter, Reporter
from httpmitm.responder import (
    Callee,
    HeaderTypes,
    RefusedResponder,
    Responder,
    TimeoutResponder,
    callee_responder,
    json_responder,
    xml_responder,
)

logger = logging.getLogger(__name__)


class ChainState(Enum):
    """State of the registration currently being built."""

    IDLE = "idle"
    PENDING = "pending"
    COMMITTED = "committed"


@dataclass
class Chain:
    """The registration in progress.

    Attributes:
        state: IDLE before any mock_request(), PENDING until a response is
            attached, COMMITTED afterwards
        method: Upper-cased request method
        rawurl: URL as given to mock_request()
        key: Origin key of the registry the mock belongs to
        matcher: Matcher override for a PENDING registration
        times: Expected times for a PENDING registration
    """

    state: ChainState = ChainState.IDLE
    method: str = ""
    rawurl: str = ""
    key: str = ""
    matcher: RequestMatcher | None = None
    times: int = 1


class MitmTransport(httpx.BaseTransport):
    """An httpx transport resolving requests against registered mocks.

    Requests whose scheme is the mock scheme (``mitm`` by default) are
    matched against the registered mocks; every other request goes to the
    real transport unchanged.

    Locking: ``_lock`` guards the origin map, the chain and the flags; each
    Registry and Mocker guards its own state. Locks are always acquired in
    transport -> registry -> mocker order, and dispatch holds at most one
    at a time. The registration DSL is meant to be driven from one thread;
    dispatch is safe from any number of threads.

    Args:
        real_transport: Transport used for pass-through requests
            (defaults to ``httpx.HTTPTransport``)
        settings: Settings, loaded from the environment when omitted
        reporter: Receives unmet expectations at teardown
            (defaults to ``PytestReporter``)
    """

    def __init__(
        self,
        real_transport: httpx.BaseTransport | None = None,
        settings: MitmSettings | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.settings = settings or MitmSettings()
        self._real_transport = real_transport or httpx.HTTPTransport(verify=self.settings.verify_ssl)
        self._installation = DefaultTransportInstallation()
        self._reporter = reporter

        self._lock = Lock()
        self._stubs: dict[str, Registry] = {}
        self._chain = Chain(times=self.settings.default_times)
        self._stubbed = False
        self._paused = False

    @property
    def mock_scheme(self) -> str:
        return self.settings.mock_scheme

    @property
    def is_stubbed(self) -> bool:
        return self._stubbed

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def chain_state(self) -> ChainState:
        return self._chain.state

    def registries(self) -> dict[str, Registry]:
        """Snapshot of origin key -> registry."""
        with self._lock:
            return dict(self._stubs)

    def stub_url(self, rawurl: str) -> str:
        """Rewrite ``rawurl`` to the mock scheme, e.g. for use by a client."""
        url = parse_url(rawurl)
        return url._replace(scheme=self.mock_scheme).geturl()

    # Registration DSL

    def mock_request(self, method: str, rawurl: str) -> MitmTransport:
        """Open a registration for ``method`` and ``rawurl``.

        A previous registration that never got a response is committed as a
        refused connection first, unless it targets the same method and URL.
        """
        url = parse_url(rawurl)
        method = method.upper()
        key = normalize_key(method, self.mock_scheme, url_host(url))

        with self._lock:
            chain = self._chain
            if chain.state is ChainState.PENDING:
                if chain.method == method and chain.rawurl == rawurl:
                    return self
                self._commit_refused(chain)

            self._chain = Chain(
                state=ChainState.PENDING,
                method=method,
                rawurl=rawurl,
                key=key,
                times=self.settings.default_times,
            )

        return self

    def by_matcher(self, matcher: RequestMatcher) -> MitmTransport:
        """Apply a custom matcher to the current registration."""
        with self._lock:
            chain = self._ensure_chained()
            if chain.state is ChainState.COMMITTED:
                self._committed_mocker(chain).set_matcher(matcher)
            else:
                chain.matcher = matcher

        return self

    def times(self, times: int) -> MitmTransport:
        """Expect the current registration to be requested ``times`` times."""
        with self._lock:
            chain = self._ensure_chained()

            if isinstance(times, bool) or not isinstance(times, int):
                raise TimesError(f"invalid value of times: {times!r}", times=times)
            if times < 0 and times != UNLIMITED_TIMES:
                raise TimesError(times=times)

            if chain.state is ChainState.COMMITTED:
                self._committed_mocker(chain).set_expected_times(times)
            else:
                chain.times = times

        return self

    def any_times(self) -> MitmTransport:
        """Allow the current registration to be requested without limit."""
        return self.times(UNLIMITED_TIMES)

    def with_responder(self, responder: httpx.BaseTransport) -> MitmTransport:
        """Attach ``responder`` to the current registration and commit it.

        Registering the same method and URL again overwrites the mock.
        """
        with self._lock:
            chain = self._ensure_chained()
            if chain.state is ChainState.COMMITTED:
                raise ResponseChainError(method=chain.method, url=chain.rawurl)

            registry = self._registry_for(chain.key)
            registry.register(self._new_mocker(chain, responder))
            chain.state = ChainState.COMMITTED

        logger.debug("Mocked %s %s with %r", chain.method, chain.rawurl, responder)
        return self

    def with_response(self, status_code: int, headers: HeaderTypes = None, body: Any = None) -> MitmTransport:
        """Respond with a raw body: str, bytes, form values, file-like or a ReplayStore."""
        return self.with_responder(Responder(status_code, headers, body))

    def with_json_response(self, status_code: int, headers: HeaderTypes = None, body: Any = None) -> MitmTransport:
        """Respond with ``body`` encoded as ``application/json``."""
        return self.with_responder(json_responder(status_code, headers, body))

    def with_xml_response(self, status_code: int, headers: HeaderTypes = None, body: Any = None) -> MitmTransport:
        """Respond with ``body`` encoded as ``text/xml``."""
        return self.with_responder(xml_responder(status_code, headers, body))

    def with_callee_response(self, callee: Callee) -> MitmTransport:
        """Respond with whatever ``callee(request)`` returns, per request."""
        return self.with_responder(callee_responder(callee))

    def with_refused_response(self) -> MitmTransport:
        return self.with_responder(RefusedResponder())

    def with_timeout_response(self) -> MitmTransport:
        return self.with_responder(TimeoutResponder())

    # Dispatch

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        if request.url.scheme.lower() != self.mock_scheme:
            return self._passthrough(request)

        key = normalize_key(request.method, self.mock_scheme, request_host(request))
        with self._lock:
            registry = self._stubs.get(key)
            paused = self._paused

        if registry is None:
            raise RefusedError(
                f"connection refused for {key}. Please make sure the request has been stubbed",
                request=request,
                key=key,
            )

        mocker = registry.find(request.url.path)
        if mocker is None:
            raise NotFoundError(
                f"{request.method} {request.url} not found. "
                "Please make sure the resource has been stubbed",
                request=request,
                key=key,
                path=request.url.path,
            )

        if paused:
            return self._handle_paused(mocker, request)

        return mocker.handle_request(request)

    def cancel_request(self, request: httpx.Request) -> None:
        """Accepted for client compatibility; in-flight mocks are not cancelled."""
        logger.debug("cancel_request is not supported, %s %s continues", request.method, request.url)

    def close(self) -> None:
        self._real_transport.close()

    def _handle_paused(self, mocker: Mocker, request: httpx.Request) -> httpx.Response:
        """Send a request to the real transport, recording replayable responses."""
        mocker.restore_scheme(request)
        response = self._passthrough(request)

        responder = mocker.responder
        if not isinstance(responder, Responder) or responder.store is None:
            return response
        if not response.is_success and response.status_code != responder.status_code:
            return response

        data = response.read()
        headers = httpx.Headers(response.headers)
        headers.pop("Content-Encoding", None)
        headers.pop("Transfer-Encoding", None)
        headers["Content-Length"] = str(len(data))

        try:
            responder.record(request.method, request.url, data)
        except OSError as e:
            logger.warning("Response writes %s %s with: %s", request.method, request.url, e)
        else:
            logger.info("Response write %s %s OK!", request.method, request.url)

        return httpx.Response(
            status_code=response.status_code,
            headers=headers,
            content=data,
            request=request,
            extensions=response.extensions,
        )

    def _passthrough(self, request: httpx.Request) -> httpx.Response:
        if "timeout" not in request.extensions:
            request.extensions["timeout"] = httpx.Timeout(self.settings.passthrough_timeout).as_dict()
        return real_handle_request(self._real_transport, request)

    # Pause / resume

    def pause(self) -> None:
        """Send every mocked request to the real transport until resume()."""
        with self._lock:
            if self._stubbed:
                self._paused = True
                logger.debug("Paused all mocks")

    def resume(self) -> None:
        with self._lock:
            if self._stubbed:
                self._paused = False
                logger.debug("Resumed all mocks")

    # Installation and teardown

    def stub_default_transport(self, reporter: Reporter | None = None) -> MitmTransport:
        """Install this transport as the default httpx transport.

        Raises:
            InstallationError: If another MitmTransport is installed.
        """
        with self._lock:
            if reporter is not None:
                self._reporter = reporter
            if not self._stubbed:
                self._installation.install(self)
                self._stubbed = True

        return self

    def unstub_default_transport(self) -> None:
        """Restore the default transport and report unmet expectations.

        Every mock is checked, all registrations are cleared, and then all
        failures are handed to the reporter in a single call.
        """
        with self._lock:
            if self._stubbed:
                self._installation.restore(self)
                self._stubbed = False

            if self._chain.state is ChainState.PENDING:
                logger.warning(
                    "Registration of %s %s was never given a response", self._chain.method, self._chain.rawurl
                )

            failures = self._collect_failures()
            self._clear()
            self._paused = False
            reporter = self._reporter or PytestReporter()

        if failures:
            for failure in failures:
                logger.error("%s", failure.message)
            reporter.fail(failures)

    @contextmanager
    def stubbed(self, reporter: Reporter | None = None) -> Iterator[MitmTransport]:
        """Context manager pairing stub_default_transport() and unstub_default_transport()."""
        self.stub_default_transport(reporter)
        try:
            yield self
        finally:
            self.unstub_default_transport()

    def expectation_failures(self) -> list[ExpectationFailure]:
        """Unmet expectations as they stand, without tearing down."""
        with self._lock:
            return self._collect_failures()

    def reset(self) -> None:
        """Drop every registration without reporting."""
        with self._lock:
            self._clear()

    # Introspection

    def describe(self) -> Tree:
        """Render registrations and counters as a rich tree."""
        flags = [name for name, on in (("stubbed", self._stubbed), ("paused", self._paused)) if on]
        tree = Tree(f"[bold]MitmTransport[/bold] ({', '.join(flags) or 'idle'})")

        for key, registry in sorted(self.registries().items()):
            branch = tree.add(f"[cyan]{key}[/cyan]")
            for path, mocker in sorted(registry.mocks().items()):
                expected, actual = mocker.times()
                expected_label = "any" if mocker.is_times_unlimited() else str(expected)
                style = "green" if mocker.is_times_satisfied() else "yellow"
                branch.add(
                    f"{path} -> {mocker.responder!r} "
                    f"[{style}]{actual}/{expected_label} times[/{style}]"
                )

        return tree

    def pretty_print(self, console: Console | None = None) -> None:
        (console or Console()).print(self.describe())

    # Internals, called with self._lock held

    def _ensure_chained(self) -> Chain:
        if self._chain.state is ChainState.IDLE:
            raise InvocationError()
        return self._chain

    def _registry_for(self, key: str) -> Registry:
        registry = self._stubs.get(key)
        if registry is None:
            registry = self._stubs[key] = Registry(key)
        return registry

    def _committed_mocker(self, chain: Chain) -> Mocker:
        registry = self._stubs.get(chain.key)
        mocker = registry.get_by_url(chain.rawurl) if registry is not None else None
        if mocker is None:
            raise ResponseChainError(
                f"the response of {chain.method} {chain.rawurl} is no longer registered",
                method=chain.method,
                url=chain.rawurl,
            )
        return mocker

    def _new_mocker(self, chain: Chain, responder: httpx.BaseTransport) -> Mocker:
        return Mocker(
            chain.rawurl,
            responder,
            times=chain.times,
            passthrough=self._passthrough,
            matcher=chain.matcher,
            mock_scheme=self.mock_scheme,
            default_origin_scheme=self.settings.default_origin_scheme,
        )

    def _commit_refused(self, chain: Chain) -> None:
        registry = self._registry_for(chain.key)
        if registry.get_by_url(chain.rawurl) is None:
            registry.register(self._new_mocker(chain, RefusedResponder()))
        logger.warning(
            "Registration of %s %s was never given a response, refusing its connections",
            chain.method,
            chain.rawurl,
        )
        chain.state = ChainState.COMMITTED

    def _collect_failures(self) -> list[ExpectationFailure]:
        failures = []
        for key, registry in sorted(self._stubs.items()):
            for path, mocker in sorted(registry.mocks().items()):
                if mocker.is_times_satisfied():
                    continue
                expected, actual = mocker.times()
                failures.append(ExpectationFailure(self._report_key(key, path, mocker), expected, actual))
        return failures

    def _report_key(self, key: str, path: str, mocker: Mocker) -> str:
        key = key.replace(f"{self.mock_scheme}://", f"{mocker.scheme}://", 1)
        if not path.startswith("/"):
            path = "/" + path
        return key + path

    def _clear(self) -> None:
        for registry in self._stubs.values():
            registry.clear()
        self._stubs = {}
        self._chain = Chain(times=self.settings.default_times)

    def __repr__(self) -> str:
        return (
            f"MitmTransport(scheme={self.mock_scheme!r}, origins={len(self._stubs)}, "
            f"stubbed={self._stubbed}, paused={self._paused})"
        )
