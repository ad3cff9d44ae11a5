"""Installation of a MitmTransport as the process-wide default transport.

httpx clients built without an explicit transport send through
``httpx.HTTPTransport``. Installing swaps ``HTTPTransport.handle_request``
so that every such request is dispatched by the installed transport;
restoring puts the original method back. Only one transport may be
installed at a time.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Any

import httpx

from httpmitm.errors import InstallationError

logger = logging.getLogger(__name__)

# Captured at import so real round trips bypass an active installation.
ORIGINAL_HANDLE_REQUEST = httpx.HTTPTransport.handle_request


def real_handle_request(transport: httpx.BaseTransport, request: httpx.Request) -> httpx.Response:
    """Send ``request`` through ``transport`` without interception."""
    if isinstance(transport, httpx.HTTPTransport):
        return ORIGINAL_HANDLE_REQUEST(transport, request)
    return transport.handle_request(request)


class DefaultTransportInstallation:
    """Single-owner capability swapping the default httpx transport.

    Example:
        >>> installation = DefaultTransportInstallation()
        >>> installation.install(mitm)
        >>> httpx.get("mitm://api.example.com/users")  # served by mitm
        >>> installation.restore(mitm)
    """

    _lock = Lock()
    _owner: httpx.BaseTransport | None = None

    def install(self, transport: httpx.BaseTransport) -> None:
        """Install ``transport``; reinstalling the current owner is a no-op.

        Raises:
            InstallationError: If another transport is installed.
        """
        cls = type(self)
        with cls._lock:
            if cls._owner is transport:
                return
            if cls._owner is not None:
                raise InstallationError(owner=repr(cls._owner))

            def handle_request(http_transport: httpx.HTTPTransport, request: httpx.Request) -> httpx.Response:
                return transport.handle_request(request)

            httpx.HTTPTransport.handle_request = handle_request  # type: ignore[method-assign]
            cls._owner = transport
        logger.debug("Installed %r as the default transport", transport)

    def restore(self, transport: httpx.BaseTransport) -> bool:
        """Restore the original transport if ``transport`` owns the installation."""
        cls = type(self)
        with cls._lock:
            if cls._owner is not transport:
                return False
            httpx.HTTPTransport.handle_request = ORIGINAL_HANDLE_REQUEST  # type: ignore[method-assign]
            cls._owner = None
        logger.debug("Restored the default transport")
        return True

    @classmethod
    def owner(cls) -> httpx.BaseTransport | None:
        return cls._owner

    @classmethod
    def is_installed(cls, transport: Any = None) -> bool:
        if transport is None:
            return cls._owner is not None
        return cls._owner is transport
