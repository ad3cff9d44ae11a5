"""Pytest fixtures for httpmitm.

Registered through the ``pytest11`` entry point, so installing httpmitm
makes the ``mitm_transport`` fixture available in every test session.

Example:
    def test_list_users(mitm_transport):
        mitm_transport.mock_request("GET", "http://api.example.com/users").with_json_response(
            200, None, []
        )
        assert httpx.get("mitm://api.example.com/users").json() == []
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from httpmitm.config import load_config
from httpmitm.reporting import PytestReporter
from httpmitm.transport import MitmTransport


@pytest.fixture
def mitm_transport() -> Iterator[MitmTransport]:
    """A stubbed MitmTransport, verified and restored at teardown."""
    transport = MitmTransport(settings=load_config())
    transport.stub_default_transport(PytestReporter())
    try:
        yield transport
    finally:
        transport.unstub_default_transport()
