"""Reporting of unmet call-count expectations.

At teardown ``MitmTransport.unstub_default_transport`` collects one
``ExpectationFailure`` per mocker whose final call count differs from its
expectation and hands all of them to a ``Reporter`` in a single call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectationFailure:
    """A mocker that was not invoked the expected number of times.

    Attributes:
        key: Registered key, e.g. ``GET http://api.example.com/users``
        expected: Expected number of calls
        actual: Actual number of calls, including calls passed through
            after the mocker was exhausted
    """

    key: str
    expected: int
    actual: int

    @property
    def message(self) -> str:
        return f"Expected {self.key} with {self.expected} times, but got {self.actual} times"

    def __str__(self) -> str:
        return self.message


def format_failures(failures: list[ExpectationFailure], title: str | None = None) -> str:
    """Format failures as one block, one line per mocker."""
    lines = [title or f"{len(failures)} mocked request(s) did not meet expectations:"]
    lines.extend(f"    Error: {failure.message}" for failure in failures)
    return "\n".join(lines)


@runtime_checkable
class Reporter(Protocol):
    """The test framework's failure hook."""

    def fail(self, failures: list[ExpectationFailure]) -> None:
        """Report every unmet expectation of a transport."""
        ...


class PytestReporter:
    """Fails the current pytest test with all unmet expectations."""

    def __init__(self, title: str | None = None) -> None:
        self.title = title

    def fail(self, failures: list[ExpectationFailure]) -> None:
        import pytest

        pytest.fail(format_failures(failures, self.title), pytrace=False)


class RecordingReporter:
    """Keeps reported failures for later inspection."""

    def __init__(self) -> None:
        self.failures: list[ExpectationFailure] = []
        self.reports = 0

    def fail(self, failures: list[ExpectationFailure]) -> None:
        self.reports += 1
        self.failures.extend(failures)

    @property
    def failed(self) -> bool:
        return bool(self.failures)


class LoggingReporter:
    """Logs unmet expectations without failing anything."""

    def __init__(self, level: int = logging.ERROR) -> None:
        self.level = level

    def fail(self, failures: list[ExpectationFailure]) -> None:
        logger.log(self.level, format_failures(failures))
