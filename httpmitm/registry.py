"""Per-origin container of mockers."""

from __future__ import annotations

from threading import Lock
from urllib.parse import unquote

from httpmitm.matching import WILDCARD, RequestMatcher, normalize_path, parse_url
from httpmitm.mocker import Mocker

ROOT_PATH = "/"


class Registry:
    """Mockers registered for one method and origin, keyed by path.

    Registering a path that already holds a mocker overwrites it: the last
    registration wins.
    """

    def __init__(self, origin_key: str) -> None:
        self.origin_key = origin_key
        self._mocks: dict[str, Mocker] = {}
        self._lock = Lock()

    def register(self, mocker: Mocker) -> Mocker:
        with self._lock:
            self._mocks[mocker.path] = mocker
        return mocker

    def remove(self, path: str) -> Mocker | None:
        with self._lock:
            return self._mocks.pop(normalize_path(path), None)

    def get(self, path: str) -> Mocker | None:
        """Exact lookup, without any fallback."""
        with self._lock:
            return self._mocks.get(normalize_path(path))

    def get_by_url(self, rawurl: str) -> Mocker | None:
        return self.get(unquote(parse_url(rawurl).path))

    def find(self, path: str) -> Mocker | None:
        """Resolve the mocker serving ``path``.

        Resolution order is fixed:
            1. the exact path, e.g. ``/users``
            2. the root path ``/``, the origin-level default
            3. the wildcard ``*``
        """
        path = normalize_path(path)
        with self._lock:
            for key in (path, ROOT_PATH, WILDCARD):
                mocker = self._mocks.get(key)
                if mocker is not None:
                    return mocker
            return None

    def set_matcher_by_url(self, rawurl: str, matcher: RequestMatcher) -> bool:
        """Change the matcher of the mocker registered for ``rawurl``'s path."""
        mocker = self.get_by_url(rawurl)
        if mocker is None:
            return False
        mocker.set_matcher(matcher)
        return True

    def set_expected_times_by_url(self, rawurl: str, expected: int) -> bool:
        """Change the expected times of the mocker registered for ``rawurl``'s path."""
        mocker = self.get_by_url(rawurl)
        if mocker is None:
            return False
        mocker.set_expected_times(expected)
        return True

    def mocks(self) -> dict[str, Mocker]:
        """Snapshot of path -> mocker."""
        with self._lock:
            return dict(self._mocks)

    def clear(self) -> None:
        with self._lock:
            self._mocks.clear()

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, str):
            return False
        return self.get(path) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._mocks)

    def __repr__(self) -> str:
        return f"Registry({self.origin_key!r}, paths={sorted(self.mocks())})"
