"""Record/replay storage for mocked responses.

A replay store maps a key derived from the request (``"GET /users"`` by
default) to raw response bytes. Static responses backed by a store read
their body from it on every request, and a paused transport writes the
bytes of real responses back into it.

Example:
    >>> store = MemoryStore({"GET /": b"Hello, httpmitm!"})
    >>> mitm.mock_request("GET", "http://api.example.com").with_response(200, None, store)
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from threading import Lock
from typing import IO, Any, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


def default_key(method: str, url: httpx.URL) -> str:
    """Return ``"METHOD /path"``, using ``/`` for an empty path."""
    return f"{method.upper()} {url.path or '/'}"


@runtime_checkable
class ReplayStore(Protocol):
    """Protocol for record/replay backends."""

    def key(self, method: str, url: httpx.URL) -> str:
        """Derive the storage key of a request."""
        ...

    def read(self, key: str) -> bytes:
        """Return recorded bytes for ``key``.

        Raises:
            KeyError: If nothing was recorded under ``key``.
        """
        ...

    def write(self, key: str, data: bytes) -> None:
        """Record ``data`` under ``key``."""
        ...


class MemoryStore:
    """Dictionary-backed replay store."""

    def __init__(self, contents: dict[str, bytes] | None = None) -> None:
        self._contents: dict[str, bytes] = dict(contents or {})
        self._lock = Lock()

    def key(self, method: str, url: httpx.URL) -> str:
        return default_key(method, url)

    def read(self, key: str) -> bytes:
        with self._lock:
            return self._contents[key]

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            self._contents[key] = bytes(data)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._contents)

    def __contains__(self, key: object) -> bool:
        return key in self._contents

    def __len__(self) -> int:
        return len(self._contents)


class DirectoryStore:
    """Replay store persisting one file per key under a directory.

    File names are derived from the key (``GET /users/1`` becomes
    ``GET__users_1-<digest>.bin``); an ``index.json`` maps keys back to
    file names so the CLI can list recordings.
    """

    INDEX_FILE = "index.json"

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = Lock()

    def key(self, method: str, url: httpx.URL) -> str:
        return default_key(method, url)

    def path_for(self, key: str) -> Path:
        """Get the file path used for ``key``."""
        slug = re.sub(r"[^A-Za-z0-9._-]+", "_", key).strip("_")[:80]
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:10]
        return self.directory / f"{slug}-{digest}.bin"

    def read(self, key: str) -> bytes:
        path = self.path_for(key)
        if not path.exists():
            raise KeyError(key)
        return path.read_bytes()

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            path = self.path_for(key)
            path.write_bytes(data)

            index = self._load_index()
            index[key] = path.name
            self._save_index(index)
        logger.debug("Recorded %d bytes for %s into %s", len(data), key, path)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._load_index())

    def delete(self, key: str) -> bool:
        """Delete the recording of ``key``; returns whether it existed."""
        with self._lock:
            index = self._load_index()
            if key not in index:
                return False
            (self.directory / index.pop(key)).unlink(missing_ok=True)
            self._save_index(index)
            return True

    def clear(self) -> int:
        """Delete every recording; returns how many were removed."""
        with self._lock:
            index = self._load_index()
            for name in index.values():
                (self.directory / name).unlink(missing_ok=True)
            (self.directory / self.INDEX_FILE).unlink(missing_ok=True)
            return len(index)

    def _load_index(self) -> dict[str, str]:
        index_path = self.directory / self.INDEX_FILE
        if not index_path.exists():
            return {}
        with open(index_path, encoding="utf-8") as f:
            return json.load(f)

    def _save_index(self, index: dict[str, str]) -> None:
        with open(self.directory / self.INDEX_FILE, "w", encoding="utf-8") as f:
            json.dump(index, f, indent=2, sort_keys=True)


class Testdata:
    """A single recorded body, optionally delegating to a ReplayStore.

    Without a store every key reads the same bytes; writes are ignored.
    The wrapped reader is consumed once and replayed afterwards.
    """

    __test__ = False

    def __init__(
        self,
        reader: IO[Any] | bytes | str | None = None,
        store: ReplayStore | None = None,
    ) -> None:
        self._store = store
        self._reader = reader
        self._data: bytes | None = None
        self._lock = Lock()

    def key(self, method: str, url: httpx.URL) -> str:
        if self._store is not None:
            return self._store.key(method, url)
        return default_key(method, url)

    def read(self, key: str) -> bytes:
        if self._store is not None:
            return self._store.read(key)

        with self._lock:
            if self._data is None:
                if self._reader is None:
                    raise KeyError(key)
                data = self._reader
                if hasattr(data, "read"):
                    data = data.read()
                if isinstance(data, str):
                    data = data.encode("utf-8")
                self._data = bytes(data)
            return self._data

    def write(self, key: str, data: bytes) -> None:
        if self._store is not None:
            self._store.write(key, data)
