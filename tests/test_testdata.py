"""Tests for replay stores."""

from __future__ import annotations

import io
from pathlib import Path

import httpx
import pytest

from httpmitm.testdata import DirectoryStore, MemoryStore, ReplayStore, Testdata, default_key


class TestDefaultKey:
    """Tests for request keys."""

    def test_method_and_path(self) -> None:
        assert default_key("get", httpx.URL("http://example.com/users?page=1")) == "GET /users"

    def test_empty_path(self) -> None:
        assert default_key("POST", httpx.URL("http://example.com")) == "POST /"


class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_is_a_replay_store(self) -> None:
        assert isinstance(MemoryStore(), ReplayStore)

    def test_read_write(self) -> None:
        store = MemoryStore({"GET /": b"root"})
        store.write("GET /users", b"users")

        assert store.read("GET /") == b"root"
        assert store.read("GET /users") == b"users"
        assert store.keys() == ["GET /", "GET /users"]
        assert "GET /users" in store
        assert len(store) == 2

    def test_missing_key(self) -> None:
        with pytest.raises(KeyError):
            MemoryStore().read("GET /missing")


class TestDirectoryStore:
    """Tests for DirectoryStore."""

    def test_is_a_replay_store(self, tmp_path: Path) -> None:
        assert isinstance(DirectoryStore(tmp_path), ReplayStore)

    def test_write_creates_directory_and_index(self, tmp_path: Path) -> None:
        store = DirectoryStore(tmp_path / "testdata")

        store.write("GET /users/1", b'{"id":1}')

        path = store.path_for("GET /users/1")
        assert path.exists()
        assert path.name.startswith("GET_users_1-")
        assert path.suffix == ".bin"
        assert (tmp_path / "testdata" / "index.json").exists()
        assert store.read("GET /users/1") == b'{"id":1}'
        assert store.keys() == ["GET /users/1"]

    def test_distinct_keys_never_share_a_file(self, tmp_path: Path) -> None:
        store = DirectoryStore(tmp_path)
        assert store.path_for("GET /a_b") != store.path_for("GET /a/b")

    def test_missing_key(self, tmp_path: Path) -> None:
        with pytest.raises(KeyError):
            DirectoryStore(tmp_path).read("GET /missing")

    def test_empty_directory_has_no_keys(self, tmp_path: Path) -> None:
        assert DirectoryStore(tmp_path / "absent").keys() == []

    def test_delete(self, tmp_path: Path) -> None:
        store = DirectoryStore(tmp_path)
        store.write("GET /a", b"a")
        store.write("GET /b", b"b")

        assert store.delete("GET /a") is True
        assert store.delete("GET /a") is False
        assert store.keys() == ["GET /b"]
        assert not store.path_for("GET /a").exists()

    def test_clear(self, tmp_path: Path) -> None:
        store = DirectoryStore(tmp_path)
        store.write("GET /a", b"a")
        store.write("PUT /a", b"a")

        assert store.clear() == 2
        assert store.keys() == []
        assert list(tmp_path.iterdir()) == []


class TestTestdata:
    """Tests for the single-body Testdata store."""

    def test_every_key_reads_the_same_bytes(self) -> None:
        testdata = Testdata(b"Hello, httpmitm!")

        assert testdata.read("GET /") == b"Hello, httpmitm!"
        assert testdata.read("PUT /other") == b"Hello, httpmitm!"

    def test_reader_is_consumed_once(self) -> None:
        testdata = Testdata(io.StringIO("from a file"))

        assert testdata.read("GET /") == b"from a file"
        assert testdata.read("GET /") == b"from a file"

    def test_writes_are_ignored_without_store(self) -> None:
        testdata = Testdata("original")
        testdata.write("GET /", b"recorded")

        assert testdata.read("GET /") == b"original"

    def test_nothing_to_read(self) -> None:
        with pytest.raises(KeyError):
            Testdata().read("GET /")

    def test_delegates_to_store(self) -> None:
        store = MemoryStore()
        testdata = Testdata(store=store)

        testdata.write("GET /users", b"users")

        assert store.read("GET /users") == b"users"
        assert testdata.read("GET /users") == b"users"
        assert testdata.key("get", httpx.URL("http://h/users")) == "GET /users"
