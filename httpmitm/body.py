"""Response body sources.

Every accepted body shape has its own ``BodySource`` variant with a single
``to_bytes()`` conversion. ``body_source()`` maps arbitrary values onto a
variant, falling back to a structured (JSON or XML) encoding when one is
requested.

Example:
    >>> body_source("OK").to_bytes()
    b'OK'
    >>> body_source({"n": 1}, encoding="json").to_bytes()
    b'{"n":1}'
    >>> body_source(object())
    Traceback (most recent call last):
    ...
    httpmitm.errors.UnsupportedBodyError: [M104] unsupported type of response data: object
"""

from __future__ import annotations

import dataclasses
import json
import xml.etree.ElementTree as ET
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import IO, Any
from urllib.parse import urlencode

import httpx

from httpmitm.errors import UnsupportedBodyError


class BodyEncoding(Enum):
    """How values without a native byte form are encoded."""

    RAW = "raw"
    JSON = "json"
    XML = "xml"


class BodySource:
    """Base class of all body variants."""

    def to_bytes(self) -> bytes:
        raise NotImplementedError


@dataclass(frozen=True)
class EmptyBody(BodySource):
    def to_bytes(self) -> bytes:
        return b""


@dataclass(frozen=True)
class TextBody(BodySource):
    text: str
    charset: str = "utf-8"

    def to_bytes(self) -> bytes:
        return self.text.encode(self.charset)


@dataclass(frozen=True)
class BytesBody(BodySource):
    data: bytes

    def to_bytes(self) -> bytes:
        return bytes(self.data)


@dataclass(frozen=True)
class FormBody(BodySource):
    """Form-encoded values, e.g. ``a=1&b=2&b=3``."""

    values: Mapping[str, Any] | httpx.QueryParams

    def to_bytes(self) -> bytes:
        if isinstance(self.values, httpx.QueryParams):
            return str(self.values).encode("ascii")
        return urlencode(self.values, doseq=True).encode("ascii")


class ReaderBody(BodySource):
    """A file-like object, read once and replayed afterwards."""

    def __init__(self, reader: IO[Any]) -> None:
        self._reader = reader
        self._data: bytes | None = None
        self._lock = Lock()

    def to_bytes(self) -> bytes:
        with self._lock:
            if self._data is None:
                data = self._reader.read()
                if isinstance(data, str):
                    data = data.encode("utf-8")
                self._data = data
            return self._data

    def __repr__(self) -> str:
        return f"ReaderBody({self._reader!r})"


@dataclass(frozen=True)
class StructuredBody(BodySource):
    """An arbitrary value serialized as JSON or XML."""

    value: Any
    encoding: BodyEncoding = BodyEncoding.JSON

    def to_bytes(self) -> bytes:
        try:
            if self.encoding is BodyEncoding.XML:
                return encode_xml(self.value)
            return encode_json(self.value)
        except (TypeError, ValueError) as e:
            raise UnsupportedBodyError(
                f"cannot encode {type(self.value).__name__} as {self.encoding.value}: {e}",
                cause=e,
            ) from e


def body_source(value: Any, encoding: BodyEncoding | str = BodyEncoding.RAW) -> BodySource:
    """Map a body value onto its BodySource variant.

    Args:
        value: str, bytes-like, httpx.QueryParams, file-like object,
            a BodySource, or (for JSON/XML) any serializable value.
        encoding: Fallback encoding for values without a native byte form.

    Raises:
        UnsupportedBodyError: If ``value`` has no native byte form and the
            encoding is RAW.
    """
    encoding = BodyEncoding(encoding)

    if isinstance(value, BodySource):
        return value
    if value is None:
        return EmptyBody()
    if isinstance(value, str):
        return TextBody(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BytesBody(bytes(value))
    if isinstance(value, httpx.QueryParams):
        return FormBody(value)
    if hasattr(value, "read"):
        return ReaderBody(value)

    if encoding is BodyEncoding.RAW:
        raise UnsupportedBodyError(
            f"unsupported type of response data: {type(value).__name__}"
        )
    return StructuredBody(value, encoding)


def _plain(value: Any) -> Any:
    """Convert dataclasses and pydantic models into plain containers."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return value


def encode_json(value: Any) -> bytes:
    """Encode ``value`` as compact JSON."""
    return json.dumps(_plain(value), separators=(",", ":"), default=_json_default).encode("utf-8")


def _json_default(value: Any) -> Any:
    plain = _plain(value)
    if plain is value:
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
    return plain


def encode_xml(value: Any, root: str | None = None) -> bytes:
    """Encode ``value`` as an XML document.

    A mapping with a single key uses that key as the root element. Other
    values are wrapped in an element named after their type (dataclasses)
    or ``root``/``response``.
    """
    tag = root
    if tag is None and dataclasses.is_dataclass(value) and not isinstance(value, type):
        tag = type(value).__name__

    plain = _plain(value)
    if tag is None and isinstance(plain, Mapping) and len(plain) == 1:
        tag, plain = next(iter(plain.items()))

    element = ET.Element(str(tag or "response"))
    _fill_element(element, plain)
    return ET.tostring(element, encoding="utf-8", xml_declaration=False)


def _fill_element(element: ET.Element, value: Any) -> None:
    value = _plain(value)
    if isinstance(value, Mapping):
        for key, item in value.items():
            child = ET.SubElement(element, str(key))
            _fill_element(child, item)
    elif isinstance(value, (list, tuple, set)):
        for item in value:
            child = ET.SubElement(element, "item")
            _fill_element(child, item)
    elif isinstance(value, bool):
        element.text = "true" if value else "false"
    elif value is None:
        return
    elif isinstance(value, (str, int, float)):
        element.text = str(value)
    else:
        raise TypeError(f"Object of type {type(value).__name__} is not XML serializable")
