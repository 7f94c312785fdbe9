"""Request primitives."""

from __future__ import annotations

import base64
import binascii
from typing import Iterable, Literal, Mapping

import msgspec

BodyEncoding = Literal["text", "base64"]

HeaderInput = Mapping[str, str | Iterable[str]]


class RequestBody(msgspec.Struct, frozen=True):
    """Request payload together with its transport encoding tag."""

    data: str
    encoding: BodyEncoding = "text"

    def decode(self) -> str:
        """Return the payload as text, undoing the transport encoding.

        Raises :class:`ValueError` when a ``base64`` payload is not valid
        base64 or not UTF-8.
        """

        if self.encoding == "base64":
            try:
                raw = base64.b64decode(self.data, validate=True)
            except binascii.Error as exc:
                raise ValueError("invalid base64 body") from exc
            return raw.decode("utf-8")
        return self.data

    @classmethod
    def from_bytes(cls, payload: bytes) -> "RequestBody":
        return cls(data=base64.b64encode(payload).decode("ascii"), encoding="base64")


class Request:
    """Immutable view of an incoming request.

    ``headers`` is a multimap: lower-cased header names mapped to every value
    received for that name, in order.
    """

    __slots__ = ("body", "headers", "method", "path", "query_string", "raw")

    def __init__(
        self,
        *,
        method: str,
        path: str,
        headers: HeaderInput | None = None,
        body: RequestBody | None = None,
        query_string: str | None = None,
        raw: object | None = None,
    ) -> None:
        self.method = method.upper()
        self.path = path
        self.headers = _normalize_headers(headers or {})
        self.body = body
        self.query_string = query_string or ""
        self.raw = raw

    def header(self, name: str, default: str | None = None) -> str | None:
        values = self.headers.get(name.lower())
        if not values:
            return default
        return values[0]

    def header_values(self, name: str) -> tuple[str, ...]:
        return self.headers.get(name.lower(), ())

    def __repr__(self) -> str:
        return f"Request(method={self.method!r}, path={self.path!r})"


def _normalize_headers(headers: HeaderInput) -> dict[str, tuple[str, ...]]:
    normalized: dict[str, tuple[str, ...]] = {}
    for name, value in headers.items():
        values = (value,) if isinstance(value, str) else tuple(value)
        key = name.lower()
        normalized[key] = normalized.get(key, ()) + values
    return normalized


__all__ = ["BodyEncoding", "Request", "RequestBody"]
