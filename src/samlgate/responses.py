"""Response primitives and the gate's fixed responses."""

from __future__ import annotations

from typing import Iterable

import msgspec
from msgspec import structs

from .http import NO_CACHE, Status, reason_phrase

Headers = tuple[tuple[str, str], ...]

DEFAULT_SECURITY_HEADERS: Headers = (
    ("x-content-type-options", "nosniff"),
    ("x-frame-options", "DENY"),
)


class Response(msgspec.Struct, frozen=True):
    """Immutable response produced by the gate.

    ``reason`` overrides the standard reason phrase, which edge platforms
    expose as the status description.
    """

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""
    reason: str | None = None

    @property
    def status_text(self) -> str:
        return self.reason or reason_phrase(self.status)

    def header(self, name: str, default: str | None = None) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return default

    def header_values(self, name: str) -> tuple[str, ...]:
        lowered = name.lower()
        return tuple(value for key, value in self.headers if key.lower() == lowered)

    def with_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Return a new response with ``headers`` appended."""

        return structs.replace(self, headers=self.headers + tuple(headers))


def apply_default_security_headers(
    response: Response,
    *,
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Append default security headers to ``response`` when missing."""

    baseline = tuple(headers or DEFAULT_SECURITY_HEADERS)
    if not baseline:
        return response
    existing = {name.lower() for name, _ in response.headers}
    additions = tuple((name, value) for name, value in baseline if name.lower() not in existing)
    if not additions:
        return response
    return response.with_headers(additions)


def PlainTextResponse(
    text: str,
    *,
    status: int = int(Status.OK),
    reason: str | None = None,
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a plain text response."""

    default_headers = (("content-type", "text/plain; charset=utf-8"),)
    combined = default_headers + tuple(headers or ())
    response = Response(status=status, headers=combined, body=text.encode("utf-8"), reason=reason)
    return apply_default_security_headers(response)


def RedirectResponse(
    location: str,
    *,
    status: int = int(Status.FOUND),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create an uncacheable redirect to ``location``."""

    combined = (("location", location),) + tuple(headers or ()) + (("cache-control", NO_CACHE),)
    return apply_default_security_headers(Response(status=status, headers=combined))


def XMLResponse(
    document: str,
    *,
    max_age: int,
    status: int = int(Status.OK),
) -> Response:
    """Create a cacheable XML response."""

    response = Response(
        status=status,
        headers=(
            ("content-type", "application/xml"),
            ("cache-control", f"max-age={max_age}"),
        ),
        body=document.encode("utf-8"),
    )
    return apply_default_security_headers(response)


def _fixed(status: Status, message: str) -> Response:
    return PlainTextResponse(
        message,
        status=int(status),
        reason=message,
        headers=(("cache-control", NO_CACHE),),
    )


ACCESS_FORBIDDEN = _fixed(Status.FORBIDDEN, "Access Forbidden")
INVALID_SAML_PAYLOAD = _fixed(Status.BAD_REQUEST, "Invalid SAML Payload")
INVALID_REQUEST = _fixed(Status.BAD_REQUEST, "Invalid Request")
REQUEST_TOO_LARGE = _fixed(Status.PAYLOAD_TOO_LARGE, "Request Too Large")


__all__ = [
    "ACCESS_FORBIDDEN",
    "DEFAULT_SECURITY_HEADERS",
    "INVALID_REQUEST",
    "INVALID_SAML_PAYLOAD",
    "PlainTextResponse",
    "REQUEST_TOO_LARGE",
    "RedirectResponse",
    "Response",
    "XMLResponse",
    "apply_default_security_headers",
]
