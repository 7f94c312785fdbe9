"""HTTP utilities and status code helpers."""

from __future__ import annotations

from enum import IntEnum
from http import HTTPStatus as _HTTPStatus


class Status(IntEnum):
    """Enumeration of the HTTP status codes emitted by the gate."""

    OK = 200
    FOUND = 302
    TEMPORARY_REDIRECT = 307
    BAD_REQUEST = 400
    FORBIDDEN = 403
    PAYLOAD_TOO_LARGE = 413


NO_CACHE = "no-cache, no-store, must-revalidate"


def ensure_status(status: int | Status) -> int:
    """Normalize ``status`` to an ``int`` and ensure it is within the HTTP range."""

    code = int(status)
    if code < 100 or code > 599:
        raise ValueError(f"Invalid HTTP status code: {status}")
    return code


def reason_phrase(status: int | Status) -> str:
    """Return the HTTP reason phrase for ``status`` if known."""

    try:
        code = ensure_status(status)
    except ValueError:
        return "Unknown Status"
    try:
        return _HTTPStatus(code).phrase
    except ValueError:  # pragma: no cover - non-standard status codes
        return "Unknown Status"


__all__ = ["NO_CACHE", "Status", "ensure_status", "reason_phrase"]
