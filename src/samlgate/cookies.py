"""Host and cookie header helpers."""

from __future__ import annotations

import datetime as dt
from email.utils import format_datetime
from typing import Iterable

from .requests import Request


def get_domain(request: Request) -> str | None:
    """Return the first ``host`` header value, if any."""

    host = request.header("host")
    if host is None:
        return None
    host = host.strip()
    return host or None


def parse_cookies(values: Iterable[str]) -> dict[str, str]:
    """Parse ``Cookie`` header values into a name/value mapping.

    Pairs are separated by ``;``. Each pair is split on its first ``=`` only,
    so values may themselves contain ``=``. Later duplicates win.
    """

    cookies: dict[str, str] = {}
    for header in values:
        for piece in header.split(";"):
            if "=" not in piece:
                continue
            name, _, value = piece.partition("=")
            name = name.strip()
            if not name:
                continue
            cookies[name] = value.strip()
    return cookies


def http_date(moment: dt.datetime) -> str:
    """Format ``moment`` as an RFC 7231 date, e.g. ``Wed, 21 Oct 2026 07:28:00 GMT``."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    return format_datetime(moment.astimezone(dt.timezone.utc), usegmt=True)


def session_cookie(name: str, value: str, *, expires: dt.datetime) -> str:
    """Render the ``Set-Cookie`` value carrying a session token."""

    return f"{name}={value}; Expires={http_date(expires)}; Path=/; Secure; HttpOnly; SameSite=Lax"


__all__ = ["get_domain", "http_date", "parse_cookies", "session_cookie"]
