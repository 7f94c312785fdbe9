"""ASGI middleware placing the gate in front of an origin application.

Only the assertion consumer needs the request body, so only that lane is
buffered, up to ``max_request_body_bytes``. Every other body streams to the
origin untouched.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping

from .application import SamlGate
from .classifier import RequestLane
from .exceptions import RequestTooLarge
from .requests import Request, RequestBody
from .responses import INVALID_REQUEST, REQUEST_TOO_LARGE, Response

Scope = Mapping[str, Any]
Message = Mapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]


class GateMiddleware:
    """Run every HTTP request through ``gate`` before it reaches ``origin``."""

    def __init__(self, gate: SamlGate, origin: ASGIApp) -> None:
        self.gate = gate
        self.origin = origin

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.origin(scope, receive, send)
            return
        path = scope.get("path", "/")
        headers = _decode_headers(scope.get("headers", ()))
        body: bytes | None = None
        if self.gate.classifier.classify(path) is RequestLane.ASSERTION_CONSUMER:
            limit = self.gate.config.max_request_body_bytes
            rejection = _check_declared_length(headers, limit)
            if rejection is not None:
                await send_response(rejection, send)
                return
            try:
                body = await _read_body(receive, limit)
            except RequestTooLarge:
                await send_response(REQUEST_TOO_LARGE, send)
                return
        request = Request(
            method=scope.get("method", "GET"),
            path=path,
            headers=headers,
            body=RequestBody.from_bytes(body) if body else None,
            query_string=_decode_query_string(scope.get("query_string")),
            raw=scope,
        )
        outcome = await self.gate.handle(request)
        if isinstance(outcome, Response):
            await send_response(outcome, send)
            return
        if body is None:
            await self.origin(scope, receive, send)
            return
        await self.origin(scope, _replay(body, receive), send)


async def send_response(response: Response, send: Send) -> None:
    await send(
        {
            "type": "http.response.start",
            "status": response.status,
            "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
        }
    )
    await send({"type": "http.response.body", "body": response.body})


def _check_declared_length(headers: Mapping[str, list[str]], limit: int | None) -> Response | None:
    if limit is None:
        return None
    values = headers.get("content-length")
    if not values:
        return None
    try:
        declared = int(values[0])
    except ValueError:
        return INVALID_REQUEST
    if declared < 0:
        return INVALID_REQUEST
    if declared > limit:
        return REQUEST_TOO_LARGE
    return None


async def _read_body(receive: Receive, limit: int | None) -> bytes:
    buffer = bytearray()
    while True:
        message = await receive()
        message_type = message.get("type")
        if message_type == "http.disconnect":
            break
        if message_type != "http.request":
            continue
        chunk = message.get("body", b"")
        if chunk:
            if limit is not None and len(buffer) + len(chunk) > limit:
                raise RequestTooLarge(f"request body exceeds {limit} bytes")
            buffer.extend(chunk)
        if not message.get("more_body", False):
            break
    return bytes(buffer)


def _replay(body: bytes, receive: Receive) -> Receive:
    """Hand the buffered body to the origin once, then defer to ``receive``."""

    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


def _decode_headers(raw_headers: Any) -> dict[str, list[str]]:
    headers: dict[str, list[str]] = {}
    for name, value in raw_headers:
        key = name.decode("latin-1") if isinstance(name, (bytes, bytearray)) else str(name)
        text = value.decode("latin-1") if isinstance(value, (bytes, bytearray)) else str(value)
        headers.setdefault(key.lower(), []).append(text)
    return headers


def _decode_query_string(raw: Any) -> str:
    if not raw:
        return ""
    if isinstance(raw, (bytes, bytearray)):
        return raw.decode("latin-1")
    return str(raw)


__all__ = ["GateMiddleware", "send_response"]
