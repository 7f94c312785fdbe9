"""CloudFront Lambda@Edge viewer-request adapter.

CloudFront hands the function ``event["Records"][0]["cf"]["request"]``. When
the gate forwards, that same dict is returned unchanged so CloudFront
continues to the origin; otherwise a generated-response dict is returned.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping

from .application import SamlGate
from .requests import Request, RequestBody
from .responses import Response

CloudFrontRequest = dict[str, Any]
CloudFrontResult = dict[str, Any]
Handler = Callable[[Mapping[str, Any], Any], CloudFrontResult]


def request_from_cloudfront(cf_request: CloudFrontRequest) -> Request:
    """Build a :class:`Request` from a CloudFront request record."""

    headers: dict[str, list[str]] = {}
    for name, entries in (cf_request.get("headers") or {}).items():
        values = headers.setdefault(name.lower(), [])
        for entry in entries or ():
            value = entry.get("value")
            if value is not None:
                values.append(value)
    body = None
    raw_body = cf_request.get("body")
    if raw_body and raw_body.get("data") is not None:
        encoding = "base64" if raw_body.get("encoding") == "base64" else "text"
        body = RequestBody(data=raw_body["data"], encoding=encoding)
    return Request(
        method=cf_request.get("method", "GET"),
        path=cf_request.get("uri", "/"),
        headers=headers,
        body=body,
        query_string=cf_request.get("querystring"),
        raw=cf_request,
    )


def header_key(name: str) -> str:
    """Return the display form CloudFront expects, e.g. ``Set-Cookie``."""

    return "-".join(part.capitalize() for part in name.split("-"))


def to_cloudfront_result(outcome: Request | Response) -> CloudFrontResult:
    """Convert a gate outcome into the value the edge function returns."""

    if isinstance(outcome, Request):
        if outcome.raw is None:
            raise ValueError("forwarded request has no CloudFront record attached")
        return outcome.raw  # type: ignore[return-value]
    headers: dict[str, list[dict[str, str]]] = {}
    for name, value in outcome.headers:
        headers.setdefault(name.lower(), []).append({"key": header_key(name), "value": value})
    return {
        "status": str(outcome.status),
        "statusDescription": outcome.status_text,
        "headers": headers,
        "body": outcome.body.decode("utf-8"),
        "bodyEncoding": "text",
    }


def create_handler(gate: SamlGate) -> Handler:
    """Return a synchronous Lambda handler bound to ``gate``."""

    def handler(event: Mapping[str, Any], context: Any = None) -> CloudFrontResult:
        cf_request = event["Records"][0]["cf"]["request"]
        request = request_from_cloudfront(cf_request)
        outcome = asyncio.run(gate.handle(request))
        return to_cloudfront_result(outcome)

    return handler


__all__ = ["create_handler", "header_key", "request_from_cloudfront", "to_cloudfront_result"]
