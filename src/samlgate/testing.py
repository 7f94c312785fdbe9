"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode

from .application import SamlGate
from .requests import Request, RequestBody
from .responses import Response


class GateTestClient:
    """Async client that runs requests through a gate in-process.

    Every helper returns what :meth:`SamlGate.handle` returned: the
    :class:`Request` itself when the gate forwards, otherwise a
    :class:`Response`.
    """

    __test__ = False

    def __init__(self, gate: SamlGate, *, host: str = "app.example.com") -> None:
        self.gate = gate
        self.host = host

    async def request(
        self,
        method: str,
        path: str,
        *,
        host: str | None = None,
        body: RequestBody | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> Request | Response:
        request_headers: dict[str, list[str]] = {}
        resolved_host = self.host if host is None else host
        if resolved_host:
            request_headers["host"] = [resolved_host]
        for name, value in (headers or {}).items():
            request_headers.setdefault(name.lower(), []).append(value)
        if cookies:
            cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
            request_headers.setdefault("cookie", []).append(cookie_header)
        request = Request(
            method=method,
            path=path,
            headers=request_headers,
            body=body,
            query_string=urlencode(query or {}, doseq=True),
        )
        return await self.gate.handle(request)

    async def get(
        self,
        path: str,
        *,
        host: str | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> Request | Response:
        return await self.request("GET", path, host=host, query=query, headers=headers, cookies=cookies)

    async def post_form(
        self,
        path: str,
        form: Mapping[str, str],
        *,
        host: str | None = None,
        headers: Mapping[str, str] | None = None,
        base64_body: bool = False,
    ) -> Request | Response:
        """POST ``form`` URL-encoded, as a browser submits the IdP's auto-post form."""

        payload = urlencode(form)
        if base64_body:
            body = RequestBody.from_bytes(payload.encode("utf-8"))
        else:
            body = RequestBody(data=payload)
        request_headers = {"content-type": "application/x-www-form-urlencoded"}
        request_headers.update(headers or {})
        return await self.request("POST", path, host=host, body=body, headers=request_headers)


__all__ = ["GateTestClient"]
