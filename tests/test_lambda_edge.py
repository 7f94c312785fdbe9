from __future__ import annotations

import base64
from urllib.parse import urlencode

import pytest

from samlgate import SamlGate
from samlgate.lambda_edge import create_handler, header_key, request_from_cloudfront, to_cloudfront_result
from samlgate.responses import ACCESS_FORBIDDEN, RedirectResponse
from tests.support import fixed_clock, make_config, signed_response


def _cf_request(uri: str = "/", *, method: str = "GET", headers=None, body=None) -> dict:
    request = {
        "clientIp": "203.0.113.10",
        "method": method,
        "uri": uri,
        "querystring": "",
        "headers": headers
        if headers is not None
        else {"host": [{"key": "Host", "value": "app.example.com"}]},
    }
    if body is not None:
        request["body"] = body
    return request


def _event(cf_request: dict) -> dict:
    return {"Records": [{"cf": {"config": {"eventType": "viewer-request"}, "request": cf_request}}]}


def test_request_from_cloudfront_collects_headers_and_body() -> None:
    cf_request = _cf_request(
        "/saml/acs",
        method="POST",
        headers={
            "host": [{"key": "Host", "value": "app.example.com"}],
            "cookie": [{"key": "Cookie", "value": "a=1"}, {"key": "Cookie", "value": "b=2"}],
        },
        body={"inputTruncated": False, "action": "read-only", "encoding": "base64", "data": "YQ=="},
    )
    request = request_from_cloudfront(cf_request)
    assert request.method == "POST"
    assert request.path == "/saml/acs"
    assert request.header_values("cookie") == ("a=1", "b=2")
    assert request.body is not None
    assert request.body.encoding == "base64"
    assert request.body.decode() == "a"
    assert request.raw is cf_request


def test_request_from_cloudfront_without_body() -> None:
    assert request_from_cloudfront(_cf_request()).body is None


def test_header_key_display_form() -> None:
    assert header_key("set-cookie") == "Set-Cookie"
    assert header_key("x-content-type-options") == "X-Content-Type-Options"
    assert header_key("location") == "Location"


def test_response_conversion() -> None:
    response = RedirectResponse(
        "https://app.example.com/",
        headers=(("set-cookie", "a=1"), ("set-cookie", "b=2")),
    )
    result = to_cloudfront_result(response)
    assert result["status"] == "302"
    assert result["statusDescription"] == "Found"
    assert result["headers"]["location"] == [{"key": "Location", "value": "https://app.example.com/"}]
    assert result["headers"]["set-cookie"] == [
        {"key": "Set-Cookie", "value": "a=1"},
        {"key": "Set-Cookie", "value": "b=2"},
    ]
    assert result["bodyEncoding"] == "text"
    assert result["body"] == ""


def test_fixed_response_uses_message_as_status_description() -> None:
    result = to_cloudfront_result(ACCESS_FORBIDDEN)
    assert result["status"] == "403"
    assert result["statusDescription"] == "Access Forbidden"
    assert result["body"] == "Access Forbidden"


def test_forwarded_request_returns_original_record() -> None:
    cf_request = _cf_request()
    assert to_cloudfront_result(request_from_cloudfront(cf_request)) is cf_request


def test_handler_challenges_unauthenticated_viewers() -> None:
    handler = create_handler(SamlGate(make_config(), clock=fixed_clock()))
    result = handler(_event(_cf_request("/private")), None)
    assert result["status"] == "307"
    assert result["headers"]["location"][0]["value"].startswith("https://idp.example.com/sso?SAMLRequest=")


def test_handler_completes_login_and_forwards() -> None:
    gate = SamlGate(make_config(), clock=fixed_clock())
    handler = create_handler(gate)
    form = urlencode({"SAMLResponse": signed_response(), "RelayState": "/private"})
    body = {"encoding": "base64", "data": base64.b64encode(form.encode()).decode()}
    result = handler(_event(_cf_request("/saml/acs", method="POST", body=body)), None)
    assert result["status"] == "302"
    assert result["headers"]["location"][0]["value"] == "https://app.example.com/private"
    cookie = result["headers"]["set-cookie"][0]["value"]
    token = cookie.split(";", 1)[0].partition("=")[2]

    follow_up = _cf_request(
        "/private",
        headers={
            "host": [{"key": "Host", "value": "app.example.com"}],
            "cookie": [{"key": "Cookie", "value": f"sso_auth={token}"}],
        },
    )
    assert handler(_event(follow_up), None) is follow_up


def test_handler_requires_cloudfront_event_shape() -> None:
    handler = create_handler(SamlGate(make_config(), clock=fixed_clock()))
    with pytest.raises(KeyError):
        handler({}, None)
