"""Per-request access decisions for protected resources."""

from __future__ import annotations

import logging

from .config import GateConfig
from .cookies import get_domain, parse_cookies
from .http import Status
from .requests import Request
from .responses import ACCESS_FORBIDDEN, RedirectResponse, Response
from .saml.engine import AssertionEngine
from .session import SessionCodec

logger = logging.getLogger(__name__)


class GateController:
    """Grant, challenge or reject a protected-resource request.

    ``check`` returns the original :class:`Request` when access is granted and
    a :class:`Response` otherwise.
    """

    def __init__(self, config: GateConfig, *, codec: SessionCodec, engine: AssertionEngine) -> None:
        self.config = config
        self.codec = codec
        self.engine = engine

    def check(self, request: Request) -> Request | Response:
        domain = get_domain(request)
        if domain is None:
            logger.warning("rejecting %s %s: no host header", request.method, request.path)
            return ACCESS_FORBIDDEN
        if self.is_authenticated(request):
            return request
        return self.challenge(request, domain)

    def is_authenticated(self, request: Request) -> bool:
        cookies = parse_cookies(request.header_values("cookie"))
        return self.codec.is_valid(cookies.get(self.config.cookie_name))

    def challenge(self, request: Request, domain: str) -> Response:
        """Redirect to the IdP with ``request.path`` as relay state.

        307 keeps the method and body when the browser retries after login.
        """

        try:
            login_url = self.engine.build_login_request(domain, request.path)
        except Exception:
            logger.exception("failed to build login request for %s", domain)
            return ACCESS_FORBIDDEN
        return RedirectResponse(login_url, status=int(Status.TEMPORARY_REDIRECT))


__all__ = ["GateController"]
