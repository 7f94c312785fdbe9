"""Assertion consumer service: the callback leg of the SSO handshake."""

from __future__ import annotations

import asyncio
import logging
from urllib.parse import parse_qs

from .config import GateConfig
from .cookies import get_domain, session_cookie
from .exceptions import AssertionValidationError
from .http import Status
from .requests import Request
from .responses import INVALID_SAML_PAYLOAD, RedirectResponse, Response
from .saml.engine import AssertionEngine, AssertionSummary
from .session import Clock, SessionCodec, SessionCredential, epoch_millis, utc_now

logger = logging.getLogger(__name__)

DEFAULT_RELAY_STATE = "/"


def safe_relay_state(value: str | None) -> str:
    """Return ``value`` when it is a local absolute path, otherwise ``/``.

    The result is appended to ``https://{domain}``, so anything that could
    change the authority, such as ``//host`` or a backslash, is discarded.
    """

    if not value or not value.startswith("/") or value.startswith("//"):
        return DEFAULT_RELAY_STATE
    if "\\" in value or any(char.isspace() or ord(char) < 32 or ord(char) == 127 for char in value):
        return DEFAULT_RELAY_STATE
    return value


class AssertionConsumer:
    """Validate a POSTed SAML response and mint the session cookie."""

    def __init__(
        self,
        config: GateConfig,
        *,
        codec: SessionCodec,
        engine: AssertionEngine,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.codec = codec
        self.engine = engine
        self._clock = clock or utc_now

    async def consume(self, request: Request) -> Response:
        if request.method != "POST":
            logger.error("assertion consumer expects POST, got %s", request.method)
            return INVALID_SAML_PAYLOAD
        if request.body is None:
            logger.error("assertion consumer request has no body")
            return INVALID_SAML_PAYLOAD
        try:
            payload = request.body.decode()
        except (ValueError, UnicodeDecodeError) as exc:
            logger.error("assertion consumer body could not be decoded: %s", exc)
            return INVALID_SAML_PAYLOAD
        if not payload:
            logger.error("assertion consumer request has an empty body")
            return INVALID_SAML_PAYLOAD
        domain = get_domain(request)
        if domain is None:
            logger.error("assertion consumer request has no host header")
            return INVALID_SAML_PAYLOAD

        fields = parse_qs(payload, keep_blank_values=True)
        saml_response = _first(fields, "SAMLResponse")
        if not saml_response:
            logger.error("assertion consumer payload has no SAMLResponse field")
            return INVALID_SAML_PAYLOAD
        relay_state = safe_relay_state(_first(fields, "RelayState"))

        summary = await self._validate(saml_response)
        if summary is None:
            return INVALID_SAML_PAYLOAD

        expiry = epoch_millis(summary.not_valid_after)
        now = epoch_millis(self._clock())
        audience_valid = summary.audience == self.config.audience
        if not audience_valid or expiry <= now:
            logger.error(
                "rejecting assertion: audience_valid=%s expiry_valid=%s",
                audience_valid,
                expiry > now,
            )
            return INVALID_SAML_PAYLOAD

        credential = SessionCredential(audience=summary.audience, valid_until=expiry, domain=domain)
        token = self.codec.encode(credential)
        logger.info("issued session for %s until %s", domain, summary.not_valid_after.isoformat())
        return RedirectResponse(
            f"https://{domain}{relay_state}",
            status=int(Status.FOUND),
            headers=(
                (
                    "set-cookie",
                    session_cookie(self.config.cookie_name, token, expires=summary.not_valid_after),
                ),
            ),
        )

    async def _validate(self, saml_response: str) -> AssertionSummary | None:
        try:
            return await asyncio.wait_for(
                self.engine.validate_response(saml_response),
                timeout=self.config.validation_timeout_seconds,
            )
        except AssertionValidationError as exc:
            logger.error("SAML response rejected: %s", exc.code)
        except asyncio.TimeoutError:
            logger.error("SAML response validation timed out after %ss", self.config.validation_timeout_seconds)
        except Exception:
            logger.exception("SAML response validation failed")
        return None


def _first(fields: dict[str, list[str]], name: str) -> str | None:
    values = fields.get(name)
    if not values:
        return None
    return values[0]


__all__ = ["AssertionConsumer", "safe_relay_state"]
