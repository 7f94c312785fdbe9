"""Service provider metadata publication."""

from __future__ import annotations

import logging

from .config import GateConfig
from .cookies import get_domain
from .requests import Request
from .responses import INVALID_REQUEST, Response, XMLResponse
from .saml.engine import AssertionEngine

logger = logging.getLogger(__name__)


class MetadataPublisher:
    """Serve the SP ``EntityDescriptor`` for the requesting host. No authentication."""

    def __init__(self, config: GateConfig, *, engine: AssertionEngine) -> None:
        self.config = config
        self.engine = engine

    def publish(self, request: Request) -> Response:
        domain = get_domain(request)
        if domain is None:
            return INVALID_REQUEST
        try:
            document = self.engine.build_service_descriptor(domain)
        except Exception:
            logger.exception("failed to build service provider metadata for %s", domain)
            return INVALID_REQUEST
        return XMLResponse(document, max_age=self.config.metadata_max_age)


__all__ = ["MetadataPublisher"]
