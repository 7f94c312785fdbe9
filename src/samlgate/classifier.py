"""Request lane classification."""

from __future__ import annotations

from enum import Enum


class RequestLane(str, Enum):
    METADATA = "metadata"
    ASSERTION_CONSUMER = "assertion_consumer"
    PROTECTED = "protected"


class RequestClassifier:
    """Route request paths by exact match against the two protocol endpoints.

    No normalization is applied: ``/saml/acs/`` and ``/SAML/acs`` are protected
    resources, because the endpoint paths are shared verbatim with the IdP.
    """

    __slots__ = ("acs_path", "metadata_path")

    def __init__(self, *, acs_path: str, metadata_path: str) -> None:
        self.acs_path = acs_path
        self.metadata_path = metadata_path

    def classify(self, path: str) -> RequestLane:
        if path == self.metadata_path:
            return RequestLane.METADATA
        if path == self.acs_path:
            return RequestLane.ASSERTION_CONSUMER
        return RequestLane.PROTECTED


__all__ = ["RequestClassifier", "RequestLane"]
