"""SAML 2.0 single sign-on gate for edge deployments."""

from .application import SamlGate
from .classifier import RequestClassifier, RequestLane
from .config import GateConfig, load_config
from .consumer import AssertionConsumer
from .exceptions import (
    AssertionValidationError,
    ConfigurationError,
    RequestTooLarge,
    SamlGateError,
    SessionDecodeError,
)
from .gate import GateController
from .metadata import MetadataPublisher
from .observability import Observability, ObservabilityConfig
from .requests import Request, RequestBody
from .responses import ACCESS_FORBIDDEN, INVALID_REQUEST, INVALID_SAML_PAYLOAD, REQUEST_TOO_LARGE, Response
from .saml import AssertionEngine, AssertionSummary, SamlEngine
from .session import SessionCodec, SessionCredential

__all__ = [
    "ACCESS_FORBIDDEN",
    "AssertionConsumer",
    "AssertionEngine",
    "AssertionSummary",
    "AssertionValidationError",
    "ConfigurationError",
    "GateConfig",
    "GateController",
    "INVALID_REQUEST",
    "INVALID_SAML_PAYLOAD",
    "MetadataPublisher",
    "Observability",
    "ObservabilityConfig",
    "REQUEST_TOO_LARGE",
    "Request",
    "RequestBody",
    "RequestClassifier",
    "RequestTooLarge",
    "RequestLane",
    "Response",
    "SamlEngine",
    "SamlGate",
    "SamlGateError",
    "SessionCodec",
    "SessionCredential",
    "load_config",
]
