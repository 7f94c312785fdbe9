"""Gate configuration objects and loaders.

Configuration is read once at process start, validated, and then passed
explicitly into each component. A JSON file using the camelCase keys produced
by the provisioning tooling is preferred; ``SAML_*`` environment variables are
the fallback.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping

import msgspec

from .exceptions import ConfigurationError
from .observability import ObservabilityConfig
from .serialization import json_decode

PLACEHOLDER_MARKER = "PLACEHOLDER"
SESSION_KEY_BYTES = 32
SESSION_IV_BYTES = 16

CONFIG_PATH_ENV = "SAMLGATE_CONFIG"

_ENVIRONMENT_FIELDS: tuple[tuple[str, str], ...] = (
    ("SAML_AUDIENCE", "audience"),
    ("SAML_INIT_VECTOR", "initVector"),
    ("SAML_PRIVATE_KEY", "privateKey"),
    ("SAML_IDP_METADATA", "idpMetadata"),
    ("SAML_SIGNING_CERT", "signingCert"),
    ("SAML_SIGNING_PRIVATE_KEY", "signingPrivateKey"),
    ("SAML_SIGN_AUTHN_REQUESTS", "signAuthnRequests"),
    ("SAMLGATE_ACS_PATH", "acsPath"),
    ("SAMLGATE_METADATA_PATH", "metadataPath"),
    ("SAMLGATE_COOKIE_NAME", "cookieName"),
)


class GateConfig(msgspec.Struct, frozen=True, rename="camel"):
    """Typed, immutable configuration for a :class:`~samlgate.application.SamlGate`."""

    audience: str
    init_vector: str
    private_key: str
    idp_metadata: str
    signing_cert: str
    signing_private_key: str | None = None
    sign_authn_requests: bool = False
    acs_path: str = "/saml/acs"
    metadata_path: str = "/saml/metadata.xml"
    cookie_name: str = "sso_auth"
    metadata_max_age: int = 86_400
    validation_timeout_seconds: float = 5.0
    clock_skew_seconds: int = 60
    max_request_body_bytes: int | None = 1_048_576
    observability: ObservabilityConfig = ObservabilityConfig()

    @property
    def session_key(self) -> bytes:
        return self.private_key.encode("utf-8")

    @property
    def session_iv(self) -> bytes:
        return self.init_vector.encode("utf-8")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GateConfig":
        """Convert ``data`` (camelCase keys) and validate the result."""

        try:
            config = msgspec.convert(dict(data), type=cls, strict=False)
        except msgspec.ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc
        return config.validate()

    def validate(self) -> "GateConfig":
        """Return ``self`` or raise :class:`ConfigurationError` describing the first problem."""

        required = {
            "audience": self.audience,
            "initVector": self.init_vector,
            "privateKey": self.private_key,
            "idpMetadata": self.idp_metadata,
            "signingCert": self.signing_cert,
            "cookieName": self.cookie_name,
        }
        if self.signing_private_key is not None:
            required["signingPrivateKey"] = self.signing_private_key
        for name, value in required.items():
            if not value or not value.strip():
                raise ConfigurationError(f"{name} is required")
            if PLACEHOLDER_MARKER in value:
                raise ConfigurationError(f"{name} still contains a placeholder value")
        if len(self.session_key) != SESSION_KEY_BYTES:
            raise ConfigurationError(f"privateKey must be exactly {SESSION_KEY_BYTES} bytes")
        if len(self.session_iv) != SESSION_IV_BYTES:
            raise ConfigurationError(f"initVector must be exactly {SESSION_IV_BYTES} bytes")
        for name, path in (("acsPath", self.acs_path), ("metadataPath", self.metadata_path)):
            if not path.startswith("/"):
                raise ConfigurationError(f"{name} must start with '/'")
        if self.acs_path == self.metadata_path:
            raise ConfigurationError("acsPath and metadataPath must differ")
        if self.sign_authn_requests and not self.signing_private_key:
            raise ConfigurationError("signAuthnRequests requires signingPrivateKey")
        if self.metadata_max_age < 0:
            raise ConfigurationError("metadataMaxAge must not be negative")
        if self.validation_timeout_seconds <= 0:
            raise ConfigurationError("validationTimeoutSeconds must be positive")
        if self.max_request_body_bytes is not None and self.max_request_body_bytes <= 0:
            raise ConfigurationError("maxRequestBodyBytes must be positive")
        return self


def load_config(path: str | os.PathLike[str] | None = None, *, environ: Mapping[str, str] | None = None) -> GateConfig:
    """Load configuration from ``path``, ``$SAMLGATE_CONFIG`` or ``SAML_*`` variables."""

    env = os.environ if environ is None else environ
    candidate = path or env.get(CONFIG_PATH_ENV)
    if candidate:
        return _load_file(Path(candidate))
    return GateConfig.from_mapping(_environment_mapping(env))


def _load_file(path: Path) -> GateConfig:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise ConfigurationError(f"cannot read configuration file {path}") from exc
    try:
        data = json_decode(raw)
    except msgspec.DecodeError as exc:
        raise ConfigurationError(f"configuration file {path} is not valid JSON") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"configuration file {path} must contain a JSON object")
    return GateConfig.from_mapping(data)


def _environment_mapping(env: Mapping[str, str]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for variable, field_name in _ENVIRONMENT_FIELDS:
        value = env.get(variable)
        if value is not None and value != "":
            data[field_name] = value
    return data


__all__ = [
    "CONFIG_PATH_ENV",
    "GateConfig",
    "PLACEHOLDER_MARKER",
    "load_config",
]
