"""Gate exception types."""

from __future__ import annotations


class SamlGateError(Exception):
    """Base error type."""


class ConfigurationError(SamlGateError):
    """Raised when the gate configuration is missing, malformed or still a placeholder."""


class AssertionValidationError(SamlGateError):
    """Raised by the assertion engine when a SAML response must be rejected.

    The message is a short machine code such as ``invalid_signature``. It is
    logged but never returned to clients.
    """

    @property
    def code(self) -> str:
        return str(self.args[0]) if self.args else "invalid_response"


class SessionDecodeError(SamlGateError):
    """Raised when a session token cannot be decrypted or parsed."""


class RequestTooLarge(SamlGateError):
    """Raised when a buffered request body grows past the configured limit."""


__all__ = [
    "AssertionValidationError",
    "ConfigurationError",
    "RequestTooLarge",
    "SamlGateError",
    "SessionDecodeError",
]
