"""SAML 2.0 protocol support."""

from .engine import AssertionEngine, AssertionSummary, SamlEngine
from .idp import IdentityProviderDescriptor
from .signature import certificate_body, load_public_key, verify_enveloped_signature

__all__ = [
    "AssertionEngine",
    "AssertionSummary",
    "IdentityProviderDescriptor",
    "SamlEngine",
    "certificate_body",
    "load_public_key",
    "verify_enveloped_signature",
]
