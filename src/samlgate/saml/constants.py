from __future__ import annotations

METADATA_NS = "urn:oasis:names:tc:SAML:2.0:metadata"
ASSERTION_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
PROTOCOL_NS = "urn:oasis:names:tc:SAML:2.0:protocol"

HTTP_POST_BINDING = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"
HTTP_REDIRECT_BINDING = "urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect"

NAMEID_FORMAT_TRANSIENT = "urn:oasis:names:tc:SAML:2.0:nameid-format:transient"
STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"

RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
