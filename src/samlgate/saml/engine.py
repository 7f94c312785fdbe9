"""SAML 2.0 service-provider engine.

:class:`AssertionEngine` is the narrow capability the gate consumes.
:class:`SamlEngine` implements it with lxml and cryptography: it publishes the
SP descriptor, builds HTTP-Redirect AuthnRequests and validates POSTed
responses signed by the configured IdP.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import datetime as dt
import logging
import re
import secrets
import zlib
from typing import Callable, Protocol
from urllib.parse import urlencode

import lxml.etree as LET
import msgspec
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.serialization import load_pem_private_key

from ..config import GateConfig
from ..exceptions import AssertionValidationError, ConfigurationError
from .constants import (
    ASSERTION_NS,
    HTTP_POST_BINDING,
    METADATA_NS,
    NAMEID_FORMAT_TRANSIENT,
    PROTOCOL_NS,
    RSA_SHA256,
    STATUS_SUCCESS,
)
from .idp import IdentityProviderDescriptor
from .signature import XMLDSIG_NS, certificate_body, load_public_key, secure_parser, verify_enveloped_signature

logger = logging.getLogger(__name__)

_FRACTION = re.compile(r"\.(\d+)")


class AssertionSummary(msgspec.Struct, frozen=True):
    """Facts extracted from a validated SAML assertion."""

    audience: str
    not_valid_after: dt.datetime
    not_before: dt.datetime | None = None
    subject: str | None = None
    issuer: str | None = None


class AssertionEngine(Protocol):
    def build_service_descriptor(self, domain: str) -> str: ...

    def build_login_request(self, domain: str, relay_state: str) -> str: ...

    async def validate_response(self, raw_document: str) -> AssertionSummary: ...


class SamlEngine:
    """Assertion engine backed by the configured IdP metadata and SP signing material."""

    def __init__(self, config: GateConfig, *, clock: Callable[[], dt.datetime] | None = None) -> None:
        self.config = config
        self.idp = IdentityProviderDescriptor.from_metadata(config.idp_metadata)
        self._clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))
        self._idp_keys: list[object] = []
        for certificate in self.idp.certificates:
            try:
                self._idp_keys.append(load_public_key(certificate))
            except ValueError as exc:
                raise ConfigurationError("identity provider certificate cannot be loaded") from exc
        self._certificate_body = certificate_body(config.signing_cert)
        try:
            load_public_key(config.signing_cert)
        except ValueError as exc:
            raise ConfigurationError("signingCert cannot be loaded") from exc
        self._signing_key: rsa.RSAPrivateKey | None = None
        if config.sign_authn_requests:
            self._signing_key = _load_signing_key(config.signing_private_key or "")

    # ------------------------------------------------------------------ descriptor
    def build_service_descriptor(self, domain: str) -> str:
        md = f"{{{METADATA_NS}}}"
        ds = f"{{{XMLDSIG_NS}}}"
        root = LET.Element(
            f"{md}EntityDescriptor",
            nsmap={"md": METADATA_NS, "ds": XMLDSIG_NS},
            attrib={"entityID": self.config.audience},
        )
        descriptor = LET.SubElement(
            root,
            f"{md}SPSSODescriptor",
            attrib={
                "AuthnRequestsSigned": "true" if self._signing_key is not None else "false",
                "WantAssertionsSigned": "true",
                "protocolSupportEnumeration": PROTOCOL_NS,
            },
        )
        key_descriptor = LET.SubElement(descriptor, f"{md}KeyDescriptor", attrib={"use": "signing"})
        key_info = LET.SubElement(key_descriptor, f"{ds}KeyInfo")
        x509_data = LET.SubElement(key_info, f"{ds}X509Data")
        LET.SubElement(x509_data, f"{ds}X509Certificate").text = self._certificate_body
        LET.SubElement(descriptor, f"{md}NameIDFormat").text = NAMEID_FORMAT_TRANSIENT
        LET.SubElement(
            descriptor,
            f"{md}AssertionConsumerService",
            attrib={
                "isDefault": "true",
                "index": "0",
                "Binding": HTTP_POST_BINDING,
                "Location": self.acs_url(domain),
            },
        )
        return LET.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True).decode("utf-8")

    def acs_url(self, domain: str) -> str:
        return f"https://{domain}{self.config.acs_path}"

    # ------------------------------------------------------------------ login request
    def build_login_request(self, domain: str, relay_state: str) -> str:
        """Return the IdP URL carrying a deflated AuthnRequest (HTTP-Redirect binding)."""

        samlp = f"{{{PROTOCOL_NS}}}"
        request = LET.Element(
            f"{samlp}AuthnRequest",
            nsmap={"samlp": PROTOCOL_NS, "saml": ASSERTION_NS},
            attrib={
                "ID": f"_{secrets.token_hex(20)}",
                "Version": "2.0",
                "IssueInstant": _format_instant(self._clock()),
                "Destination": self.idp.sso_url,
                "ProtocolBinding": HTTP_POST_BINDING,
                "AssertionConsumerServiceURL": self.acs_url(domain),
            },
        )
        LET.SubElement(request, f"{{{ASSERTION_NS}}}Issuer").text = self.config.audience
        LET.SubElement(
            request,
            f"{samlp}NameIDPolicy",
            attrib={"Format": NAMEID_FORMAT_TRANSIENT, "AllowCreate": "true"},
        )
        compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -zlib.MAX_WBITS)
        deflated = compressor.compress(LET.tostring(request)) + compressor.flush()
        params = [("SAMLRequest", base64.b64encode(deflated).decode("ascii")), ("RelayState", relay_state)]
        if self._signing_key is not None:
            params.append(("SigAlg", RSA_SHA256))
            query = urlencode(params)
            signature = self._signing_key.sign(query.encode("ascii"), padding.PKCS1v15(), hashes.SHA256())
            query = f"{query}&{urlencode([('Signature', base64.b64encode(signature).decode('ascii'))])}"
        else:
            query = urlencode(params)
        separator = "&" if "?" in self.idp.sso_url else "?"
        return f"{self.idp.sso_url}{separator}{query}"

    # ------------------------------------------------------------------ response validation
    async def validate_response(self, raw_document: str) -> AssertionSummary:
        return await asyncio.to_thread(self.validate_response_sync, raw_document)

    def validate_response_sync(self, raw_document: str) -> AssertionSummary:
        """Validate a base64 ``SAMLResponse`` and summarize its assertion."""

        try:
            document = base64.b64decode("".join(raw_document.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AssertionValidationError("invalid_encoding") from exc
        try:
            root = LET.fromstring(document, secure_parser())
        except (LET.XMLSyntaxError, ValueError) as exc:
            raise AssertionValidationError("invalid_document") from exc
        if root.getroottree().docinfo.doctype:
            raise AssertionValidationError("invalid_document")
        if root.tag != f"{{{PROTOCOL_NS}}}Response":
            raise AssertionValidationError("unexpected_document")
        status_code = root.find(f"{{{PROTOCOL_NS}}}Status/{{{PROTOCOL_NS}}}StatusCode")
        if status_code is None or status_code.get("Value") != STATUS_SUCCESS:
            raise AssertionValidationError("unsuccessful_status")
        if root.find(f"{{{ASSERTION_NS}}}EncryptedAssertion") is not None:
            raise AssertionValidationError("encrypted_assertion_unsupported")
        assertions = root.findall(f"{{{ASSERTION_NS}}}Assertion")
        if not assertions:
            raise AssertionValidationError("missing_assertion")
        if len(assertions) > 1:
            raise AssertionValidationError("multiple_assertions")
        assertion = assertions[0]
        self._verify_signature(root, assertion)
        return self._summarize(root, assertion)

    def _verify_signature(self, response: LET._Element, assertion: LET._Element) -> None:
        if response.find(f"{{{XMLDSIG_NS}}}Signature") is not None:
            verify_enveloped_signature(response, self._idp_keys)
            return
        verify_enveloped_signature(assertion, self._idp_keys)

    def _summarize(self, response: LET._Element, assertion: LET._Element) -> AssertionSummary:
        saml = f"{{{ASSERTION_NS}}}"
        issuer = _element_text(assertion.find(f"{saml}Issuer")) or _element_text(response.find(f"{saml}Issuer"))
        if issuer is not None and issuer != self.idp.entity_id:
            raise AssertionValidationError("invalid_issuer")
        conditions = assertion.find(f"{saml}Conditions")
        if conditions is None:
            raise AssertionValidationError("missing_conditions")
        now = self._clock()
        skew = dt.timedelta(seconds=max(self.config.clock_skew_seconds, 0))
        not_before = None
        not_before_attr = conditions.get("NotBefore")
        if not_before_attr:
            not_before = _parse_instant(not_before_attr)
            if now + skew < not_before:
                raise AssertionValidationError("assertion_not_yet_valid")
        not_on_or_after_attr = conditions.get("NotOnOrAfter")
        if not not_on_or_after_attr:
            raise AssertionValidationError("missing_not_on_or_after")
        audience = _element_text(conditions.find(f"{saml}AudienceRestriction/{saml}Audience"))
        if audience is None:
            raise AssertionValidationError("missing_audience")
        return AssertionSummary(
            audience=audience,
            not_valid_after=_parse_instant(not_on_or_after_attr),
            not_before=not_before,
            subject=_element_text(assertion.find(f"{saml}Subject/{saml}NameID")),
            issuer=issuer,
        )


def _load_signing_key(material: str) -> rsa.RSAPrivateKey:
    try:
        key = load_pem_private_key(material.encode("utf-8"), password=None)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError("signingPrivateKey cannot be loaded") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConfigurationError("signingPrivateKey must be an RSA key")
    return key


def _element_text(element: LET._Element | None) -> str | None:
    """Return the full string value of ``element``.

    Exclusive C14N drops comments from the digest, so ``.text`` alone would
    stop at an inserted comment and read a truncated value.
    """

    if element is None:
        return None
    stripped = str(element.xpath("string()")).strip()
    return stripped or None


def _format_instant(moment: dt.datetime) -> str:
    return moment.astimezone(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_instant(value: str) -> dt.datetime:
    candidate = value.strip().replace("Z", "+00:00")
    # fromisoformat accepts at most microsecond precision
    candidate = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), candidate, count=1)
    try:
        instant = dt.datetime.fromisoformat(candidate)
    except ValueError as exc:
        raise AssertionValidationError("invalid_timestamp") from exc
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=dt.timezone.utc)
    return instant


__all__ = ["AssertionEngine", "AssertionSummary", "SamlEngine"]
