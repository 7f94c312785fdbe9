"""Test support utilities: signing material, SAML documents and a fake engine."""

from __future__ import annotations

import asyncio
import base64
import datetime as dt
import hashlib
import secrets
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Callable

import lxml.etree as LET
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.x509.oid import NameOID

from samlgate.config import GateConfig
from samlgate.exceptions import AssertionValidationError
from samlgate.saml.engine import AssertionSummary

NOW = dt.datetime(2026, 3, 1, 12, 0, tzinfo=dt.timezone.utc)

AUDIENCE = "urn:amazon:cognito:sp:app"
IDP_ENTITY_ID = "https://idp.example.com/metadata"
IDP_SSO_URL = "https://idp.example.com/sso"
SESSION_KEY = "0123456789abcdef0123456789abcdef"
SESSION_IV = "fedcba9876543210"

_DS_NS = "http://www.w3.org/2000/09/xmldsig#"
_MD_NS = "urn:oasis:names:tc:SAML:2.0:metadata"
_SAML_NS = "urn:oasis:names:tc:SAML:2.0:assertion"
_SAMLP_NS = "urn:oasis:names:tc:SAML:2.0:protocol"
_EXC_C14N = "http://www.w3.org/2001/10/xml-exc-c14n#"
_ENVELOPED_SIG = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
_DIGEST_SHA256 = "http://www.w3.org/2001/04/xmlenc#sha256"
_RSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
_ECDSA_SHA256 = "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256"
_ED25519 = "http://www.w3.org/2001/04/xmldsig-more#ed25519"
_STATUS_SUCCESS = "urn:oasis:names:tc:SAML:2.0:status:Success"

SigningKey = rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey | ed25519.Ed25519PrivateKey


def fixed_clock(moment: dt.datetime = NOW) -> Callable[[], dt.datetime]:
    return lambda: moment


def saml_instant(value: dt.datetime) -> str:
    return value.astimezone(dt.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------- key material
def _self_signed(private_key: Any, common_name: str, algorithm: hashes.HashAlgorithm | None) -> str:
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    certificate = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - dt.timedelta(days=1))
        .not_valid_after(NOW + dt.timedelta(days=365))
        .sign(private_key, algorithm=algorithm)
    )
    return certificate.public_bytes(serialization.Encoding.PEM).decode()


@lru_cache(maxsize=None)
def rsa_material(label: str = "idp") -> tuple[rsa.RSAPrivateKey, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return private_key, _self_signed(private_key, f"RSA {label}", hashes.SHA256())


@lru_cache(maxsize=None)
def ecdsa_material(label: str = "idp") -> tuple[ec.EllipticCurvePrivateKey, str]:
    private_key = ec.generate_private_key(ec.SECP256R1())
    return private_key, _self_signed(private_key, f"EC {label}", hashes.SHA256())


@lru_cache(maxsize=None)
def ed25519_material(label: str = "idp") -> tuple[ed25519.Ed25519PrivateKey, str]:
    private_key = ed25519.Ed25519PrivateKey.generate()
    return private_key, _self_signed(private_key, f"Ed25519 {label}", None)


def private_key_pem(key: Any) -> str:
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


def certificate_body(pem: str) -> str:
    return "".join(line.strip() for line in pem.splitlines() if "-----" not in line)


# ---------------------------------------------------------------- metadata and config
def idp_metadata(
    certificate: str | None = None,
    *,
    entity_id: str = IDP_ENTITY_ID,
    sso_url: str = IDP_SSO_URL,
    use: str | None = "signing",
) -> str:
    if certificate is None:
        certificate = rsa_material("idp")[1]
    use_attribute = f' use="{use}"' if use else ""
    return (
        f'<md:EntityDescriptor xmlns:md="{_MD_NS}" xmlns:ds="{_DS_NS}" entityID="{entity_id}">'
        f'<md:IDPSSODescriptor protocolSupportEnumeration="{_SAMLP_NS}">'
        f"<md:KeyDescriptor{use_attribute}><ds:KeyInfo><ds:X509Data>"
        f"<ds:X509Certificate>{certificate_body(certificate)}</ds:X509Certificate>"
        "</ds:X509Data></ds:KeyInfo></md:KeyDescriptor>"
        '<md:SingleSignOnService Binding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST" '
        f'Location="{sso_url}/post"/>'
        '<md:SingleSignOnService Binding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-Redirect" '
        f'Location="{sso_url}"/>'
        "</md:IDPSSODescriptor></md:EntityDescriptor>"
    )


def config_mapping(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "audience": AUDIENCE,
        "initVector": SESSION_IV,
        "privateKey": SESSION_KEY,
        "idpMetadata": idp_metadata(),
        "signingCert": rsa_material("sp")[1],
    }
    data.update(overrides)
    return data


def make_config(**overrides: Any) -> GateConfig:
    """Return a valid :class:`GateConfig`; keyword overrides use camelCase keys."""

    return GateConfig.from_mapping(config_mapping(**overrides))


# ---------------------------------------------------------------- signed documents
def build_assertion(
    *,
    audience: str = AUDIENCE,
    issuer: str = IDP_ENTITY_ID,
    subject: str = "alice@example.com",
    not_before: dt.datetime | None = NOW - dt.timedelta(minutes=1),
    not_on_or_after: dt.datetime | None = NOW + dt.timedelta(hours=1),
    assertion_id: str | None = None,
) -> LET._Element:
    assertion_id = assertion_id or f"_{secrets.token_hex(16)}"
    assertion = LET.Element(
        f"{{{_SAML_NS}}}Assertion",
        nsmap={"saml": _SAML_NS},
        attrib={"ID": assertion_id, "Version": "2.0", "IssueInstant": saml_instant(NOW)},
    )
    LET.SubElement(assertion, f"{{{_SAML_NS}}}Issuer").text = issuer
    subject_el = LET.SubElement(assertion, f"{{{_SAML_NS}}}Subject")
    LET.SubElement(subject_el, f"{{{_SAML_NS}}}NameID").text = subject
    conditions = LET.SubElement(assertion, f"{{{_SAML_NS}}}Conditions")
    if not_before is not None:
        conditions.set("NotBefore", saml_instant(not_before))
    if not_on_or_after is not None:
        conditions.set("NotOnOrAfter", saml_instant(not_on_or_after))
    restriction = LET.SubElement(conditions, f"{{{_SAML_NS}}}AudienceRestriction")
    LET.SubElement(restriction, f"{{{_SAML_NS}}}Audience").text = audience
    return assertion


def build_response(
    *assertions: LET._Element,
    status: str = _STATUS_SUCCESS,
    issuer: str | None = IDP_ENTITY_ID,
    response_id: str | None = None,
) -> LET._Element:
    response = LET.Element(
        f"{{{_SAMLP_NS}}}Response",
        nsmap={"samlp": _SAMLP_NS, "saml": _SAML_NS},
        attrib={
            "ID": response_id or f"_{secrets.token_hex(16)}",
            "Version": "2.0",
            "IssueInstant": saml_instant(NOW),
        },
    )
    if issuer is not None:
        LET.SubElement(response, f"{{{_SAML_NS}}}Issuer").text = issuer
    status_el = LET.SubElement(response, f"{{{_SAMLP_NS}}}Status")
    LET.SubElement(status_el, f"{{{_SAMLP_NS}}}StatusCode", Value=status)
    for assertion in assertions:
        response.append(assertion)
    return response


def sign_element(element: LET._Element, key: SigningKey, *, certificate: str | None = None) -> LET._Element:
    """Insert an enveloped signature over ``element`` after its ``Issuer``."""

    digest_bytes = LET.tostring(element, method="c14n", exclusive=True, with_comments=False)
    digest_value = base64.b64encode(hashlib.sha256(digest_bytes).digest()).decode()

    signature = LET.Element(f"{{{_DS_NS}}}Signature", nsmap={"ds": _DS_NS})
    signed_info = LET.SubElement(signature, f"{{{_DS_NS}}}SignedInfo")
    LET.SubElement(signed_info, f"{{{_DS_NS}}}CanonicalizationMethod", Algorithm=_EXC_C14N)
    LET.SubElement(signed_info, f"{{{_DS_NS}}}SignatureMethod", Algorithm=_algorithm_for(key))
    reference = LET.SubElement(signed_info, f"{{{_DS_NS}}}Reference", URI=f"#{element.get('ID')}")
    transforms = LET.SubElement(reference, f"{{{_DS_NS}}}Transforms")
    LET.SubElement(transforms, f"{{{_DS_NS}}}Transform", Algorithm=_ENVELOPED_SIG)
    LET.SubElement(transforms, f"{{{_DS_NS}}}Transform", Algorithm=_EXC_C14N)
    LET.SubElement(reference, f"{{{_DS_NS}}}DigestMethod", Algorithm=_DIGEST_SHA256)
    LET.SubElement(reference, f"{{{_DS_NS}}}DigestValue").text = digest_value

    signed_info_bytes = LET.tostring(signed_info, method="c14n", exclusive=True, with_comments=False)
    LET.SubElement(signature, f"{{{_DS_NS}}}SignatureValue").text = base64.b64encode(
        _sign_payload(key, signed_info_bytes)
    ).decode()
    if certificate:
        key_info = LET.SubElement(signature, f"{{{_DS_NS}}}KeyInfo")
        x509_data = LET.SubElement(key_info, f"{{{_DS_NS}}}X509Data")
        LET.SubElement(x509_data, f"{{{_DS_NS}}}X509Certificate").text = certificate_body(certificate)

    first = element[0] if len(element) else None
    index = 1 if first is not None and first.tag == f"{{{_SAML_NS}}}Issuer" else 0
    element.insert(index, signature)
    return element


def encode_document(element: LET._Element) -> str:
    return base64.b64encode(LET.tostring(element)).decode("ascii")


def signed_response(
    key: SigningKey | None = None,
    *,
    sign: str = "assertion",
    **assertion_options: Any,
) -> str:
    """Return a base64 ``SAMLResponse`` signed on the assertion or the response."""

    if key is None:
        key = rsa_material("idp")[0]
    assertion = build_assertion(**assertion_options)
    if sign == "assertion":
        sign_element(assertion, key)
        return encode_document(build_response(assertion))
    response = build_response(assertion)
    sign_element(response, key)
    return encode_document(response)


def _sign_payload(key: SigningKey, payload: bytes) -> bytes:
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(payload, padding.PKCS1v15(), hashes.SHA256())
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return key.sign(payload, ec.ECDSA(hashes.SHA256()))
    if isinstance(key, ed25519.Ed25519PrivateKey):
        return key.sign(payload)
    raise AssertionError(f"Unsupported signing key type: {type(key)!r}")


def _algorithm_for(key: SigningKey) -> str:
    if isinstance(key, rsa.RSAPrivateKey):
        return _RSA_SHA256
    if isinstance(key, ec.EllipticCurvePrivateKey):
        return _ECDSA_SHA256
    if isinstance(key, ed25519.Ed25519PrivateKey):
        return _ED25519
    raise AssertionError(f"Unsupported signing key type: {type(key)!r}")


# ---------------------------------------------------------------- fake engine
@dataclass
class FakeAssertionEngine:
    """In-memory :class:`~samlgate.saml.engine.AssertionEngine` recording its calls."""

    summary: AssertionSummary | None = None
    error: Exception | None = None
    build_error: Exception | None = None
    login_url: str = IDP_SSO_URL
    descriptor: str = "<md:EntityDescriptor/>"
    delay: float = 0.0
    login_requests: list[tuple[str, str]] = field(default_factory=list)
    descriptor_requests: list[str] = field(default_factory=list)
    validated: list[str] = field(default_factory=list)

    def build_service_descriptor(self, domain: str) -> str:
        self.descriptor_requests.append(domain)
        if self.build_error is not None:
            raise self.build_error
        return self.descriptor

    def build_login_request(self, domain: str, relay_state: str) -> str:
        self.login_requests.append((domain, relay_state))
        if self.build_error is not None:
            raise self.build_error
        return f"{self.login_url}?RelayState={relay_state}"

    async def validate_response(self, raw_document: str) -> AssertionSummary:
        self.validated.append(raw_document)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.summary is None:
            raise AssertionValidationError("invalid_response")
        return self.summary


def summary(
    *,
    audience: str = AUDIENCE,
    not_valid_after: dt.datetime = NOW + dt.timedelta(hours=1),
) -> AssertionSummary:
    return AssertionSummary(audience=audience, not_valid_after=not_valid_after, issuer=IDP_ENTITY_ID)


async def origin_app(scope, receive, send) -> None:
    """Minimal ASGI origin used where an importable target is needed."""

    await send({"type": "http.response.start", "status": 204, "headers": []})
    await send({"type": "http.response.body", "body": b""})
