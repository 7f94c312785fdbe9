"""Enveloped XML signature verification for SAML documents."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

import lxml.etree as LET
from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, padding, rsa
from cryptography.hazmat.primitives.serialization import load_der_public_key, load_pem_public_key

from ..exceptions import AssertionValidationError

XMLDSIG_NS = "http://www.w3.org/2000/09/xmldsig#"
_XML_EXC_C14N_NS = "http://www.w3.org/2001/10/xml-exc-c14n#"
_XML_ENVELOPED_SIGNATURE_URI = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"


def secure_parser() -> LET.XMLParser:
    """Return a parser that never resolves entities or touches the network.

    lxml parsers must not be shared across threads, so one is built per use.
    """

    return LET.XMLParser(resolve_entities=False, no_network=True, load_dtd=False, huge_tree=False)


class _SupportsDigest(Protocol):
    def digest(self) -> bytes:
        """Return the digest of the hashed payload."""


_DIGEST_ALGORITHMS: dict[str, Callable[[bytes], _SupportsDigest]] = {
    "http://www.w3.org/2001/04/xmlenc#sha256": hashlib.sha256,
    "http://www.w3.org/2001/04/xmlenc#sha512": hashlib.sha512,
    "http://www.w3.org/2000/09/xmldsig#sha1": hashlib.sha1,
}


@dataclass(frozen=True)
class _CanonicalizationConfig:
    exclusive: bool
    with_comments: bool


_CANONICALIZATION_ALGORITHMS: dict[str, _CanonicalizationConfig] = {
    "http://www.w3.org/2001/10/xml-exc-c14n#": _CanonicalizationConfig(exclusive=True, with_comments=False),
    "http://www.w3.org/2001/10/xml-exc-c14n#WithComments": _CanonicalizationConfig(exclusive=True, with_comments=True),
    "http://www.w3.org/TR/2001/REC-xml-c14n-20010315": _CanonicalizationConfig(exclusive=False, with_comments=False),
    "http://www.w3.org/TR/2001/REC-xml-c14n-20010315#WithComments": _CanonicalizationConfig(
        exclusive=False,
        with_comments=True,
    ),
}


_SIGNATURE_VERIFIERS: dict[str, tuple[type[object], Callable[[Any, bytes, bytes], None]]] = {
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256": (
        rsa.RSAPublicKey,
        lambda key, signature, payload: key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA256()),
    ),
    "http://www.w3.org/2001/04/xmldsig-more#rsa-sha512": (
        rsa.RSAPublicKey,
        lambda key, signature, payload: key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA512()),
    ),
    "http://www.w3.org/2000/09/xmldsig#rsa-sha1": (
        rsa.RSAPublicKey,
        lambda key, signature, payload: key.verify(signature, payload, padding.PKCS1v15(), hashes.SHA1()),
    ),
    "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256": (
        ec.EllipticCurvePublicKey,
        lambda key, signature, payload: key.verify(signature, payload, ec.ECDSA(hashes.SHA256())),
    ),
    "http://www.w3.org/2001/04/xmldsig-more#ed25519": (
        ed25519.Ed25519PublicKey,
        lambda key, signature, payload: key.verify(signature, payload),
    ),
    "http://www.w3.org/2001/04/xmldsig-more#ed448": (
        ed448.Ed448PublicKey,
        lambda key, signature, payload: key.verify(signature, payload),
    ),
}


def verify_enveloped_signature(element: LET._Element, public_keys: Iterable[object]) -> None:
    """Verify the ``ds:Signature`` that is a direct child of ``element``.

    The signature must carry exactly one reference and that reference must
    point at ``element`` itself through its ``ID`` attribute. Raises
    :class:`AssertionValidationError` on any failure.
    """

    signature = element.find(f"{{{XMLDSIG_NS}}}Signature")
    if signature is None:
        raise AssertionValidationError("missing_signature")
    signed_info = signature.find(f"{{{XMLDSIG_NS}}}SignedInfo")
    if signed_info is None:
        raise AssertionValidationError("invalid_signature")
    signature_value_text = signature.findtext(f"{{{XMLDSIG_NS}}}SignatureValue")
    if not signature_value_text or not signature_value_text.strip():
        raise AssertionValidationError("missing_signature")
    try:
        signature_bytes = _decode_signature(signature_value_text)
    except (ValueError, binascii.Error) as exc:
        raise AssertionValidationError("invalid_signature") from exc
    _verify_reference_digest(element, signed_info)
    payload = _canonicalize_signed_info(signed_info)
    algorithm = _resolve_signature_algorithm(signed_info)
    verifier_entry = _SIGNATURE_VERIFIERS.get(algorithm)
    if verifier_entry is None:
        raise AssertionValidationError("unsupported_signature_algorithm")
    expected_type, verifier = verifier_entry
    for public_key in public_keys:
        if not isinstance(public_key, expected_type):
            continue
        try:
            verifier(public_key, signature_bytes, payload)
        except InvalidSignature:
            continue
        return
    raise AssertionValidationError("invalid_signature")


def load_public_key(certificate: str):
    """Load a public key from a PEM or base64 DER certificate or public key."""

    material = certificate.strip()
    if not material:
        raise ValueError("empty certificate")
    errors: list[Exception] = []
    try:
        return x509.load_pem_x509_certificate(material.encode()).public_key()
    except ValueError as exc:
        errors.append(exc)
    try:
        der_cert = base64.b64decode("".join(material.split()), validate=True)
        return x509.load_der_x509_certificate(der_cert).public_key()
    except (ValueError, binascii.Error) as exc:
        errors.append(exc)
    for loader in (load_pem_public_key, load_der_public_key):
        try:
            return loader(material.encode())
        except ValueError as exc:
            errors.append(exc)
    raise ValueError("unsupported_certificate_format") from errors[-1]


def certificate_body(pem: str) -> str:
    """Return the base64 body of a PEM certificate without armour or whitespace."""

    lines = [line.strip() for line in pem.strip().splitlines() if "-----" not in line]
    return "".join(lines)


def _decode_signature(value: str) -> bytes:
    normalized = "".join(value.split())
    return base64.b64decode(normalized, validate=True)


def _verify_reference_digest(element: LET._Element, signed_info: LET._Element) -> None:
    references = signed_info.findall(f"{{{XMLDSIG_NS}}}Reference")
    if len(references) != 1:
        raise AssertionValidationError("invalid_signature_reference")
    reference = references[0]
    element_id = element.get("ID")
    if not element_id or reference.get("URI") != f"#{element_id}":
        raise AssertionValidationError("invalid_signature_reference")
    transformed = _apply_reference_transforms(element, reference)
    digest_method = reference.find(f"{{{XMLDSIG_NS}}}DigestMethod")
    digest_value = reference.findtext(f"{{{XMLDSIG_NS}}}DigestValue")
    if digest_method is None or not digest_value:
        raise AssertionValidationError("invalid_signature")
    factory = _DIGEST_ALGORITHMS.get(digest_method.get("Algorithm") or "")
    if factory is None:
        raise AssertionValidationError("unsupported_digest_algorithm")
    expected = base64.b64encode(factory(transformed).digest()).decode()
    if not hmac.compare_digest(expected, "".join(digest_value.split())):
        raise AssertionValidationError("digest_mismatch")


def _apply_reference_transforms(target: LET._Element, reference: LET._Element) -> bytes:
    data: bytes | LET._Element = _clone_element(target)
    transforms_parent = reference.find(f"{{{XMLDSIG_NS}}}Transforms")
    if transforms_parent is not None:
        for transform in transforms_parent.findall(f"{{{XMLDSIG_NS}}}Transform"):
            algorithm = transform.get("Algorithm") or ""
            if algorithm == _XML_ENVELOPED_SIGNATURE_URI:
                if isinstance(data, bytes):
                    data = LET.fromstring(data, secure_parser())
                _strip_enveloped_signature(data)
            elif algorithm in _CANONICALIZATION_ALGORITHMS:
                element = LET.fromstring(data, secure_parser()) if isinstance(data, bytes) else data
                data = _canonicalize_element(element, algorithm, _inclusive_namespace_prefixes(transform))
            else:
                raise AssertionValidationError("unsupported_transform")
    if isinstance(data, LET._Element):
        data = LET.tostring(data, method="c14n", exclusive=False, with_comments=False)
    return data


def _canonicalize_signed_info(signed_info: LET._Element) -> bytes:
    method = signed_info.find(f"{{{XMLDSIG_NS}}}CanonicalizationMethod")
    if method is None:
        raise AssertionValidationError("invalid_signature")
    algorithm = method.get("Algorithm")
    if not algorithm:
        raise AssertionValidationError("invalid_signature")
    return _canonicalize_element(signed_info, algorithm, _inclusive_namespace_prefixes(method))


def _canonicalize_element(element: LET._Element, algorithm: str, prefixes: tuple[str, ...] = ()) -> bytes:
    config = _CANONICALIZATION_ALGORITHMS.get(algorithm)
    if config is None:
        raise AssertionValidationError("unsupported_canonicalization")
    return LET.tostring(
        element,
        method="c14n",
        exclusive=config.exclusive,
        with_comments=config.with_comments,
        inclusive_ns_prefixes=list(prefixes) if prefixes else None,
    )


def _resolve_signature_algorithm(signed_info: LET._Element) -> str:
    signature_method = signed_info.find(f"{{{XMLDSIG_NS}}}SignatureMethod")
    if signature_method is None:
        raise AssertionValidationError("invalid_signature")
    algorithm = signature_method.get("Algorithm")
    if not algorithm:
        raise AssertionValidationError("invalid_signature")
    return algorithm


def _inclusive_namespace_prefixes(element: LET._Element) -> tuple[str, ...]:
    node = element.find(f"{{{_XML_EXC_C14N_NS}}}InclusiveNamespaces")
    if node is None:
        return ()
    return tuple((node.get("PrefixList") or "").split())


def _clone_element(element: LET._Element) -> LET._Element:
    return LET.fromstring(LET.tostring(element, with_tail=False), secure_parser())


def _strip_enveloped_signature(element: LET._Element) -> None:
    for signature in element.findall(f"{{{XMLDSIG_NS}}}Signature"):
        # lxml drops the tail with the node; the transform only removes the element.
        if signature.tail:
            previous = signature.getprevious()
            if previous is not None:
                previous.tail = (previous.tail or "") + signature.tail
            else:
                element.text = (element.text or "") + signature.tail
        element.remove(signature)


__all__ = [
    "secure_parser",
    "XMLDSIG_NS",
    "certificate_body",
    "load_public_key",
    "verify_enveloped_signature",
]
