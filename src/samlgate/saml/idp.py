"""Identity provider metadata parsing."""

from __future__ import annotations

import msgspec
import lxml.etree as LET

from ..exceptions import ConfigurationError
from .constants import HTTP_REDIRECT_BINDING, METADATA_NS
from .signature import XMLDSIG_NS, secure_parser


class IdentityProviderDescriptor(msgspec.Struct, frozen=True):
    """The parts of an IdP ``EntityDescriptor`` the gate relies on."""

    entity_id: str
    sso_url: str
    certificates: tuple[str, ...]

    @classmethod
    def from_metadata(cls, metadata: str) -> "IdentityProviderDescriptor":
        """Parse IdP metadata XML, raising :class:`ConfigurationError` when unusable."""

        try:
            root = LET.fromstring(metadata.strip().encode("utf-8"), secure_parser())
        except (LET.XMLSyntaxError, ValueError) as exc:
            raise ConfigurationError("identity provider metadata is not valid XML") from exc
        if root.tag == f"{{{METADATA_NS}}}EntityDescriptor":
            candidates = [root]
        else:
            candidates = root.findall(f".//{{{METADATA_NS}}}EntityDescriptor")
        for entity in candidates:
            descriptor = entity.find(f"{{{METADATA_NS}}}IDPSSODescriptor")
            if descriptor is None:
                continue
            entity_id = entity.get("entityID")
            if not entity_id:
                raise ConfigurationError("identity provider metadata has no entityID")
            sso_url = _redirect_sso_url(descriptor)
            certificates = _signing_certificates(descriptor)
            if not certificates:
                raise ConfigurationError("identity provider metadata has no signing certificate")
            return cls(entity_id=entity_id, sso_url=sso_url, certificates=certificates)
        raise ConfigurationError("identity provider metadata has no IDPSSODescriptor")


def _redirect_sso_url(descriptor: LET._Element) -> str:
    for service in descriptor.findall(f"{{{METADATA_NS}}}SingleSignOnService"):
        if service.get("Binding") == HTTP_REDIRECT_BINDING and service.get("Location"):
            return service.get("Location", "")
    raise ConfigurationError("identity provider metadata has no HTTP-Redirect SingleSignOnService")


def _signing_certificates(descriptor: LET._Element) -> tuple[str, ...]:
    certificates: list[str] = []
    for key_descriptor in descriptor.findall(f"{{{METADATA_NS}}}KeyDescriptor"):
        if key_descriptor.get("use") not in (None, "signing"):
            continue
        for node in key_descriptor.iterfind(f".//{{{XMLDSIG_NS}}}X509Certificate"):
            if node.text and node.text.strip():
                certificates.append("".join(node.text.split()))
    return tuple(certificates)


__all__ = ["IdentityProviderDescriptor"]
