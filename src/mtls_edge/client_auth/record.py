"""Client-certificate status record produced by the TLS terminator.

The terminator reports the handshake result as a flat mapping with
camelCase keys (``certPresented``, ``certVerified``, ``certSubjectDN`` ...).
``ClientAuthRecord`` is the read-only Python view of that mapping. The
record is trusted input: nothing here re-validates the certificate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


# Wire key for every record attribute, in declaration order.
WIRE_KEYS: dict[str, str] = {
    'cert_presented': 'certPresented',
    'cert_verified': 'certVerified',
    'cert_verify': 'certVerify',
    'cert_subject_dn': 'certSubjectDN',
    'cert_issuer_dn': 'certIssuerDN',
    'cert_subject_dn_legacy': 'certSubjectDNLegacy',
    'cert_issuer_dn_legacy': 'certIssuerDNLegacy',
    'cert_serial': 'certSerial',
    'cert_issuer_serial': 'certIssuerSerial',
    'cert_fingerprint_sha1': 'certFingerprintSHA1',
    'cert_not_before': 'certNotBefore',
    'cert_not_after': 'certNotAfter',
}


@dataclass(frozen=True, slots=True)
class ClientAuthRecord:
    """Certificate-status record for one inbound connection.

    Every field is optional. An absent field and an empty string are
    treated the same way by the header translation.

    Attributes:
        cert_presented: ``"1"`` when the client presented a certificate.
        cert_verified: ``"SUCCESS"``, ``"NONE"`` or ``"FAILED:<reason>"``.
        cert_verify: Separate verification-status field. When non-empty it
            takes precedence for ``X-SSL-Client-Verify``.
    """

    cert_presented: str | None = None
    cert_verified: str | None = None
    cert_verify: str | None = None
    cert_subject_dn: str | None = None
    cert_issuer_dn: str | None = None
    cert_subject_dn_legacy: str | None = None
    cert_issuer_dn_legacy: str | None = None
    cert_serial: str | None = None
    cert_issuer_serial: str | None = None
    cert_fingerprint_sha1: str | None = None
    cert_not_before: str | None = None
    cert_not_after: str | None = None

    @property
    def presented(self) -> bool:
        return self.cert_presented == '1'

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ClientAuthRecord:
        """Build a record from the terminator's camelCase mapping.

        Unknown keys are ignored. ``None`` stays absent; any other value is
        coerced with ``str()``.
        """
        values: dict[str, str | None] = {}
        for attr, wire_key in WIRE_KEYS.items():
            raw = data.get(wire_key)
            values[attr] = None if raw is None else str(raw)
        return cls(**values)
