"""Translate a client-certificate status record into origin headers.

The header names and values follow the nginx ``$ssl_client_*`` convention
that existing origin configurations already read:

  - ``X-SSL-Client-Verify`` is always set: ``SUCCESS``, ``FAILED:<reason>``
    or ``NONE``.
  - Detail headers (``X-SSL-Client-DN``, ``-Issuer``, ``-Serial`` ...) are
    set only when a certificate was presented and the source field is
    non-empty.

``translate_client_auth`` is a total function. It never raises and returns
the same ordered mapping for the same record.
"""

from __future__ import annotations

from .record import ClientAuthRecord

VERIFY_HEADER = 'X-SSL-Client-Verify'

# Header name prefix shared by every certificate header.
CLIENT_HEADER_PREFIX = 'x-ssl-client-'

VERIFY_SUCCESS = 'SUCCESS'
VERIFY_NONE = 'NONE'
VERIFY_FAILED_PREFIX = 'FAILED:'
UNKNOWN_FAILURE_REASON = 'Unknown reason'

# (record attribute, header name), applied in order. A non-empty cert_verify
# overwrites the verify decision.
DETAIL_HEADER_FIELDS: tuple[tuple[str, str], ...] = (
    ('cert_subject_dn', 'X-SSL-Client-DN'),
    ('cert_issuer_dn', 'X-SSL-Client-Issuer'),
    ('cert_subject_dn_legacy', 'X-SSL-Client-DN-Legacy'),
    ('cert_issuer_dn_legacy', 'X-SSL-Client-Issuer-Legacy'),
    ('cert_serial', 'X-SSL-Client-Serial'),
    ('cert_issuer_serial', 'X-SSL-Client-Issuer-Serial'),
    ('cert_fingerprint_sha1', 'X-SSL-Client-Fingerprint'),
    ('cert_verify', VERIFY_HEADER),
    ('cert_not_before', 'X-SSL-Client-NotBefore'),
    ('cert_not_after', 'X-SSL-Client-NotAfter'),
)

CLIENT_CERT_HEADERS: frozenset[str] = frozenset(
    [VERIFY_HEADER] + [header for _, header in DETAIL_HEADER_FIELDS]
)


def verify_status(cert_verified: str | None) -> str:
    """Return the ``X-SSL-Client-Verify`` value for a presented certificate.

    Terminators report failures as ``FAILED:<reason>`` already, so one
    leading ``FAILED:`` is not repeated.
    """
    if cert_verified == VERIFY_SUCCESS:
        return VERIFY_SUCCESS
    reason = cert_verified or ''
    if reason.startswith(VERIFY_FAILED_PREFIX):
        reason = reason[len(VERIFY_FAILED_PREFIX):]
    return f'{VERIFY_FAILED_PREFIX}{reason or UNKNOWN_FAILURE_REASON}'


def translate_client_auth(record: ClientAuthRecord | None) -> dict[str, str]:
    """Build the header override set for one request.

    Args:
        record: Certificate-status record, or None when the terminator
            attached nothing.

    Returns:
        Ordered mapping of header name to value. ``X-SSL-Client-Verify``
        is always present.
    """
    if record is None or not record.presented:
        return {VERIFY_HEADER: VERIFY_NONE}

    overrides: dict[str, str] = {VERIFY_HEADER: verify_status(record.cert_verified)}

    candidates = {
        header: getattr(record, attr) for attr, header in DETAIL_HEADER_FIELDS
    }
    for header, value in candidates.items():
        if value:
            overrides[header] = value

    return overrides


def is_client_cert_header(name: str) -> bool:
    return name.lower().startswith(CLIENT_HEADER_PREFIX)
