"""Client-certificate status record and its header translation."""

from .headers import (
    CLIENT_CERT_HEADERS,
    DETAIL_HEADER_FIELDS,
    VERIFY_HEADER,
    is_client_cert_header,
    translate_client_auth,
    verify_status,
)
from .record import ClientAuthRecord
from .sources import ScopeExtensionSource, StaticClientAuthSource

__all__ = [
    'CLIENT_CERT_HEADERS',
    'ClientAuthRecord',
    'DETAIL_HEADER_FIELDS',
    'ScopeExtensionSource',
    'StaticClientAuthSource',
    'VERIFY_HEADER',
    'is_client_cert_header',
    'translate_client_auth',
    'verify_status',
]
