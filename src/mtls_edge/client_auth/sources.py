"""Record sources: where the terminator's certificate status is found.

ASGI servers that terminate TLS expose connection metadata through the
``tls`` scope extension. The edge terminator places its verification
result there under ``client_auth``::

    scope["extensions"]["tls"]["client_auth"] = {
        "certPresented": "1",
        "certVerified": "SUCCESS",
        "certSubjectDN": "CN=alice",
        ...
    }
"""

from __future__ import annotations

from collections.abc import Mapping

from starlette.requests import Request

from .record import ClientAuthRecord

TLS_EXTENSION = 'tls'
CLIENT_AUTH_KEY = 'client_auth'


class ScopeExtensionSource:
    """Read the record from ``scope["extensions"]["tls"]["client_auth"]``.

    A missing extension, a missing key or a value that is not a mapping all
    mean "no record", which translates to ``X-SSL-Client-Verify: NONE``.
    """

    def __init__(
        self,
        extension: str = TLS_EXTENSION,
        key: str = CLIENT_AUTH_KEY,
    ) -> None:
        self.extension = extension
        self.key = key

    def extract(self, request: Request) -> ClientAuthRecord | None:
        extensions = request.scope.get('extensions') or {}
        tls_info = extensions.get(self.extension)
        if not isinstance(tls_info, Mapping):
            return None
        raw = tls_info.get(self.key)
        if not isinstance(raw, Mapping):
            return None
        return ClientAuthRecord.from_mapping(raw)


class StaticClientAuthSource:
    """Return the same record for every request."""

    def __init__(self, record: ClientAuthRecord | None) -> None:
        self.record = record

    def extract(self, request: Request) -> ClientAuthRecord | None:
        return self.record
