"""Header handling at the forwarding boundary.

Inbound headers reach the origin untouched apart from:

  - the certificate header overrides, applied insert-or-replace: every
    same-named inbound header (any casing, any count) is replaced by
    exactly one override value;
  - hop-by-hop headers and ``Host``, which describe the inbound connection
    and are regenerated by the HTTP client;
  - optionally, inbound ``X-SSL-Client-*`` headers, which only the edge
    should be setting.

On the way back only hop-by-hop framing headers are dropped, because the
ASGI server re-frames the body. Everything else, duplicates included, is
passed through verbatim.
"""

from __future__ import annotations

from typing import Mapping

import httpx
from starlette.datastructures import Headers

from ..client_auth import is_client_cert_header

# Headers that should NOT be forwarded (hop-by-hop per RFC 9110).
HOP_BY_HOP_HEADERS: frozenset[str] = frozenset({
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
})

# Headers whose presence means the inbound request carries a body.
_BODY_HEADERS: tuple[str, ...] = ('content-length', 'transfer-encoding')


def _connection_tokens(raw: list[tuple[bytes, bytes]]) -> frozenset[str]:
    """Header names listed in ``Connection`` are hop-by-hop as well."""
    tokens: set[str] = set()
    for key, value in raw:
        if key.lower() == b'connection':
            for token in value.decode('latin-1').split(','):
                token = token.strip().lower()
                if token:
                    tokens.add(token)
    return frozenset(tokens)


def merge_override_headers(
    inbound: Headers,
    overrides: Mapping[str, str],
    *,
    strip_client_headers: bool = False,
) -> httpx.Headers:
    """Build the outbound header set from a copy of the inbound headers.

    Args:
        inbound: Headers of the inbound request. Not modified.
        overrides: Header override set, applied in order.
        strip_client_headers: Drop inbound ``X-SSL-Client-*`` headers
            before applying the overrides.

    Returns:
        New ``httpx.Headers`` with duplicates of non-overridden headers
        preserved in their original order.
    """
    raw = list(inbound.raw)
    skip = HOP_BY_HOP_HEADERS | _connection_tokens(raw) | {'host'}

    forwarded: list[tuple[bytes, bytes]] = []
    for key, value in raw:
        name = key.decode('latin-1').lower()
        if name in skip:
            continue
        if strip_client_headers and is_client_cert_header(name):
            continue
        forwarded.append((key, value))

    headers = httpx.Headers(forwarded)
    for name, value in overrides.items():
        # httpx replaces every existing entry for the name with one value.
        headers[name] = value
    return headers


def has_request_body(inbound: Headers) -> bool:
    return any(name in inbound for name in _BODY_HEADERS)


def filter_response_headers(headers: httpx.Headers) -> list[tuple[bytes, bytes]]:
    """Return the origin's raw response headers minus hop-by-hop framing."""
    skip = HOP_BY_HOP_HEADERS | _connection_tokens(headers.raw)
    return [
        (key, value)
        for key, value in headers.raw
        if key.decode('latin-1').lower() not in skip
    ]
