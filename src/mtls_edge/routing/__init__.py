"""Request forwarding to the origin."""

from .proxy import (
    CertificateStatusTranslator,
    ForwardingEndpoint,
    build_target_url,
    create_forwarding_route,
    forward_request,
)
from .proxy_headers import (
    HOP_BY_HOP_HEADERS,
    filter_response_headers,
    has_request_body,
    merge_override_headers,
)
from .stream_lifecycle import ForwardLifecycleError, ForwardSession, ForwardState

__all__ = [
    'CertificateStatusTranslator',
    'ForwardLifecycleError',
    'ForwardingEndpoint',
    'ForwardSession',
    'ForwardState',
    'HOP_BY_HOP_HEADERS',
    'build_target_url',
    'create_forwarding_route',
    'filter_response_headers',
    'forward_request',
    'has_request_body',
    'merge_override_headers',
]
