"""Edge forwarder that turns mTLS verification results into X-SSL-Client-* headers.

Usage:
    from mtls_edge import create_app, EdgeSettings
    app = create_app(EdgeSettings.from_env())
"""

from .client_auth import ClientAuthRecord, translate_client_auth
from .errors import ForwardError, StreamConsumedError, UpstreamUnavailableError
from .main import create_app
from .routing import CertificateStatusTranslator, forward_request
from .settings import EdgeSettings

__all__ = [
    "CertificateStatusTranslator",
    "ClientAuthRecord",
    "EdgeSettings",
    "ForwardError",
    "StreamConsumedError",
    "UpstreamUnavailableError",
    "create_app",
    "forward_request",
    "translate_client_auth",
]
