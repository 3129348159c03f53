"""Observability infrastructure for the edge forwarder.

Provides structured logging and request-ID correlation middleware.

Quick start::

    from mtls_edge.observability import configure_logging, get_logger
    from mtls_edge.observability.middleware import (
        RequestIdMiddleware,
        RequestLoggingMiddleware,
    )

    configure_logging()
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
"""

from .logging import configure_logging, forward_context, get_logger, request_id_ctx

__all__ = [
    "configure_logging",
    "forward_context",
    "get_logger",
    "request_id_ctx",
]
