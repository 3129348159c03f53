"""Edge forwarder FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It wires logging middleware, the forwarding error handlers and
the catch-all forwarding route, and injects the outbound HTTP client and the
certificate-status record source.

Usage:
    # Production
    app = create_app(EdgeSettings.from_env())

    # Testing (full DI control)
    app = create_app(settings, http_client=mock_client, client_auth_source=source)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect
from starlette.responses import Response

from .errors import ForwardError
from .observability.logging import configure_logging, get_logger
from .observability.middleware import RequestIdMiddleware, RequestLoggingMiddleware
from .protocols import ClientAuthSource
from .routing.proxy import CertificateStatusTranslator, create_forwarding_route
from .settings import EdgeSettings

logger = get_logger(__name__)

# Status logged for requests whose client left before the origin answered.
CLIENT_CLOSED_REQUEST = 499


def build_http_client(settings: EdgeSettings) -> httpx.AsyncClient:
    """Outbound client. No timeout unless configured."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.upstream_timeout),
        follow_redirects=True,
    )


async def _forward_error_handler(request: Request, exc: ForwardError) -> JSONResponse:
    request_id = getattr(request.state, "request_id", None)
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(request_id),
    )


async def _client_disconnect_handler(request: Request, exc: ClientDisconnect) -> Response:
    # Nobody is listening any more; the status only shows up in logs.
    return Response(status_code=CLIENT_CLOSED_REQUEST)


def create_app(
    settings: EdgeSettings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    client_auth_source: ClientAuthSource | None = None,
) -> FastAPI:
    """Create a configured edge forwarding application.

    Args:
        settings: Application settings. Defaults to EdgeSettings().
        http_client: Outbound client. When given, the caller owns it and
            closes it; otherwise one is opened and closed by the lifespan.
        client_auth_source: Where the certificate-status record is read
            from. Defaults to the ASGI ``tls`` scope extension.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
    """
    if settings is None:
        settings = EdgeSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Edge settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("edge_startup", origin_url=settings.origin_url or None)
        if http_client is None:
            async with build_http_client(settings) as client:
                app.state.handler = CertificateStatusTranslator.from_settings(
                    settings, client, client_auth_source,
                )
                yield
        else:
            yield
        logger.info("edge_shutdown")

    # Docs routes are disabled: every path belongs to the origin.
    app = FastAPI(
        title="mTLS Edge",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings

    if http_client is not None:
        app.state.handler = CertificateStatusTranslator.from_settings(
            settings, http_client, client_auth_source,
        )

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> RequestLogging -> route handler.
    # Both are plain ASGI so disconnects reach the route unfiltered.
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(ForwardError, _forward_error_handler)
    app.add_exception_handler(ClientDisconnect, _client_disconnect_handler)

    # A plain ASGI route: every method is forwarded, none answered locally.
    app.router.routes.append(create_forwarding_route())

    return app


def create_app_from_env() -> FastAPI:
    """Factory for ASGI servers: settings and logging from the environment."""
    configure_logging()
    return create_app(EdgeSettings.from_env())


# For uvicorn, use --factory flag:
#   uvicorn mtls_edge.main:create_app_from_env --factory
# This avoids executing create_app() at import time.
