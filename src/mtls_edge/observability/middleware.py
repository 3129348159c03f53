"""Observability middleware for the edge application.

Provides:
- ``RequestIdMiddleware`` -- accepts a well-formed ``X-Request-ID`` or
  generates one, and stores it in a context variable for structured-log
  correlation. The forwarded request and the origin response are left
  untouched: the ID exists for logs only.
- ``RequestLoggingMiddleware`` -- logs every completed request.

Both are plain ASGI middleware. ``receive`` is handed to the application
unwrapped, so the forwarding route sees ``http.disconnect`` as soon as the
server delivers it and can abandon the upstream request.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .logging import get_logger, request_id_ctx

logger = get_logger(__name__)

# Allowed request-ID format: 8-128 chars of hex, dash, or alphanumeric.
_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")


def resolve_request_id(incoming_id: str | None) -> str:
    """Reuse a well-formed incoming ID, otherwise generate a fresh UUID."""
    if incoming_id and _VALID_REQUEST_ID.match(incoming_id):
        return incoming_id
    return str(uuid.uuid4())


class RequestIdMiddleware:
    """Bind a request ID to ``request_id_ctx`` and ``request.state``."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = resolve_request_id(Headers(scope=scope).get("x-request-id"))
        # request.state reads from scope["state"].
        scope.setdefault("state", {})["request_id"] = rid

        token = request_id_ctx.set(rid)
        try:
            await self.app(scope, receive, send)
        finally:
            request_id_ctx.reset(token)


class RequestLoggingMiddleware:
    """Log every completed request with method, path, status, and duration.

    The entry is written once the response body has been sent, or the
    application failed. A request that failed before a response started is
    logged with status 500.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        status = 500

        async def send_with_status(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            await send(message)

        start = time.perf_counter()
        try:
            await self.app(scope, receive, send_with_status)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "request_completed",
                method=scope["method"],
                path=scope["path"],
                status=status,
                duration_ms=round(duration_ms, 2),
            )
