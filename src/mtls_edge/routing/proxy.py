"""Certificate-status translating proxy.

Forwards every inbound request to the origin with the client-certificate
verification result expressed as ``X-SSL-Client-*`` headers. The proxy:

1. Reads the certificate-status record attached by the TLS terminator
2. Translates it into the header override set
3. Merges the overrides over a copy of the inbound headers
4. Sends exactly one request to the same URL and method, streaming the
   inbound body and following redirects
5. Returns the origin's status, headers and raw body unmodified

Failures while forwarding are raised as ``ForwardError`` subclasses and
rendered by the application's exception handlers. Nothing is retried.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import httpx
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response, StreamingResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from ..client_auth import VERIFY_HEADER, ClientAuthRecord, ScopeExtensionSource, translate_client_auth
from ..errors import StreamConsumedError, UpstreamUnavailableError
from ..observability.logging import forward_context, get_logger
from ..protocols import ClientAuthSource
from ..settings import DEFAULT_DISCONNECT_POLL_INTERVAL, EdgeSettings
from .proxy_headers import filter_response_headers, has_request_body, merge_override_headers
from .stream_lifecycle import (
    ForwardSession,
    relay_request_body,
    relay_response_body,
    send_until_disconnect,
)

logger = get_logger(__name__)


def build_target_url(request_url: str, origin_url: str = "") -> str:
    """Return the outbound URL.

    Without an origin override this is the inbound URL itself. With one,
    the inbound path and query are re-based onto the origin URL.
    """
    if not origin_url:
        return request_url
    inbound = urlsplit(request_url)
    target = origin_url.rstrip("/") + (inbound.path or "/")
    if inbound.query:
        target = f"{target}?{inbound.query}"
    return target


async def forward_request(
    request: Request,
    record: ClientAuthRecord | None,
    *,
    client: httpx.AsyncClient,
    origin_url: str = "",
    strip_client_headers: bool = False,
    disconnect_poll_interval: float = DEFAULT_DISCONNECT_POLL_INTERVAL,
) -> Response:
    """Forward one inbound request to the origin.

    Args:
        request: The inbound request. Neither it nor ``record`` is mutated.
        record: Certificate-status record, or None if none was attached.
        client: Outbound HTTP client.
        origin_url: Optional origin base URL replacing scheme and host.
        strip_client_headers: Drop inbound ``X-SSL-Client-*`` headers.
        disconnect_poll_interval: Seconds between inbound disconnect checks.

    Returns:
        Streaming response mirroring the origin's response.

    Raises:
        StreamConsumedError: The inbound body was drained already.
        UpstreamUnavailableError: The origin could not be reached.
        ClientDisconnect: The inbound client left before the origin answered.
    """
    overrides = translate_client_auth(record)
    headers = merge_override_headers(
        request.headers, overrides, strip_client_headers=strip_client_headers,
    )
    target_url = build_target_url(str(request.url), origin_url)

    session = ForwardSession(method=request.method, url=target_url)
    content = None
    if has_request_body(request.headers):
        content = relay_request_body(request, session)
    else:
        session.mark_body_done()

    outbound = client.build_request(
        request.method, target_url, headers=headers, content=content,
    )
    with forward_context(
        method=request.method, url=target_url, verify=overrides[VERIFY_HEADER],
    ):
        logger.debug("request_forwarded")
        upstream = await _send_upstream(
            client, outbound, request, session, poll_interval=disconnect_poll_interval,
        )

    session.activate()
    response = StreamingResponse(
        relay_response_body(upstream, session),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    response.raw_headers = filter_response_headers(upstream.headers)
    return response


async def _send_upstream(
    client: httpx.AsyncClient,
    outbound: httpx.Request,
    request: Request,
    session: ForwardSession,
    *,
    poll_interval: float,
) -> httpx.Response:
    """Send the outbound request and map every failure to a forward error.

    Log entries inherit the method, URL and verify status bound by the
    caller's ``forward_context``.
    """
    try:
        return await send_until_disconnect(
            client.send(outbound, stream=True, follow_redirects=True),
            request,
            session,
            poll_interval=poll_interval,
        )
    except StreamConsumedError:
        session.mark_closed()
        logger.warning("stream_consumed")
        raise
    except ClientDisconnect:
        session.mark_closed()
        logger.info("client_disconnected", duration_s=round(session.duration_seconds, 3))
        raise
    except httpx.TimeoutException as exc:
        session.mark_closed()
        logger.warning("upstream_unavailable", error="timeout")
        raise UpstreamUnavailableError.timeout(session.url) from exc
    except (httpx.RequestError, httpx.StreamError) as exc:
        # StreamError: a 307/308 redirect would need the streamed body again.
        session.mark_closed()
        logger.warning("upstream_unavailable", error=str(exc) or type(exc).__name__)
        raise UpstreamUnavailableError(
            f"Could not forward request to origin: {type(exc).__name__}"
        ) from exc


class CertificateStatusTranslator:
    """Request handler that forwards requests with certificate headers.

    Holds only collaborators (client, record source) and options; nothing
    from one request is kept for the next.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        source: ClientAuthSource | None = None,
        origin_url: str = "",
        strip_client_headers: bool = False,
        disconnect_poll_interval: float = DEFAULT_DISCONNECT_POLL_INTERVAL,
    ) -> None:
        self.client = client
        self.source = source or ScopeExtensionSource()
        self.origin_url = origin_url
        self.strip_client_headers = strip_client_headers
        self.disconnect_poll_interval = disconnect_poll_interval

    @classmethod
    def from_settings(
        cls,
        settings: EdgeSettings,
        client: httpx.AsyncClient,
        source: ClientAuthSource | None = None,
    ) -> CertificateStatusTranslator:
        return cls(
            client,
            source=source,
            origin_url=settings.origin_url,
            strip_client_headers=settings.strip_inbound_client_headers,
            disconnect_poll_interval=settings.disconnect_poll_interval,
        )

    async def handle(self, request: Request) -> Response:
        record = self.source.extract(request)
        return await forward_request(
            request,
            record,
            client=self.client,
            origin_url=self.origin_url,
            strip_client_headers=self.strip_client_headers,
            disconnect_poll_interval=self.disconnect_poll_interval,
        )


class ForwardingEndpoint:
    """ASGI endpoint handing every request, whatever its method, to the handler.

    Mounted as a plain ASGI app so the route does not restrict methods:
    WebDAV verbs, TRACE and custom methods reach the origin like GET does.
    The handler is looked up on ``app.state`` per request so it can be
    swapped (lifespan, tests).
    """

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive, send)
        response = await request.app.state.handler.handle(request)
        await response(scope, receive, send)


def create_forwarding_route() -> Route:
    """Create the catch-all route for every path and every method."""
    return Route("/{path:path}", endpoint=ForwardingEndpoint(), name="forward_all")
