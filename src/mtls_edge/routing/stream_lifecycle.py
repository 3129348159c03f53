"""Lifecycle management for one forwarded request.

A forwarded request has three suspension points: relaying the inbound body
upstream, awaiting the origin's response head, and relaying the response
body back. The inbound connection can go away during any of them, and the
in-flight upstream request must then be abandoned rather than left pending.

This module provides:
  1. ``ForwardSession`` -- tracks one forwarded request's state.
  2. ``relay_request_body`` -- streams the inbound body, mapping an
     already-drained stream to ``StreamConsumedError``.
  3. ``send_until_disconnect`` -- awaits the upstream send while watching
     the inbound connection, cancelling the send on disconnect.
  4. ``relay_response_body`` -- streams the raw upstream body and always
     closes the upstream response.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, TypeVar

import httpx
from starlette.requests import ClientDisconnect, Request

from ..errors import StreamConsumedError

T = TypeVar('T')

# Message starlette raises when the request stream was read already.
_STREAM_CONSUMED_MESSAGE = 'Stream consumed'


class ForwardState(Enum):
    """Lifecycle state of a forwarded request."""

    CONNECTING = 'connecting'
    ACTIVE = 'active'
    CLOSING = 'closing'
    CLOSED = 'closed'


class ForwardLifecycleError(Exception):
    """Raised on forward lifecycle violations."""


@dataclass(slots=True)
class ForwardSession:
    """Tracks a single forwarded request.

    Attributes:
        method: Outbound HTTP method.
        url: Outbound URL.
        state: Current lifecycle state.
        started_at: Monotonic timestamp when the session was created.
        _cancel_event: Set when the upstream request should be abandoned.
        _body_done: Set once the inbound body has been fully relayed.
    """

    method: str
    url: str
    state: ForwardState = ForwardState.CONNECTING
    started_at: float = field(default_factory=time.monotonic)
    _cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    _body_done: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_active(self) -> bool:
        return self.state in (ForwardState.CONNECTING, ForwardState.ACTIVE)

    @property
    def body_done(self) -> bool:
        return self._body_done.is_set()

    @property
    def duration_seconds(self) -> float:
        return time.monotonic() - self.started_at

    def activate(self) -> None:
        """Transition from CONNECTING to ACTIVE once the origin answered."""
        if self.state != ForwardState.CONNECTING:
            raise ForwardLifecycleError(
                f'Cannot activate forward in state {self.state.value}'
            )
        self.state = ForwardState.ACTIVE

    def mark_body_done(self) -> None:
        self._body_done.set()

    def request_close(self) -> None:
        """Signal that the upstream request should be abandoned."""
        if self.state == ForwardState.CLOSED:
            return  # Idempotent.
        self.state = ForwardState.CLOSING
        self._cancel_event.set()

    def mark_closed(self) -> None:
        """Transition to CLOSED (terminal state)."""
        self.state = ForwardState.CLOSED
        self._cancel_event.set()
        self._body_done.set()

    async def wait_for_body(self) -> None:
        await self._body_done.wait()

    async def wait_for_cancel(self, timeout: float | None = None) -> bool:
        """Wait for cancellation signal.

        Returns True if cancelled, False if timed out.
        """
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False


async def relay_request_body(
    request: Request,
    session: ForwardSession,
) -> AsyncIterator[bytes]:
    """Yield the inbound body chunk by chunk.

    Raises:
        StreamConsumedError: The body was drained before forwarding.
    """
    try:
        async for chunk in request.stream():
            if chunk:
                yield chunk
    except RuntimeError as exc:
        if str(exc) != _STREAM_CONSUMED_MESSAGE:
            raise
        raise StreamConsumedError(
            'Inbound request body was already consumed before forwarding'
        ) from exc
    except ClientDisconnect:
        session.request_close()
        raise
    session.mark_body_done()


async def watch_disconnect(
    request: Request,
    session: ForwardSession,
    *,
    interval: float,
) -> bool:
    """Poll the inbound connection until it drops or the session ends.

    Polling starts only after the inbound body has been relayed; before
    that, receiving from the connection would steal body chunks.

    Returns True if the client disconnected.
    """
    await session.wait_for_body()
    while session.is_active:
        if await request.is_disconnected():
            session.request_close()
            return True
        if await session.wait_for_cancel(timeout=interval):
            return False
    return False


async def send_until_disconnect(
    send: Awaitable[T],
    request: Request,
    session: ForwardSession,
    *,
    poll_interval: float,
) -> T:
    """Await ``send`` unless the inbound client disconnects first.

    On disconnect the send is cancelled and ``ClientDisconnect`` is raised.
    If the calling task is cancelled, the send is cancelled with it and a
    response that already arrived is closed.
    """
    send_task = asyncio.ensure_future(send)
    watch_task = asyncio.ensure_future(
        watch_disconnect(request, session, interval=poll_interval)
    )
    try:
        await asyncio.wait(
            {send_task, watch_task}, return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        send_task.cancel()
        watch_task.cancel()
        if send_task.done() and not send_task.cancelled() and send_task.exception() is None:
            result = send_task.result()
            if isinstance(result, httpx.Response):
                await result.aclose()
        raise

    if send_task.done():
        watch_task.cancel()
        return send_task.result()

    # The watcher finished first. It raises if polling itself failed, and
    # returns False when the session ended for another reason.
    if not watch_task.result():
        return await send_task
    send_task.cancel()
    await asyncio.gather(send_task, return_exceptions=True)
    raise ClientDisconnect()


async def relay_response_body(
    upstream: httpx.Response,
    session: ForwardSession,
) -> AsyncIterator[bytes]:
    """Yield the origin's raw body bytes, undecoded.

    The upstream response is closed however the relay ends: completion,
    an upstream read error, or cancellation after the inbound client left.
    """
    try:
        async for chunk in upstream.aiter_raw():
            yield chunk
    except asyncio.CancelledError:
        session.request_close()
        raise
    finally:
        await upstream.aclose()
        session.mark_closed()
