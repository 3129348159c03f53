"""Protocol interfaces for the pieces the hosting environment injects.

The ASGI server (or any other dispatcher) turns an inbound connection into
a ``Request`` and calls a ``RequestHandler``. Where the certificate-status
record comes from is pluggable through ``ClientAuthSource``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from starlette.requests import Request
from starlette.responses import Response

from .client_auth.record import ClientAuthRecord


@runtime_checkable
class ClientAuthSource(Protocol):
    """Extracts the terminator's certificate-status record from a request."""

    def extract(self, request: Request) -> ClientAuthRecord | None: ...


@runtime_checkable
class RequestHandler(Protocol):
    """Handles one inbound request and returns the response to send back."""

    async def handle(self, request: Request) -> Response: ...
