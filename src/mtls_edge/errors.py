"""Structured error codes for the forwarding path.

The translation step never fails. Only forwarding can, and every failure
surfaces to the caller as one of the exceptions below; nothing is retried
or replaced with a default response.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable forwarding error codes."""

    STREAM_CONSUMED = "STREAM_CONSUMED"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    UPSTREAM_TIMEOUT = "UPSTREAM_TIMEOUT"


class ForwardError(Exception):
    """Base class for failures while forwarding a request to the origin.

    Attributes:
        code: Stable error code rendered in the JSON error body.
        http_status: Status returned to the inbound caller.
        message: Human-readable description.
    """

    code: ErrorCode = ErrorCode.UPSTREAM_UNAVAILABLE
    http_status: int = 502

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status

    def to_dict(self, request_id: str | None = None) -> dict:
        """Convert to dict for API responses."""
        return {
            "code": self.code.value,
            "message": self.message,
            "request_id": request_id,
        }


class StreamConsumedError(ForwardError):
    """The inbound body stream was drained before it could be forwarded."""

    code = ErrorCode.STREAM_CONSUMED
    http_status = 500


class UpstreamUnavailableError(ForwardError):
    """Network or origin failure during forwarding."""

    code = ErrorCode.UPSTREAM_UNAVAILABLE
    http_status = 502

    @classmethod
    def timeout(cls, url: str) -> UpstreamUnavailableError:
        return cls(
            f"Origin did not respond in time: {url}",
            code=ErrorCode.UPSTREAM_TIMEOUT,
            http_status=504,
        )
