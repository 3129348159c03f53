"""Structured logging for the edge forwarder.

Every event is one JSON line (console lines with ``LOG_FORMAT=console``)
carrying the inbound request's ID. Inside ``forward_context`` each event
also carries the outbound method, target URL and verify status, so the
forwarding code logs only what is specific to the event. Records from
stdlib loggers (uvicorn, httpx) pass through the same processors and
renderer.

Usage::

    from mtls_edge.observability.logging import configure_logging, forward_context, get_logger

    configure_logging()  # Call once at process startup
    logger = get_logger(__name__)
    with forward_context(method="GET", url=url, verify="SUCCESS"):
        logger.warning("upstream_unavailable", error="timeout")
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

import structlog

# Context variable for request-scoped correlation ID.
request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

_configured = False

# Per-request access lines and outbound client chatter; request_completed
# and the forwarding events cover both.
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


def _add_request_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    rid = request_id_ctx.get()
    if rid is not None:
        event_dict.setdefault("request_id", rid)
    return event_dict


def _pre_chain() -> list:
    """Processors shared by structlog events and foreign stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        _add_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderer(json_output: bool):
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    force: bool = False,
) -> None:
    """Route structlog and stdlib logging to one stdout handler.

    Args:
        level: Log level name. Defaults to ``LOG_LEVEL`` or INFO.
        json_output: JSON lines when True, console output when False.
            Defaults to ``LOG_FORMAT`` (``json`` unless set otherwise).
        force: Reconfigure even if logging was already configured.
    """
    global _configured
    if _configured and not force:
        return
    _configured = True

    level_name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json").lower() == "json"

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_pre_chain(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def forward_context(*, method: str, url: str, verify: str) -> Iterator[None]:
    """Bind one forward's identity to every event logged inside the block.

    Only the verify status is bound; certificate details never reach logs.
    Tasks started inside the block inherit the binding.
    """
    with structlog.contextvars.bound_contextvars(method=method, url=url, verify=verify):
        yield


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to the given name."""
    return structlog.get_logger(name)
