"""Edge forwarder configuration settings.

EdgeSettings is the single configuration object accepted by create_app().
It is a plain dataclass (not env-coupled) so tests can inject config
without touching os.environ. The header translation itself takes no
configuration.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import urlsplit


_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
DEFAULT_DISCONNECT_POLL_INTERVAL = 0.5


@dataclass(frozen=True, slots=True)
class EdgeSettings:
    """Configuration for the edge forwarding application."""

    # ── Origin ─────────────────────────────────────────────────────
    origin_url: str = ""
    """Base URL of the origin. Empty means forward to the inbound URL."""

    upstream_timeout: float | None = None
    """Outbound timeout in seconds. None leaves bounding to the host."""

    # ── Headers ────────────────────────────────────────────────────
    strip_inbound_client_headers: bool = False
    """Drop inbound X-SSL-Client-* headers before applying overrides."""

    # ── Cancellation ───────────────────────────────────────────────
    disconnect_poll_interval: float = DEFAULT_DISCONNECT_POLL_INTERVAL
    """Seconds between inbound disconnect checks while awaiting the origin."""

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if self.origin_url:
            parts = urlsplit(self.origin_url)
            if parts.scheme not in ("http", "https") or not parts.netloc:
                errors.append(
                    f"origin_url must be an absolute http(s) URL, got {self.origin_url!r}"
                )
        if self.upstream_timeout is not None and self.upstream_timeout <= 0:
            errors.append("upstream_timeout must be positive when set")
        if self.disconnect_poll_interval <= 0:
            errors.append("disconnect_poll_interval must be positive")
        return errors

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> EdgeSettings:
        """Build settings from environment variables.

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        if env is None:
            env = dict(os.environ)

        timeout_raw = env.get("UPSTREAM_TIMEOUT", "").strip()
        poll_raw = env.get("DISCONNECT_POLL_INTERVAL", "").strip()

        return cls(
            origin_url=env.get("ORIGIN_URL", "").strip().rstrip("/"),
            upstream_timeout=float(timeout_raw) if timeout_raw else None,
            strip_inbound_client_headers=(
                env.get("STRIP_INBOUND_CLIENT_HEADERS", "").strip().lower() in _TRUE_VALUES
            ),
            disconnect_poll_interval=(
                float(poll_raw) if poll_raw else DEFAULT_DISCONNECT_POLL_INTERVAL
            ),
        )
