"""Client and connection configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BASE_URL = "https://api.justack.dev/v1"
DEFAULT_TIMEOUT = 30.0  # HTTP request timeout (seconds)
DEFAULT_ASK_TIMEOUT = 5 * 60.0  # Wait for a human answer (seconds)
DEFAULT_ACK_TIMEOUT = 30.0  # Wait for the server to acknowledge a log (seconds)
SESSION_EXPIRED_CLOSE_CODE = 4001


@dataclass
class ClientOptions:
    """Options shared by the REST client and every session connection."""

    api_key: str
    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("api_key is required")
        self.base_url = self.base_url.rstrip("/")

    @property
    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def websocket_url(self, session_id: str) -> str:
        """WebSocket endpoint for a session (http -> ws, https -> wss)."""
        base = self.base_url
        if base.startswith("http"):
            base = "ws" + base[len("http") :]
        return f"{base}/sessions/{session_id}/ws"

    @classmethod
    def from_env(
        cls,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ) -> ClientOptions:
        """Build options from explicit values, falling back to the environment.

        Reads JUSTACK_API_KEY, JUSTACK_API_URL and JUSTACK_TIMEOUT.
        """
        env_timeout = os.getenv("JUSTACK_TIMEOUT")
        return cls(
            api_key=api_key or os.getenv("JUSTACK_API_KEY", ""),
            base_url=base_url or os.getenv("JUSTACK_API_URL") or DEFAULT_BASE_URL,
            timeout=timeout
            if timeout is not None
            else float(env_timeout)
            if env_timeout
            else DEFAULT_TIMEOUT,
        )


@dataclass
class WebSocketOptions:
    """Reconnection and keep-alive settings for a session connection."""

    auto_reconnect: bool = True
    max_reconnect_attempts: int = 5
    reconnect_delay: float = 1.0  # Backoff base (seconds)
    max_reconnect_delay: float = 30.0  # Backoff cap (seconds)
    reconnect_jitter: float = 1.0  # Upper bound of the random component (seconds)
    ping_interval: float | None = 30.0
    ping_timeout: float | None = 10.0
    ack_timeout: float | None = DEFAULT_ACK_TIMEOUT  # Logs only; None waits forever
