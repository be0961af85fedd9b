"""HTTP chat gateway transport."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ticket_bridge.transport.base import Transport, TransportError
from ticket_bridge.transport.connection import ConnectionMonitor


LOG = logging.getLogger(__name__)


class GatewayTransport(Transport):
    """Talks to a chat gateway sidecar that owns the messaging session.

    The sidecar reports inbound messages and connection changes back to the
    control API; this class only covers the outbound half.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        connection: Optional[ConnectionMonitor] = None,
        reconnect_delay: float = 1.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        super().__init__(connection=connection, reconnect_delay=reconnect_delay)
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def _post(self, path: str, payload: Optional[Dict[str, Any]] = None) -> None:
        try:
            response = self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise TransportError(f"Gateway request {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise TransportError(f"Gateway error {response.status_code}: {response.text}")

    def send_text(self, to: str, text: str) -> None:
        self._post("/messages", {"to": to, "text": text})

    def reconnect(self) -> None:
        self._post("/session/reconnect")

    def close(self) -> None:
        super().close()
        self._client.close()
