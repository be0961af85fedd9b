"""Transport base classes."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

from ticket_bridge.models.enums import ConnectionState
from ticket_bridge.transport.connection import ConnectionMonitor


LOG = logging.getLogger(__name__)


class TransportError(RuntimeError):
    """Raised when a send or session request fails."""


class Transport(ABC):
    """Abstract chat transport: send text, expose connectivity, reconnect."""

    def __init__(
        self,
        connection: Optional[ConnectionMonitor] = None,
        reconnect_delay: float = 1.0,
    ) -> None:
        self.connection = connection or ConnectionMonitor()
        self.reconnect_delay = reconnect_delay
        self._reconnect_timer: Optional[threading.Timer] = None
        self.connection.subscribe(self._on_state_change)

    @abstractmethod
    def send_text(self, to: str, text: str) -> None:
        """Deliver ``text`` to the chat identified by ``to``."""

    @abstractmethod
    def reconnect(self) -> None:
        """Ask the underlying session to re-establish itself."""

    def is_connected(self) -> bool:
        return self.connection.is_connected()

    def close(self) -> None:
        self._cancel_reconnect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _on_state_change(self, previous: ConnectionState, current: ConnectionState) -> None:
        if current == ConnectionState.LOGGED_OUT:
            LOG.error("Transport logged out; re-authenticate the chat session.")
            return
        if current != ConnectionState.DISCONNECTED:
            return
        LOG.info("Transport disconnected; reconnecting in %.1fs", self.reconnect_delay)
        self._cancel_reconnect()
        timer = threading.Timer(self.reconnect_delay, self._reconnect_safely)
        timer.daemon = True
        self._reconnect_timer = timer
        timer.start()

    def _reconnect_safely(self) -> None:
        self._reconnect_timer = None
        if self.connection.state != ConnectionState.DISCONNECTED:
            return
        try:
            self.connection.apply("connecting")
            self.reconnect()
        except TransportError:
            LOG.exception("Reconnect request failed")
            self.connection.apply("close")
