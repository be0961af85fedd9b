"""Transport connectivity state machine."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from ticket_bridge.models.enums import ConnectionState


LOG = logging.getLogger(__name__)

Listener = Callable[[ConnectionState, ConnectionState], None]

# (current state, event) -> next state
_TRANSITIONS: Dict[Tuple[ConnectionState, str], ConnectionState] = {
    (ConnectionState.DISCONNECTED, "connecting"): ConnectionState.CONNECTING,
    (ConnectionState.DISCONNECTED, "open"): ConnectionState.CONNECTED,
    (ConnectionState.DISCONNECTED, "close"): ConnectionState.DISCONNECTED,
    (ConnectionState.DISCONNECTED, "logged_out"): ConnectionState.LOGGED_OUT,
    (ConnectionState.CONNECTING, "connecting"): ConnectionState.CONNECTING,
    (ConnectionState.CONNECTING, "open"): ConnectionState.CONNECTED,
    (ConnectionState.CONNECTING, "close"): ConnectionState.DISCONNECTED,
    (ConnectionState.CONNECTING, "logged_out"): ConnectionState.LOGGED_OUT,
    (ConnectionState.CONNECTED, "connecting"): ConnectionState.CONNECTING,
    (ConnectionState.CONNECTED, "open"): ConnectionState.CONNECTED,
    (ConnectionState.CONNECTED, "close"): ConnectionState.DISCONNECTED,
    (ConnectionState.CONNECTED, "logged_out"): ConnectionState.LOGGED_OUT,
    # A logged-out session only leaves that state through a fresh handshake.
    (ConnectionState.LOGGED_OUT, "connecting"): ConnectionState.CONNECTING,
    (ConnectionState.LOGGED_OUT, "close"): ConnectionState.LOGGED_OUT,
    (ConnectionState.LOGGED_OUT, "logged_out"): ConnectionState.LOGGED_OUT,
}


class InvalidTransitionError(RuntimeError):
    """Raised when an event is not valid in the current state."""


class ConnectionMonitor:
    """Holds the transport state and notifies listeners on change.

    Event callbacks call :meth:`apply`; the dispatch loop and the listener only
    read :attr:`state`.
    """

    def __init__(self, initial: ConnectionState = ConnectionState.DISCONNECTED) -> None:
        self._state = initial
        self._condition = threading.Condition()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> ConnectionState:
        with self._condition:
            return self._state

    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def apply(self, event: str) -> ConnectionState:
        """Feed a transport event (connecting/open/close/logged_out)."""
        with self._condition:
            previous = self._state
            try:
                current = _TRANSITIONS[(previous, event)]
            except KeyError as exc:
                raise InvalidTransitionError(
                    f"Event '{event}' is not valid while {previous.value}."
                ) from exc
            self._state = current
            self._condition.notify_all()

        if current != previous:
            LOG.info("Transport connection %s -> %s", previous.value, current.value)
            for listener in list(self._listeners):
                try:
                    listener(previous, current)
                except Exception:  # pragma: no cover - listener bugs must not break state updates
                    LOG.exception("Connection listener failed on %s -> %s", previous.value, current.value)
        return current

    def wait_for(self, state: ConnectionState, timeout: Optional[float] = None) -> bool:
        """Block until ``state`` is reached or ``timeout`` elapses."""
        with self._condition:
            return self._condition.wait_for(lambda: self._state == state, timeout=timeout)
