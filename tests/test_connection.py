import threading
import time

import pytest

from ticket_bridge.models.enums import ConnectionState
from ticket_bridge.transport.connection import ConnectionMonitor, InvalidTransitionError

from conftest import StubTransport


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


def test_monitor_follows_handshake():
    monitor = ConnectionMonitor()
    seen = []
    monitor.subscribe(lambda previous, current: seen.append((previous, current)))

    monitor.apply("connecting")
    monitor.apply("open")
    monitor.apply("open")

    assert monitor.is_connected()
    assert seen == [
        (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
        (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
    ]


def test_logged_out_only_leaves_through_connecting():
    monitor = ConnectionMonitor(ConnectionState.CONNECTED)
    monitor.apply("logged_out")

    with pytest.raises(InvalidTransitionError):
        monitor.apply("open")
    assert monitor.apply("close") == ConnectionState.LOGGED_OUT
    assert monitor.apply("connecting") == ConnectionState.CONNECTING


def test_unknown_event_is_rejected():
    with pytest.raises(InvalidTransitionError):
        ConnectionMonitor().apply("restarting")


def test_wait_for_wakes_on_transition():
    monitor = ConnectionMonitor()
    threading.Timer(0.05, monitor.apply, args=("open",)).start()

    assert monitor.wait_for(ConnectionState.CONNECTED, timeout=5)
    assert not ConnectionMonitor().wait_for(ConnectionState.CONNECTED, timeout=0.01)


def test_disconnect_schedules_reconnect():
    transport = StubTransport(connected=True, reconnect_delay=0.01)
    try:
        transport.connection.apply("close")

        assert _wait_until(lambda: transport.reconnects == 1)
        assert transport.connection.state == ConnectionState.CONNECTING
        transport.connection.apply("open")
        assert transport.is_connected()
    finally:
        transport.close()


def test_logout_does_not_reconnect():
    transport = StubTransport(connected=True, reconnect_delay=0.01)
    try:
        transport.connection.apply("logged_out")
        time.sleep(0.1)

        assert transport.reconnects == 0
        assert transport.connection.state == ConnectionState.LOGGED_OUT
    finally:
        transport.close()


def test_close_cancels_pending_reconnect():
    transport = StubTransport(connected=True, reconnect_delay=0.2)
    transport.connection.apply("close")
    transport.close()
    time.sleep(0.3)

    assert transport.reconnects == 0
    assert transport.connection.state == ConnectionState.DISCONNECTED
