import json
import threading
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Optional, Tuple

import pytest
import redis
from fastapi.testclient import TestClient

from ticket_bridge import constants
from ticket_bridge.api import main as api_main
from ticket_bridge.clients import database
from ticket_bridge.clients.queue import RedisQueue
from ticket_bridge.models.enums import ConnectionState
from ticket_bridge.services.control_service import ControlService
from ticket_bridge.services.dispatch_service import DispatchWorker
from ticket_bridge.services.ingestion_service import IngestionWorker
from ticket_bridge.services.listener_service import ListenerService
from ticket_bridge.services.ticket_service import TicketService
from ticket_bridge.settings import Settings, get_settings
from ticket_bridge.transport.base import Transport, TransportError
from ticket_bridge.transport.connection import ConnectionMonitor


class FakeRedis:
    """Thread-safe in-memory stand-in for the redis-py commands we use."""

    def __init__(self) -> None:
        self.lists: Dict[str, List[str]] = {}
        self.values: Dict[str, Tuple[str, Optional[float]]] = {}
        self.offline = False
        self._offset = 0.0
        self._cond = threading.Condition()

    # Test helpers ---------------------------------------------------------------
    def advance(self, seconds: float) -> None:
        """Move the expiry clock forward."""
        with self._cond:
            self._offset += seconds

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def _check(self) -> None:
        if self.offline:
            raise redis.ConnectionError("fake redis is offline")

    def _live(self, key: str) -> Optional[str]:
        entry = self.values.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self._now():
            del self.values[key]
            return None
        return value

    # Lists ------------------------------------------------------------------------
    def lpush(self, key: str, *values: str) -> int:
        with self._cond:
            self._check()
            items = self.lists.setdefault(key, [])
            for value in values:
                items.insert(0, value)
            self._cond.notify_all()
            return len(items)

    def brpop(self, keys, timeout: float = 0):
        if isinstance(keys, str):
            keys = [keys]
        deadline = None if not timeout else time.monotonic() + timeout
        with self._cond:
            while True:
                self._check()
                for key in keys:
                    items = self.lists.get(key)
                    if items:
                        return key, items.pop()
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return None
                self._cond.wait(remaining)

    def llen(self, key: str) -> int:
        with self._cond:
            self._check()
            return len(self.lists.get(key, []))

    def lrange(self, key: str, start: int, end: int) -> List[str]:
        with self._cond:
            self._check()
            items = self.lists.get(key, [])
            stop = len(items) if end == -1 else end + 1
            return list(items[start:stop])

    # Keys -------------------------------------------------------------------------
    def set(self, key: str, value: str, nx: bool = False, ex: Optional[int] = None):
        with self._cond:
            self._check()
            if nx and self._live(key) is not None:
                return None
            expires_at = self._now() + ex if ex else None
            self.values[key] = (value, expires_at)
            return True

    def get(self, key: str) -> Optional[str]:
        with self._cond:
            self._check()
            return self._live(key)

    def exists(self, *keys: str) -> int:
        with self._cond:
            self._check()
            return sum(1 for key in keys if self._live(key) is not None)

    def delete(self, *keys: str) -> int:
        with self._cond:
            self._check()
            removed = 0
            for key in keys:
                if self.values.pop(key, None) is not None:
                    removed += 1
                if self.lists.pop(key, None) is not None:
                    removed += 1
            return removed

    def register_script(self, source: str) -> "FakeClaimAllScript":
        # Only the all-or-nothing marker claim is ever registered.
        return FakeClaimAllScript(self)

    def ping(self) -> bool:
        self._check()
        return True


class FakeClaimAllScript:
    """In-process stand-in for the claim-all Lua script."""

    def __init__(self, fake: FakeRedis) -> None:
        self.fake = fake

    def __call__(self, keys=(), args=()):
        with self.fake._cond:
            self.fake._check()
            if any(self.fake._live(key) is not None for key in keys):
                return 0
            for key, ttl in zip(keys, args):
                self.fake.values[key] = ("1", self.fake._now() + int(ttl))
            return 1

    def close(self) -> None:
        pass


class StubTransport(Transport):
    """Records sends; tests flip connectivity through the monitor."""

    def __init__(self, connected: bool = True, reconnect_delay: float = 3600.0) -> None:
        initial = ConnectionState.CONNECTED if connected else ConnectionState.DISCONNECTED
        super().__init__(connection=ConnectionMonitor(initial), reconnect_delay=reconnect_delay)
        self.sent: List[Tuple[str, str, float]] = []
        self.fail_sends = 0
        self.reconnects = 0
        self.disconnect_on_send = False

    def send_text(self, to: str, text: str) -> None:
        if self.fail_sends:
            self.fail_sends -= 1
            raise TransportError("socket closed")
        self.sent.append((to, text, time.monotonic()))

    def reconnect(self) -> None:
        self.reconnects += 1


@pytest.fixture(autouse=True)
def temp_runtime_dirs(tmp_path, monkeypatch):
    """Redirect runtime directories and database into a temp location."""
    home = tmp_path / "runtime" / "home"
    mapping = {
        "HOME_DIR": home,
        "LOG_DIR": home / "logs",
        "DB_DIR": home / "db",
        "DB_FILE": home / "db" / "bridge.db",
    }

    for name, path in mapping.items():
        monkeypatch.setattr(constants, name, path)

    for name in ("CONTROL_API_TOKEN", "DATABASE_URL", "BOT_ID", "TRIGGER_KEYWORD"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    database.init_db()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        global_rate_limit_per_second=1000,
        pop_timeout_seconds=1,
        disconnected_poll_seconds=0.01,
        paused_poll_seconds=0.01,
        requeue_delay_seconds=0.01,
        ingest_error_backoff_seconds=0.01,
        dispatch_error_backoff_seconds=0.01,
        ticket_code_prefix="TKT",
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def queue(fake_redis) -> RedisQueue:
    return RedisQueue(client=fake_redis)


@pytest.fixture
def transport():
    stub = StubTransport()
    yield stub
    stub.close()


@pytest.fixture
def ticket_service(settings) -> TicketService:
    return TicketService(code_prefix=settings.ticket_code_prefix)


@pytest.fixture
def ingestion_worker(queue, ticket_service, settings) -> IngestionWorker:
    return IngestionWorker(queue, ticket_service, settings)


@pytest.fixture
def dispatch_worker(queue, transport, settings) -> DispatchWorker:
    return DispatchWorker(queue, transport, settings)


@pytest.fixture
def listener_service(queue, settings) -> ListenerService:
    return ListenerService(queue, settings)


@pytest.fixture
def control_service(queue, ticket_service, transport) -> ControlService:
    return ControlService(queue, ticket_service, transport.connection)


@pytest.fixture
def outgoing(fake_redis):
    """Decoded view of queue:outgoing, oldest first."""

    def _read():
        return [json.loads(raw) for raw in reversed(fake_redis.lists.get(constants.OUTGOING_QUEUE, []))]

    return _read


@pytest.fixture
def api_client(settings, ticket_service, control_service, listener_service, transport):
    app = api_main.app

    overrides = {
        api_main.get_app_settings: lambda: settings,
        api_main.get_ticket_service: lambda: ticket_service,
        api_main.get_control_service: lambda: control_service,
        api_main.get_listener_service: lambda: listener_service,
        api_main.get_transport: lambda: transport,
    }

    original_overrides = app.dependency_overrides.copy()
    original_lifespan = app.router.lifespan_context

    @asynccontextmanager
    async def noop_lifespan(_app):
        yield

    app.router.lifespan_context = noop_lifespan
    app.dependency_overrides.update(overrides)

    with TestClient(app) as client:
        yield client

    app.dependency_overrides = original_overrides
    app.router.lifespan_context = original_lifespan
