"""Background thread management for the ingestion and dispatch loops."""

from __future__ import annotations

import logging
import threading
from typing import List, Optional

from ticket_bridge.services.dispatch_service import DispatchWorker
from ticket_bridge.services.ingestion_service import IngestionWorker

LOG = logging.getLogger(__name__)


class WorkerService:
    """Runs workers on daemon threads sharing one stop event."""

    def __init__(
        self,
        ingestion: Optional[IngestionWorker] = None,
        dispatch: Optional[DispatchWorker] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.stop_event = stop_event or threading.Event()
        self.workers = [worker for worker in (ingestion, dispatch) if worker is not None]
        for worker in self.workers:
            worker.stop_event = self.stop_event
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            return
        self.stop_event.clear()
        for worker in self.workers:
            thread = threading.Thread(
                target=worker.run_forever,
                name=type(worker).__name__,
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def stop(self, timeout: float = 10.0) -> None:
        self.stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
            if thread.is_alive():
                LOG.warning("%s did not stop within %.0fs", thread.name, timeout)
        self._threads = []

    def join(self) -> None:
        """Block until every worker exits (used by the CLI)."""
        try:
            while any(thread.is_alive() for thread in self._threads):
                for thread in self._threads:
                    thread.join(0.5)
        except KeyboardInterrupt:
            LOG.info("Interrupted; stopping workers")
            self.stop()
