from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status

from ticket_bridge.clients.database import init_db
from ticket_bridge.clients.queue import QueueError, RedisQueue
from ticket_bridge.models.enums import TicketStatus
from ticket_bridge.models.events import ConnectionUpdate, InboundEvent
from ticket_bridge.models.ticket import (
    Message,
    OutgoingCreateRequest,
    ReplyRequest,
    StatusUpdateRequest,
    Ticket,
    TicketDetail,
)
from ticket_bridge.services.control_service import ControlService, NotificationError
from ticket_bridge.services.dispatch_service import DispatchWorker
from ticket_bridge.services.ingestion_service import IngestionWorker
from ticket_bridge.services.listener_service import ListenerService
from ticket_bridge.services.ticket_service import TicketConflictError, TicketNotFoundError, TicketService
from ticket_bridge.services.worker_service import WorkerService
from ticket_bridge.settings import Settings, get_settings
from ticket_bridge.transport.base import Transport
from ticket_bridge.transport.connection import InvalidTransitionError
from ticket_bridge.transport.gateway import GatewayTransport
from ticket_bridge.utils.logging import setup_logging
from ticket_bridge.utils.pathing import ensure_runtime_directories

LOG = logging.getLogger(__name__)

app = FastAPI(title="Ticket Bridge API", version="0.1.0")


def _require_service(name: str):
    service = getattr(app.state, name, None)
    if service is None:
        raise RuntimeError(f"Service '{name}' not initialised.")
    return service


def get_app_settings() -> Settings:
    return get_settings()


def get_ticket_service() -> TicketService:
    return _require_service("ticket_service")


def get_control_service() -> ControlService:
    return _require_service("control_service")


def get_listener_service() -> ListenerService:
    return _require_service("listener_service")


def get_transport() -> Transport:
    return _require_service("transport")


def require_operator(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Enforce the operator bearer token when one is configured."""
    token = settings.control_api_token
    if not token:
        return
    if authorization != f"Bearer {token}":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid operator credentials.")


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    ensure_runtime_directories()
    init_db(settings.database_url)

    queue = RedisQueue.from_url(settings.redis_url)
    ticket_service = TicketService(code_prefix=settings.ticket_code_prefix)
    transport = GatewayTransport(
        settings.gateway_url,
        timeout=settings.gateway_timeout_seconds,
        reconnect_delay=settings.reconnect_delay_seconds,
    )

    app.state.queue = queue
    app.state.transport = transport
    app.state.ticket_service = ticket_service
    app.state.control_service = ControlService(queue, ticket_service, transport.connection)
    app.state.listener_service = ListenerService(queue, settings)

    worker_service = None
    if settings.run_workers:
        worker_service = WorkerService(
            ingestion=IngestionWorker(queue, ticket_service, settings),
            dispatch=DispatchWorker(queue, transport, settings),
        )
        worker_service.start()
    app.state.worker_service = worker_service


@app.on_event("shutdown")
async def shutdown_event() -> None:
    worker_service = getattr(app.state, "worker_service", None)
    if worker_service is not None:
        worker_service.stop()
    transport = getattr(app.state, "transport", None)
    if transport is not None:
        transport.close()
    queue = getattr(app.state, "queue", None)
    if queue is not None:
        queue.close()


@app.get("/health")
async def health() -> dict[str, str]:
    """Lightweight health probe."""
    return {"status": "ok"}


# Control plane ---------------------------------------------------------------


@app.get("/control/status", dependencies=[Depends(require_operator)])
def control_status(control: ControlService = Depends(get_control_service)) -> dict[str, Any]:
    try:
        return control.status()
    except QueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/control/pause", status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_operator)])
def pause(control: ControlService = Depends(get_control_service)) -> dict[str, bool]:
    try:
        control.pause()
    except QueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"paused": True}


@app.post("/control/resume", status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_operator)])
def resume(control: ControlService = Depends(get_control_service)) -> dict[str, bool]:
    try:
        control.resume()
    except QueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"paused": False}


@app.post("/outgoing", status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_operator)])
def enqueue_outgoing(
    payload: OutgoingCreateRequest,
    control: ControlService = Depends(get_control_service),
) -> dict[str, Any]:
    try:
        job = control.enqueue_manual(payload.to, payload.text)
    except QueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return job.model_dump(exclude_none=True)


# Tickets ---------------------------------------------------------------------


@app.get("/tickets", response_model=List[Ticket], dependencies=[Depends(require_operator)])
def list_tickets(
    status_filter: TicketStatus | None = None,
    tickets: TicketService = Depends(get_ticket_service),
) -> List[Ticket]:
    return tickets.list_tickets(status_filter)


@app.get("/tickets/{ticket_id}", response_model=TicketDetail, dependencies=[Depends(require_operator)])
def get_ticket(
    ticket_id: str,
    tickets: TicketService = Depends(get_ticket_service),
) -> TicketDetail:
    ticket = tickets.get_ticket(ticket_id)
    if not ticket:
        raise HTTPException(status_code=404, detail="Ticket not found.")
    return TicketDetail(ticket=ticket, messages=tickets.list_messages(ticket_id))


@app.post("/tickets/{ticket_id}/reply", response_model=Message, dependencies=[Depends(require_operator)])
def reply_to_ticket(
    ticket_id: str,
    payload: ReplyRequest,
    control: ControlService = Depends(get_control_service),
) -> Message:
    try:
        return control.reply(ticket_id, payload.agent_name, payload.text)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except NotificationError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/tickets/{ticket_id}/status", response_model=Ticket, dependencies=[Depends(require_operator)])
def update_ticket_status(
    ticket_id: str,
    payload: StatusUpdateRequest,
    control: ControlService = Depends(get_control_service),
) -> Ticket:
    try:
        return control.update_status(ticket_id, payload.status)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except NotificationError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


# Gateway callbacks ---------------------------------------------------------------


@app.post("/events/inbound", status_code=status.HTTP_202_ACCEPTED, dependencies=[Depends(require_operator)])
def inbound_event(
    payload: InboundEvent,
    listener: ListenerService = Depends(get_listener_service),
) -> dict[str, bool]:
    try:
        job = listener.handle_event(payload)
    except QueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"enqueued": job is not None}


@app.post("/events/connection", dependencies=[Depends(require_operator)])
def connection_event(
    payload: ConnectionUpdate,
    transport: Transport = Depends(get_transport),
) -> dict[str, str]:
    event = "logged_out" if payload.connection == "close" and payload.logged_out else payload.connection
    try:
        state = transport.connection.apply(event)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return {"state": state.value}
