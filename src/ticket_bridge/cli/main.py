from __future__ import annotations

import json
from typing import Any, Dict, Optional

import click
import httpx
import uvicorn

from ticket_bridge import constants
from ticket_bridge.cli.formatters import ticket_table
from ticket_bridge.clients.database import init_db
from ticket_bridge.clients.queue import QueueError, RedisQueue
from ticket_bridge.models.enums import TicketStatus
from ticket_bridge.services.control_service import ControlService
from ticket_bridge.services.ingestion_service import IngestionWorker
from ticket_bridge.services.ticket_service import TicketService
from ticket_bridge.services.worker_service import WorkerService
from ticket_bridge.settings import get_settings
from ticket_bridge.utils.logging import setup_logging
from ticket_bridge.utils.pathing import ensure_runtime_directories

API_BASE = f"http://{constants.SERVER_HOST}:{constants.SERVER_PORT}"


def _request(method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
    url = f"{API_BASE}{path}"
    headers = {}
    token = get_settings().control_api_token
    if token:
        headers["Authorization"] = f"Bearer {token}"
    with httpx.Client(timeout=60) as client:
        response = client.request(method, url, json=payload, headers=headers)
    if response.status_code >= 400:
        raise click.ClickException(f"API error {response.status_code}: {response.text}")
    if response.content:
        return response.json()
    return None


@click.group(help="Ticket Bridge command-line interface.")
def cli() -> None:
    """Root command for Ticket Bridge."""
    setup_logging(get_settings().log_level)


@cli.command()
def init() -> None:
    """Initialize local directories and the ticket database."""
    ensure_runtime_directories()
    init_db(get_settings().database_url)
    click.echo("Ticket Bridge environment initialized.")


@cli.command()
@click.option("--host", default=constants.SERVER_HOST, show_default=True)
@click.option("--port", default=constants.SERVER_PORT, show_default=True, type=int)
def serve(host: str, port: int) -> None:
    """Run the control API (and the workers when RUN_WORKERS is set)."""
    uvicorn.run("ticket_bridge.api.main:app", host=host, port=port)


@cli.command()
@click.option("--count", default=1, show_default=True, type=click.IntRange(min=1), help="Parallel ingestion workers.")
def worker(count: int) -> None:
    """Run ingestion workers in the foreground.

    Dispatch stays inside the API process, which owns the connection state.
    """
    settings = get_settings()
    init_db(settings.database_url)
    queue = RedisQueue.from_url(settings.redis_url)
    tickets = TicketService(code_prefix=settings.ticket_code_prefix)
    services = [WorkerService(ingestion=IngestionWorker(queue, tickets, settings)) for _ in range(count)]
    for service in services:
        service.start()
    click.echo(f"Started {count} ingestion worker(s); press Ctrl+C to stop.")
    try:
        for service in services:
            service.join()
    finally:
        for service in services:
            service.stop()


@cli.command()
@click.argument("to")
@click.argument("text")
def push(to: str, text: str) -> None:
    """Enqueue an outgoing message directly onto the queue."""
    settings = get_settings()
    queue = RedisQueue.from_url(settings.redis_url)
    try:
        ControlService(queue, TicketService()).enqueue_manual(to, text)
    except QueueError as exc:
        raise click.ClickException(str(exc)) from exc
    finally:
        queue.close()
    click.echo(f"Successfully enqueued job for {to}: \"{text}\"")


@cli.command()
def pause() -> None:
    """Pause outbound dispatch."""
    _request("POST", "/control/pause")
    click.echo("Outbound dispatch paused.")


@cli.command()
def resume() -> None:
    """Resume outbound dispatch."""
    _request("POST", "/control/resume")
    click.echo("Outbound dispatch resumed.")


@cli.command()
def status() -> None:
    """Show queue depths, pause flag and connection state."""
    result = _request("GET", "/control/status")
    click.echo(json.dumps(result, indent=2))


@cli.command()
@click.option(
    "--status",
    "status_filter",
    type=click.Choice([s.value for s in TicketStatus]),
    help="Optional status filter.",
)
def tickets(status_filter: Optional[str]) -> None:
    """List tickets."""
    suffix = f"?status_filter={status_filter}" if status_filter else ""
    result = _request("GET", f"/tickets{suffix}")
    click.echo(ticket_table(result))


@cli.command()
@click.argument("ticket_id")
@click.option("--agent", "agent_name", required=True, help="Agent name shown in the chat.")
@click.option("--message", prompt=True, help="Reply text.")
def reply(ticket_id: str, agent_name: str, message: str) -> None:
    """Reply to a ticket's conversation as an agent."""
    result = _request("POST", f"/tickets/{ticket_id}/reply", {"agent_name": agent_name, "text": message})
    click.echo(json.dumps(result, indent=2))


@cli.command("set-status")
@click.argument("ticket_id")
@click.argument("new_status", type=click.Choice([s.value for s in TicketStatus]))
def set_status(ticket_id: str, new_status: str) -> None:
    """Change a ticket's status and notify its conversation."""
    result = _request("POST", f"/tickets/{ticket_id}/status", {"status": new_status})
    click.echo(json.dumps(result, indent=2))


if __name__ == "__main__":
    cli()
