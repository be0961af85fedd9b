"""Filesystem helpers for Ticket Bridge."""

from __future__ import annotations

from pathlib import Path

from ticket_bridge import constants


def ensure_runtime_directories() -> dict[str, Path]:
    """Create the directory tree required for runtime state."""
    required = {
        "home": constants.HOME_DIR,
        "logs": constants.LOG_DIR,
        "db": constants.DB_DIR,
    }

    for path in required.values():
        path.mkdir(parents=True, exist_ok=True)

    return required
