"""Chat command detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Command:
    """A directive found in an inbound message."""

    name: str
    argument: Optional[str] = None


CLOSE = "close"
OPEN = "open"


def parse_command(text: str, close_directive: str = "@close", open_directive: str = "@support") -> Optional[Command]:
    """Classify ``text`` as a close or open command, or None for plain chat.

    The close directive must lead the message and is followed by a ticket
    code; the open directive may appear anywhere. Both are case-insensitive.
    """
    stripped = text.strip()
    lowered = stripped.lower()
    close_directive = close_directive.lower()
    if lowered.startswith(close_directive):
        remainder = stripped[len(close_directive):]
        parts = remainder.split() if remainder[:1].isspace() else []
        code = parts[0].upper() if parts else None
        return Command(CLOSE, code)
    if open_directive and open_directive.lower() in lowered:
        return Command(OPEN)
    return None


def summarize_subject(text: str, limit: int) -> str:
    """Bounded-length subject for tickets opened without an explicit command."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
