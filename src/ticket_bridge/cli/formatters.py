from __future__ import annotations

from typing import Any, Dict, List, Sequence

TICKET_COLUMNS = (("code", 18), ("status", 8), ("counterparty_name", 20), ("subject", 48))


def ticket_table(tickets: List[Dict[str, Any]], columns: Sequence[tuple] = TICKET_COLUMNS) -> str:
    """Render ticket dictionaries as a fixed-width listing."""
    if not tickets:
        return "No tickets"

    widths = []
    for name, cap in columns:
        longest = max([len(name)] + [len(str(row.get(name) or "")) for row in tickets])
        widths.append(min(longest, cap))

    def _line(values: Sequence[str]) -> str:
        return "  ".join(value[:width].ljust(width) for value, width in zip(values, widths)).rstrip()

    lines = [_line([name.upper() for name, _ in columns]), _line(["-" * width for width in widths])]
    for row in tickets:
        lines.append(_line([str(row.get(name) or "") for name, _ in columns]))
    return "\n".join(lines)
