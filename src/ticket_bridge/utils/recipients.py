"""Chat identifier helpers."""

from __future__ import annotations

import re

from ticket_bridge import constants

_NON_DIGITS = re.compile(r"[^0-9]")


def is_group_id(chat_id: str) -> bool:
    return chat_id.endswith(constants.GROUP_SUFFIX)


def normalize_recipient(destination: str) -> str:
    """Group ids pass through; anything else becomes an individual chat id.

    Raises ``ValueError`` when no digits remain.
    """
    if is_group_id(destination):
        return destination
    digits = _NON_DIGITS.sub("", destination)
    if not digits:
        raise ValueError(f"Destination '{destination}' has no phone digits.")
    return f"{digits}{constants.INDIVIDUAL_SUFFIX}"
