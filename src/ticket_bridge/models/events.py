"""Transport event payloads posted by the chat gateway."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class InboundEvent(BaseModel):
    """A chat message as observed by the gateway, before filtering."""

    conversation_id: str = Field(min_length=1)
    conversation_name: str = ""
    sender_id: str = ""
    sender_name: str = ""
    text: str = ""
    mentioned_ids: List[str] = Field(default_factory=list)
    attachment_url: Optional[str] = None
    from_me: bool = False


class ConnectionUpdate(BaseModel):
    connection: Literal["connecting", "open", "close"]
    logged_out: bool = False
