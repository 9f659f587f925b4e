"""Transport-neutral chat types."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One line of chat text and where it came from."""

    channel_id: str
    message_id: str
    sender: str
    text: str
