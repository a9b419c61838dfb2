"""Role-tagged prompt units sent to a text generator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from telence.message_db import MessageRecord

Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True, slots=True)
class ChatTurn:
    role: Role
    content: str

    def to_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


def turn_from_record(record: MessageRecord) -> ChatTurn:
    """Map a stored message to a turn.

    Bot-authored messages become bare ``assistant`` turns; everything else is
    a ``user`` turn prefixed with the sender's name so the model can tell
    participants apart in group chats.
    """
    if record.from_assistant:
        return ChatTurn(role="assistant", content=record.text)
    return ChatTurn(role="user", content=f"{record.sender_name}: {record.text}")
