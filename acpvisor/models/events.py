"""Events pushed to the UI boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class UiEventType(str, Enum):
    CHAT_MESSAGE = "chat_message"
    STATUS_UPDATE = "status_update"
    ERROR = "error"


@dataclass(frozen=True)
class UiEvent:
    """A single push event for the UI, always tied to a session."""

    type: UiEventType
    session_id: str
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def chat(cls, session_id: str, content: str) -> UiEvent:
        return cls(type=UiEventType.CHAT_MESSAGE, session_id=session_id, content=content)

    @classmethod
    def status(cls, session_id: str, content: str) -> UiEvent:
        return cls(type=UiEventType.STATUS_UPDATE, session_id=session_id, content=content)

    @classmethod
    def error(cls, session_id: str, content: str) -> UiEvent:
        return cls(type=UiEventType.ERROR, session_id=session_id, content=content)

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "content": self.content,
        }
