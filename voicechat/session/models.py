from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .title import DEFAULT_TITLE


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class MessageRecord:
    text: str
    sender: Sender


@dataclass(slots=True)
class SessionRecord:
    id: str
    title: str = DEFAULT_TITLE
    messages: list[MessageRecord] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    """One prompt turn as sent to the generation service."""

    role: str
    text: str
