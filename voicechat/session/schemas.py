from __future__ import annotations

from pydantic import BaseModel, Field, TypeAdapter

from .models import MessageRecord, Sender, SessionRecord
from .title import DEFAULT_TITLE


class StoredMessage(BaseModel):
    text: str
    sender: Sender


class StoredSession(BaseModel):
    id: str = Field(min_length=1)
    title: str = DEFAULT_TITLE
    messages: list[StoredMessage] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: SessionRecord) -> "StoredSession":
        return cls(
            id=record.id,
            title=record.title,
            messages=[StoredMessage(text=m.text, sender=m.sender) for m in record.messages],
        )

    def to_record(self) -> SessionRecord:
        return SessionRecord(
            id=self.id,
            title=self.title,
            messages=[MessageRecord(text=m.text, sender=m.sender) for m in self.messages],
        )


SessionCollectionAdapter = TypeAdapter(list[StoredSession])
