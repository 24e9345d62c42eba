from __future__ import annotations

import logging
from typing import Optional, Protocol
from uuid import uuid4

from .models import MessageRecord, Sender, SessionRecord
from .title import derive_title, is_default_title

logger = logging.getLogger(__name__)


class SessionStore(Protocol):
    def load(self) -> list[SessionRecord]: ...

    def save(self, sessions: list[SessionRecord]) -> None: ...


class SessionRepository:
    """In-memory session collection mirrored to a store after every mutation.

    Exactly one session is active whenever the collection is non-empty.
    Titles start as the default and are derived once, from the first user
    message appended to the session.
    """

    def __init__(self, store: SessionStore) -> None:
        self._store = store
        self._sessions: list[SessionRecord] = []
        self._active_id: Optional[str] = None

    def load(self) -> None:
        """Read the stored collection; synthesize a first session when it is empty."""
        self._sessions = self._store.load()
        if self._sessions:
            self._active_id = self._sessions[-1].id
            logger.info("Loaded %d session(s); active session %s", len(self._sessions), self._active_id)
        else:
            self._active_id = None
            self.create()

    @property
    def sessions(self) -> list[SessionRecord]:
        return list(self._sessions)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active(self) -> Optional[SessionRecord]:
        return self.get(self._active_id) if self._active_id else None

    def get(self, session_id: str) -> Optional[SessionRecord]:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def messages(self, session_id: str) -> list[MessageRecord]:
        session = self.get(session_id)
        return list(session.messages) if session else []

    def create(self) -> str:
        session_id = self._new_id()
        self._sessions.append(SessionRecord(id=session_id))
        self._active_id = session_id
        self._persist()
        logger.info("Created session %s", session_id)
        return session_id

    def switch_to(self, session_id: str) -> Optional[list[MessageRecord]]:
        """Make ``session_id`` active and return its log; ``None`` if it does not exist."""
        session = self.get(session_id)
        if session is None:
            logger.debug("Ignoring switch to unknown session %s", session_id)
            return None
        self._active_id = session_id
        return list(session.messages)

    def delete(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None:
            return False
        self._sessions.remove(session)
        logger.info("Deleted session %s", session_id)
        if session_id == self._active_id:
            self._active_id = None
            # create() persists the collection including the removal
            self.create()
        else:
            self._persist()
        return True

    def append(self, session_id: str, message: MessageRecord, *, require_active: bool = False) -> bool:
        """Append to a session's log.

        Returns ``False`` without touching anything when the session no longer
        exists, or when ``require_active`` is set and it is not the active one.
        """
        session = self.get(session_id)
        if session is None:
            logger.debug("Dropping message for deleted session %s", session_id)
            return False
        if require_active and session_id != self._active_id:
            logger.debug("Dropping message for inactive session %s", session_id)
            return False

        session.messages.append(message)
        if message.sender is Sender.USER and is_default_title(session.title):
            session.title = derive_title(message.text)
        self._persist()
        return True

    def _new_id(self) -> str:
        while True:
            candidate = uuid4().hex
            if self.get(candidate) is None:
                return candidate

    def _persist(self) -> None:
        self._store.save(self._sessions)
