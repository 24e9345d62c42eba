from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import PersistenceError
from .models import SessionRecord
from .schemas import SessionCollectionAdapter, StoredSession

logger = logging.getLogger(__name__)

STORAGE_KEY = "gemini-chat-sessions"

_KV_DDL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _ensure_pragmas(connection: sqlite3.Connection) -> None:
    connection.execute("PRAGMA journal_mode = WAL;")


class SQLiteSessionStore:
    """Key-value store holding the whole session collection as one JSON blob."""

    def __init__(self, db_path: str, *, key: str = STORAGE_KEY) -> None:
        path = Path(db_path)
        if not path.is_absolute():
            path = Path.cwd() / path
        if path.suffix != ".db":
            path = path.with_suffix(".db")
        self._db_path = str(path)
        self._key = key

    @property
    def db_path(self) -> str:
        return self._db_path

    def init(self) -> None:
        """Initialise database schema."""
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(self._db_path) as connection:
            _ensure_pragmas(connection)
            connection.execute(_KV_DDL)
            connection.commit()
        logger.info("Session store initialised at %s", self._db_path)

    def load(self) -> list[SessionRecord]:
        """Return the stored collection, or an empty list when nothing usable is stored."""
        row = self._fetchone("SELECT value FROM kv_store WHERE key = ?", (self._key,))
        if row is None:
            return []
        try:
            return decode_sessions(row["value"])
        except PersistenceError as exc:
            logger.warning("Discarding unreadable session data under %s: %s", self._key, exc)
            return []

    def save(self, sessions: Iterable[SessionRecord]) -> None:
        self._execute(
            "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)"
            " ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
            (self._key, encode_sessions(sessions), _utc_now_str()),
        )

    def _execute(self, query: str, params: tuple = ()) -> None:
        with sqlite3.connect(self._db_path) as connection:
            _ensure_pragmas(connection)
            connection.execute(query, params)
            connection.commit()

    def _fetchone(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with sqlite3.connect(self._db_path) as connection:
            connection.row_factory = sqlite3.Row
            _ensure_pragmas(connection)
            cursor = connection.execute(query, params)
            return cursor.fetchone()


def encode_sessions(sessions: Iterable[SessionRecord]) -> str:
    stored = [StoredSession.from_record(session) for session in sessions]
    return json.dumps(
        SessionCollectionAdapter.dump_python(stored, mode="json"),
        ensure_ascii=False,
    )


def decode_sessions(value: str) -> list[SessionRecord]:
    try:
        stored = SessionCollectionAdapter.validate_json(value)
    except PydanticValidationError as exc:
        raise PersistenceError(f"invalid session collection: {exc.error_count()} error(s)") from exc

    seen: set[str] = set()
    for session in stored:
        if session.id in seen:
            raise PersistenceError(f"duplicate session id {session.id}")
        seen.add(session.id)
    return [session.to_record() for session in stored]


def _utc_now_str() -> str:
    return datetime.utcnow().replace(microsecond=0).isoformat() + "Z"
