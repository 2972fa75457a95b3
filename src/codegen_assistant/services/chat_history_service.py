"""Turn log persistence service.

Stores the conversation of every project as an append-only list of records
in a dedicated SQLite file.  Records are never updated; they are removed
only in bulk, per project.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path

from loguru import logger

from codegen_assistant.domain.models import ChatHistoryRecord, ToolCallRecord

MESSAGE_TYPES = ("user", "ai")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS chat_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL,
    message TEXT NOT NULL,
    message_type TEXT NOT NULL CHECK(message_type IN ('user', 'ai')),
    user_id TEXT,
    tool_calls TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_chat_history_project ON chat_history(project_id, id);
"""


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


def _utcnow() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S")


class ChatHistoryService:
    """Append-only turn log stored in SQLite.

    The autoincrement id is the ordering key: timestamps have one-second
    resolution and cannot order records written within the same second.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Open (or create) the database and ensure the schema exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.executescript(_SCHEMA_SQL)
        self.conn.commit()
        logger.info("Chat history DB ready at {}", self.db_path)

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    # ------------------------------------------------------------------
    # Appending
    # ------------------------------------------------------------------

    def add_chat_message(
        self, project_id: str, message: str, message_type: str, user_id: str | None = None
    ) -> int:
        """Append a plain user or ai record and return its id."""
        if message_type not in MESSAGE_TYPES:
            raise ValueError(f"unknown message type: {message_type}")
        return self._insert(project_id, message, message_type, user_id, None)

    def add_ai_message_with_tool_calls(
        self,
        project_id: str,
        message: str,
        tool_calls: list[ToolCallRecord],
        user_id: str | None = None,
    ) -> int:
        """Append an ai record carrying the turn's tool calls (deduplicated by id)."""
        unique: dict[str, ToolCallRecord] = {}
        for call in tool_calls:
            unique.setdefault(call.id, call)
        payload = json.dumps([c.to_dict() for c in unique.values()], ensure_ascii=False) if unique else None
        return self._insert(project_id, message, "ai", user_id, payload)

    def _insert(
        self,
        project_id: str,
        message: str,
        message_type: str,
        user_id: str | None,
        tool_calls: str | None,
    ) -> int:
        assert self.conn
        with self._lock:
            cursor = self.conn.execute(
                "INSERT INTO chat_history (project_id, message, message_type, user_id, tool_calls, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (project_id, message, message_type, user_id, tool_calls, _utcnow()),
            )
            self.conn.commit()
            record_id = cursor.lastrowid
        logger.debug(
            "Turn log append | project={} | type={} | id={} | chars={}",
            project_id,
            message_type,
            record_id,
            len(message),
        )
        return record_id

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def load_recent(self, project_id: str, limit: int, skip_latest: bool = True) -> list[ChatHistoryRecord]:
        """Return up to *limit* most recent records, oldest first.

        With *skip_latest* the single newest record is left out.
        """
        assert self.conn
        if limit <= 0:
            return []
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM chat_history WHERE project_id = ? ORDER BY id DESC LIMIT ? OFFSET ?",
                (project_id, limit, 1 if skip_latest else 0),
            ).fetchall()
        return [self._row_to_record(row) for row in reversed(rows)]

    def list_history(self, project_id: str, limit: int = 50) -> list[ChatHistoryRecord]:
        """Return the latest records of a project, newest first."""
        assert self.conn
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM chat_history WHERE project_id = ? ORDER BY id DESC LIMIT ?",
                (project_id, limit),
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def count(self, project_id: str) -> int:
        assert self.conn
        with self._lock:
            row = self.conn.execute(
                "SELECT COUNT(*) AS n FROM chat_history WHERE project_id = ?", (project_id,)
            ).fetchone()
        return row["n"]

    # ------------------------------------------------------------------
    # Deleting
    # ------------------------------------------------------------------

    def delete_by_project(self, project_id: str) -> int:
        assert self.conn
        with self._lock:
            cursor = self.conn.execute("DELETE FROM chat_history WHERE project_id = ?", (project_id,))
            self.conn.commit()
        logger.info("Deleted turn log | project={} | records={}", project_id, cursor.rowcount)
        return cursor.rowcount

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ChatHistoryRecord:
        tool_calls = None
        raw = row["tool_calls"]
        if raw:
            try:
                tool_calls = [
                    ToolCallRecord(
                        id=c["id"],
                        name=c["name"],
                        arguments=c.get("arguments") or "{}",
                        executed=c.get("executed", True),
                    )
                    for c in json.loads(raw)
                ]
            except (json.JSONDecodeError, TypeError, KeyError):
                logger.warning("Unreadable tool calls in turn log | id={}", row["id"])
                tool_calls = None
        return ChatHistoryRecord(
            id=row["id"],
            project_id=row["project_id"],
            message=row["message"],
            message_type=row["message_type"],
            user_id=row["user_id"],
            tool_calls=tool_calls,
            created_at=row["created_at"],
        )
