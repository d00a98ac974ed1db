"""SQLite implementation of the conversation repository."""

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..entities import AgentSettings, ConversationIdentity, MessageRecord, Role
from ..structured_logging import get_logger
from .base import BaseConversationRepository

logger = get_logger("SQLITE_REPOSITORY")

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversation_message (
    student_id INTEGER NOT NULL,
    book_id INTEGER NOT NULL,
    sequence INTEGER NOT NULL,
    role TEXT NOT NULL,
    content TEXT,
    refusal TEXT,
    tool_calls TEXT,
    tool_call_id TEXT,
    created_at TIMESTAMP NOT NULL,
    PRIMARY KEY (student_id, book_id, sequence)
);

CREATE TABLE IF NOT EXISTS agent_setting (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    ai_model TEXT NOT NULL,
    token_budget INTEGER NOT NULL,
    auto_save INTEGER,
    max_tool_rounds INTEGER NOT NULL DEFAULT 8
);
"""


class SQLiteConversationRepository(BaseConversationRepository):
    """Stores conversations and agent settings in a single SQLite database.

    Queries run on a worker thread; a lock keeps the shared connection to
    one statement at a time.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(SCHEMA)
        self._lock = asyncio.Lock()
        logger.debug("Database initialized", db_path=self.db_path)

    async def load_messages(self, identity: ConversationIdentity) -> list[MessageRecord]:
        async with self._lock:
            rows = await asyncio.to_thread(self._select_messages, identity)
        return [self._record_from_row(row) for row in rows]

    async def append_messages(self, identity: ConversationIdentity, records: list[MessageRecord]) -> None:
        if not records:
            return
        async with self._lock:
            await asyncio.to_thread(self._insert_messages, identity, records)
        logger.debug(
            "Messages persisted",
            student_id=identity.student_id,
            book_id=identity.book_id,
            count=len(records),
        )

    async def read_settings(self) -> Optional[AgentSettings]:
        async with self._lock:
            row = await asyncio.to_thread(
                lambda: self._conn.execute(
                    "SELECT ai_model, token_budget, auto_save, max_tool_rounds FROM agent_setting WHERE id = 1"
                ).fetchone()
            )
        if row is None:
            return None
        return AgentSettings(
            ai_model=row["ai_model"],
            token_budget=row["token_budget"],
            auto_save=row["auto_save"],
            max_tool_rounds=row["max_tool_rounds"],
        )

    async def write_settings(self, settings: AgentSettings) -> None:
        async with self._lock:
            await asyncio.to_thread(self._upsert_settings, settings)

    async def close(self) -> None:
        async with self._lock:
            self._conn.close()

    def _select_messages(self, identity: ConversationIdentity) -> list[sqlite3.Row]:
        return self._conn.execute(
            """
            SELECT * FROM conversation_message
            WHERE student_id = ? AND book_id = ?
            ORDER BY sequence
            """,
            (identity.student_id, identity.book_id),
        ).fetchall()

    def _insert_messages(self, identity: ConversationIdentity, records: list[MessageRecord]) -> None:
        with self._conn:
            self._conn.executemany(
                """
                INSERT OR IGNORE INTO conversation_message
                (student_id, book_id, sequence, role, content, refusal, tool_calls, tool_call_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        identity.student_id,
                        identity.book_id,
                        record.sequence,
                        record.role.value,
                        record.content,
                        record.refusal,
                        json.dumps(record.tool_calls) if record.tool_calls is not None else None,
                        record.tool_call_id,
                        record.created_at.isoformat(),
                    )
                    for record in records
                ],
            )

    def _upsert_settings(self, settings: AgentSettings) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO agent_setting (id, ai_model, token_budget, auto_save, max_tool_rounds)
                VALUES (1, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    ai_model = excluded.ai_model,
                    token_budget = excluded.token_budget,
                    auto_save = excluded.auto_save,
                    max_tool_rounds = excluded.max_tool_rounds
                """,
                (settings.ai_model, settings.token_budget, settings.auto_save, settings.max_tool_rounds),
            )

    @staticmethod
    def _record_from_row(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            role=Role(row["role"]),
            content=row["content"],
            refusal=row["refusal"],
            tool_calls=json.loads(row["tool_calls"]) if row["tool_calls"] else None,
            tool_call_id=row["tool_call_id"],
            sequence=row["sequence"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
