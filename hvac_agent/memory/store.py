"""Transcript store abstractions and SQLite implementation."""

from __future__ import annotations

import json
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from hvac_agent.dialogue.slots import SlotState, empty_slots

from .models import ASSISTANT, CallRecord, CallSnapshot, TranscriptLine


class TranscriptStore(ABC):
    """Append-only log of call utterances; the source of truth for call state."""

    @abstractmethod
    def append_line(self, line: TranscriptLine) -> int:
        """Persist a single utterance and return its record id."""

    @abstractmethod
    def fetch_recent_lines(self, call_sid: str, limit: int = 20) -> Sequence[TranscriptLine]:
        """Return the most recent lines of a call in chronological order."""

    @abstractmethod
    def load_snapshot(self, call_sid: str) -> CallSnapshot:
        """Return the lines of a call plus the slot-state recorded on the latest assistant line."""

    @abstractmethod
    def record_call(self, record: CallRecord) -> tuple[int, str]:
        """Persist a call summary row and return (id, created_at)."""

    @abstractmethod
    def iter_calls(self) -> Iterable[str]:
        """Iterate over known call identifiers."""


class SQLiteTranscriptStore(TranscriptStore):
    """SQLite-backed transcript store."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        """Create required tables if they do not exist."""

        with self._connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS calls (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source TEXT,
                    call_sid TEXT,
                    from_number TEXT,
                    to_number TEXT,
                    direction TEXT,
                    status TEXT,
                    transcript TEXT,
                    ai_summary TEXT,
                    meta TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS call_transcripts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    call_sid TEXT,
                    caller_phone TEXT,
                    role TEXT NOT NULL,
                    text TEXT NOT NULL,
                    turn_index INTEGER,
                    meta TEXT,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_call_transcripts_call
                    ON call_transcripts (call_sid, id);
                """
            )

    def append_line(self, line: TranscriptLine) -> int:
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO call_transcripts (call_sid, caller_phone, role, text, turn_index, meta, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    line.call_sid,
                    line.caller_phone,
                    line.role,
                    line.text,
                    line.turn_index,
                    json_dumps(line.metadata),
                    line.created_at.isoformat(),
                ),
            )
            return int(cursor.lastrowid)

    def fetch_recent_lines(self, call_sid: str, limit: int = 20) -> Sequence[TranscriptLine]:
        # Insertion order (id) is the conversation order; timestamps can tie within a turn.
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT call_sid, caller_phone, role, text, turn_index, meta, created_at
                FROM call_transcripts
                WHERE call_sid = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (call_sid, limit),
            ).fetchall()

        lines = [
            TranscriptLine(
                call_sid=row["call_sid"],
                caller_phone=row["caller_phone"],
                role=row["role"],
                text=row["text"],
                turn_index=row["turn_index"],
                metadata=json_loads(row["meta"] or "{}"),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
        lines.reverse()
        return lines

    def load_snapshot(self, call_sid: str) -> CallSnapshot:
        lines = list(self.fetch_recent_lines(call_sid, limit=100))

        slots: SlotState = empty_slots()
        last_question: str | None = None
        for line in reversed(lines):
            if line.role != ASSISTANT:
                continue
            if last_question is None:
                last_question = line.text
            recorded = line.metadata.get("slots")
            if isinstance(recorded, dict):
                slots = recorded  # type: ignore[assignment]
                break

        return CallSnapshot(call_sid=call_sid, lines=lines, slots=slots, last_question=last_question)

    def record_call(self, record: CallRecord) -> tuple[int, str]:
        created_at = datetime.now(timezone.utc).isoformat()
        with self._connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO calls (source, call_sid, from_number, to_number, direction, status,
                                   transcript, ai_summary, meta, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.source,
                    record.call_sid,
                    record.from_number,
                    record.to_number,
                    record.direction,
                    record.status,
                    record.transcript,
                    record.ai_summary,
                    json_dumps(record.meta) if record.meta is not None else None,
                    created_at,
                ),
            )
            return int(cursor.lastrowid), created_at

    def iter_calls(self) -> Iterable[str]:
        with self._connection() as conn:
            rows = conn.execute(
                """
                SELECT call_sid FROM call_transcripts WHERE call_sid IS NOT NULL
                UNION
                SELECT call_sid FROM calls WHERE call_sid IS NOT NULL
                ORDER BY call_sid
                """
            )
            return [row["call_sid"] for row in rows]

    def ping(self) -> bool:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name IN ('calls','call_transcripts')"
            ).fetchone()
            return row is not None


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"), default=str)


def json_loads(value: str) -> dict[str, Any]:
    loaded = json.loads(value)
    return loaded if isinstance(loaded, dict) else {}
