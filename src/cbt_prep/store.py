"""Client-local persistent store: question batches, AI responses, flashcards, sessions.

Reads return None (or an empty list) on a miss and raise StorageError when the
underlying transaction fails, so callers can tell a miss from a broken store.
"""
import json
import logging
import sqlite3
import time

from cbt_prep.config import DEFAULT_STORE_PATH
from cbt_prep.db import init_store
from cbt_prep.errors import StorageError
from cbt_prep.models import CachedBatch, Flashcard, Question, SessionRecord
from cbt_prep.resources import SingleFlight

logger = logging.getLogger(__name__)

AI_CACHE_MAX_AGE = 7 * 24 * 60 * 60
HISTORY_LIMIT = 50
MAIN_CONVERSATION = "main_conversation"
CURRENT_SETTINGS = "current_settings"
DEFAULT_AI_SETTINGS = {"provider": "gemini", "model": "gemini-1.5-flash"}


class LocalStore:
    def __init__(self, path: str = DEFAULT_STORE_PATH):
        self.path = path
        self._conn = SingleFlight(self._open, name=f"local store {path}")

    async def _open(self) -> sqlite3.Connection:
        try:
            return init_store(self.path)
        except sqlite3.Error as e:
            raise StorageError(f"cannot open local store {self.path}: {e}") from e

    async def connection(self) -> sqlite3.Connection:
        return await self._conn.get()

    async def _read(self, sql: str, params: tuple = ()) -> list:
        conn = await self.connection()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"read failed: {e}") from e

    async def _write(self, sql: str, params: tuple = ()) -> None:
        conn = await self.connection()
        try:
            with conn:
                conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"write failed: {e}") from e

    async def close(self) -> None:
        if self._conn.ready:
            conn = await self._conn.get()
            conn.close()
            self._conn.reset()

    # question batches

    async def get_batch(self, key: str) -> CachedBatch | None:
        rows = await self._read("SELECT * FROM question_cache WHERE cache_key = ?", (key,))
        if not rows:
            return None
        return _row_to_batch(rows[0])

    async def put_batch(self, batch: CachedBatch) -> None:
        """Replace the batch stored under its key."""
        payload = json.dumps([q.to_dict() for q in batch.questions])
        await self._write(
            "INSERT OR REPLACE INTO question_cache (cache_key, subject, year, topic, questions, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (batch.cache_key, batch.subject, batch.year, batch.topic, payload, batch.timestamp),
        )

    async def all_batches(self) -> list[CachedBatch]:
        rows = await self._read("SELECT * FROM question_cache")
        return [_row_to_batch(r) for r in rows]

    async def batches_for_subject(self, subject: str) -> list[CachedBatch]:
        rows = await self._read("SELECT * FROM question_cache WHERE subject = ?", (subject,))
        return [_row_to_batch(r) for r in rows]

    # AI responses, history and provider settings

    async def get_ai_response(self, key: str, max_age: float = AI_CACHE_MAX_AGE, now: float = None) -> str | None:
        rows = await self._read("SELECT response, timestamp FROM ai_cache WHERE cache_key = ?", (key,))
        if not rows:
            return None
        now = time.time() if now is None else now
        if now - rows[0]["timestamp"] >= max_age:
            return None
        return rows[0]["response"]

    async def put_ai_response(self, key: str, response: str, now: float = None) -> None:
        await self._write(
            "INSERT OR REPLACE INTO ai_cache (cache_key, response, timestamp) VALUES (?, ?, ?)",
            (key, response, time.time() if now is None else now),
        )

    async def load_history(self) -> list[dict]:
        rows = await self._read("SELECT history FROM ai_history WHERE id = ?", (MAIN_CONVERSATION,))
        if not rows:
            return []
        return _decode(rows[0]["history"], "conversation history")

    async def save_history(self, history: list[dict]) -> None:
        await self._write(
            "INSERT OR REPLACE INTO ai_history (id, history, timestamp) VALUES (?, ?, ?)",
            (MAIN_CONVERSATION, json.dumps(history[-HISTORY_LIMIT:]), time.time()),
        )

    async def clear_history(self) -> None:
        await self._write("DELETE FROM ai_history WHERE id = ?", (MAIN_CONVERSATION,))

    async def get_ai_settings(self) -> dict:
        rows = await self._read("SELECT provider, model FROM ai_settings WHERE id = ?", (CURRENT_SETTINGS,))
        if not rows:
            return dict(DEFAULT_AI_SETTINGS)
        return {"provider": rows[0]["provider"], "model": rows[0]["model"]}

    async def save_ai_settings(self, provider: str, model: str) -> None:
        await self._write(
            "INSERT OR REPLACE INTO ai_settings (id, provider, model, updated_at) VALUES (?, ?, ?, ?)",
            (CURRENT_SETTINGS, provider, model, time.time()),
        )

    # flashcards

    async def put_flashcard(self, card: Flashcard) -> None:
        await self._write(
            "INSERT OR REPLACE INTO flashcards (id, subject, topic, created_at, data) VALUES (?, ?, ?, ?, ?)",
            (card.id, card.subject, card.topic, card.created_at, json.dumps(card.to_dict())),
        )

    async def get_flashcard(self, card_id: str) -> Flashcard | None:
        rows = await self._read("SELECT data FROM flashcards WHERE id = ?", (card_id,))
        if not rows:
            return None
        return Flashcard.from_dict(_decode(rows[0]["data"], "flashcard"))

    async def get_flashcards(self, subject: str = None, topic: str = None) -> list[Flashcard]:
        sql = "SELECT data FROM flashcards"
        clauses, params = [], []
        if subject:
            clauses.append("subject = ?")
            params.append(subject)
        if topic:
            clauses.append("topic = ?")
            params.append(topic)
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC"
        rows = await self._read(sql, tuple(params))
        return [Flashcard.from_dict(_decode(r["data"], "flashcard")) for r in rows]

    async def delete_flashcard(self, card_id: str) -> None:
        await self._write("DELETE FROM flashcards WHERE id = ?", (card_id,))

    async def count_flashcards(self) -> int:
        rows = await self._read("SELECT COUNT(*) FROM flashcards")
        return rows[0][0]

    # novel analyses and generated content

    async def put_novel(self, novel: dict) -> None:
        await self._write("INSERT OR REPLACE INTO novels (id, data) VALUES (?, ?)", (novel["id"], json.dumps(novel)))

    async def get_novel(self, novel_id: str) -> dict | None:
        rows = await self._read("SELECT data FROM novels WHERE id = ?", (novel_id,))
        return _decode(rows[0]["data"], "novel") if rows else None

    async def all_novels(self) -> list[dict]:
        rows = await self._read("SELECT data FROM novels")
        return [_decode(r["data"], "novel") for r in rows]

    async def put_generated(self, content_id: str, content) -> None:
        await self._write(
            "INSERT OR REPLACE INTO generated_content (id, content, timestamp) VALUES (?, ?, ?)",
            (content_id, json.dumps(content), time.time()),
        )

    async def get_generated(self, content_id: str):
        rows = await self._read("SELECT content FROM generated_content WHERE id = ?", (content_id,))
        return _decode(rows[0]["content"], "generated content") if rows else None

    # saved sessions

    async def put_session(self, record: SessionRecord) -> None:
        await self._write(
            "INSERT OR REPLACE INTO saved_sessions (id, timestamp, data) VALUES (?, ?, ?)",
            (record.id, record.timestamp, json.dumps(record.to_dict())),
        )

    async def get_sessions(self) -> list[SessionRecord]:
        rows = await self._read("SELECT data FROM saved_sessions ORDER BY timestamp DESC")
        return [SessionRecord.from_dict(_decode(r["data"], "session")) for r in rows]

    async def delete_session(self, session_id: str) -> None:
        await self._write("DELETE FROM saved_sessions WHERE id = ?", (session_id,))

    async def clear_sessions(self) -> None:
        await self._write("DELETE FROM saved_sessions")

    async def cache_stats(self) -> dict:
        batches = await self.all_batches()
        subjects, years = [], []
        for b in batches:
            if b.subject and b.subject not in subjects:
                subjects.append(b.subject)
            if b.year and b.year not in years:
                years.append(b.year)
        return {
            "questions": sum(len(b.questions) for b in batches),
            "flashcards": await self.count_flashcards(),
            "subjects": subjects,
            "years": years,
        }


def _row_to_batch(row) -> CachedBatch:
    return CachedBatch(
        cache_key=row["cache_key"],
        subject=row["subject"],
        questions=[Question.from_dict(q) for q in _decode(row["questions"], f"batch {row['cache_key']}")],
        timestamp=row["timestamp"],
        year=row["year"],
        topic=row["topic"],
    )


def _decode(payload: str, what: str):
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as e:
        raise StorageError(f"corrupt {what} record: {e}") from e
