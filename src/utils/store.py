"""
Data-access handle for chapters, reflection points and learning memory.

SQLite-backed record store with upsert and delete-then-insert semantics:
- One connection per store, serialized by a lock held only around SQL
- Explicit transactions (autocommit mode, manual BEGIN/COMMIT/ROLLBACK)
- Learning-memory updates are atomic read-modify-write (BEGIN IMMEDIATE)
- Reflection-point regeneration replaces a chapter's batch in one transaction

Usage:
    with ReflectionStore(config.paths.database_path) as store:
        store.upsert_chapter(Chapter(id="ch-1", title="Intro", video_url=url))
        points = store.list_reflection_points("ch-1")
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Generator, Iterable, Optional, Union

try:
    from ..errors import NotFound
    from ..models.learning_memory import LearningMemory
    from ..models.reflection_point import Chapter, ReflectionPoint
    from ..models.transcript import TranscriptSegment, segments_from_dicts, segments_to_dicts
except ImportError:
    from src.errors import NotFound
    from src.models.learning_memory import LearningMemory
    from src.models.reflection_point import Chapter, ReflectionPoint
    from src.models.transcript import TranscriptSegment, segments_from_dicts, segments_to_dicts

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS chapters (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    video_url TEXT,
    transcript_json TEXT NOT NULL DEFAULT '[]',
    transcript_job_id TEXT,
    transcript_job_provider TEXT,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS reflection_points (
    id TEXT PRIMARY KEY,
    chapter_id TEXT NOT NULL,
    time_seconds REAL NOT NULL,
    topic TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_reflection_points_chapter
    ON reflection_points (chapter_id, time_seconds);

CREATE TABLE IF NOT EXISTS learning_memory (
    student_id TEXT PRIMARY KEY,
    data_json TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReflectionStore:
    """Transactional record store handle. Open once at startup, close at shutdown."""

    def __init__(self, database: Union[str, Path] = ":memory:"):
        self.database = str(database)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    # ==================== Lifecycle ====================

    def open(self) -> "ReflectionStore":
        if self._conn is not None:
            return self
        if self.database != ":memory:":
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.database, check_same_thread=False, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.executescript(SCHEMA)
        self._conn = conn
        logger.info("Opened reflection store at %s", self.database)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "ReflectionStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("ReflectionStore is not open")
        return self._conn

    @contextmanager
    def transaction(self, immediate: bool = False) -> Generator[sqlite3.Connection, None, None]:
        """Run statements in one transaction; roll back and re-raise on error."""
        with self._lock:
            conn = self._connection()
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _fetchone(self, sql: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._connection().execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            return self._connection().execute(sql, params).fetchall()

    # ==================== Chapters ====================

    @staticmethod
    def _row_to_chapter(row: sqlite3.Row) -> Chapter:
        return Chapter(
            id=row["id"],
            title=row["title"],
            video_url=row["video_url"],
            transcript=segments_from_dicts(json.loads(row["transcript_json"] or "[]")),
            transcript_job_id=row["transcript_job_id"],
            transcript_job_provider=row["transcript_job_provider"],
        )

    def upsert_chapter(self, chapter: Chapter) -> Chapter:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO chapters (id, title, video_url, transcript_json,
                                      transcript_job_id, transcript_job_provider, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    video_url = excluded.video_url,
                    transcript_json = excluded.transcript_json,
                    transcript_job_id = excluded.transcript_job_id,
                    transcript_job_provider = excluded.transcript_job_provider,
                    updated_at = excluded.updated_at
                """,
                (
                    chapter.id,
                    chapter.title,
                    chapter.video_url,
                    json.dumps(segments_to_dicts(chapter.transcript)),
                    chapter.transcript_job_id,
                    chapter.transcript_job_provider,
                    _utc_now(),
                ),
            )
        return chapter

    def get_chapter(self, chapter_id: str) -> Optional[Chapter]:
        row = self._fetchone("SELECT * FROM chapters WHERE id = ?", (chapter_id,))
        return self._row_to_chapter(row) if row else None

    def require_chapter(self, chapter_id: str) -> Chapter:
        chapter = self.get_chapter(chapter_id)
        if chapter is None:
            raise NotFound("Chapter not found")
        return chapter

    def _update_chapter(self, chapter_id: str, assignments: str, params: tuple) -> None:
        with self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE chapters SET {assignments}, updated_at = ? WHERE id = ?",
                params + (_utc_now(), chapter_id),
            )
            if cursor.rowcount == 0:
                raise NotFound("Chapter not found")

    def save_transcript(self, chapter_id: str, segments: Iterable[TranscriptSegment]) -> None:
        """Replace the chapter transcript (never merged) and clear job markers."""
        self._update_chapter(
            chapter_id,
            "transcript_json = ?, transcript_job_id = NULL, transcript_job_provider = NULL",
            (json.dumps(segments_to_dicts(list(segments))),),
        )

    def set_transcript_job(self, chapter_id: str, provider: str, job_id: str) -> None:
        self._update_chapter(
            chapter_id,
            "transcript_job_id = ?, transcript_job_provider = ?",
            (job_id, provider),
        )

    def clear_transcript_job(self, chapter_id: str) -> None:
        self._update_chapter(
            chapter_id,
            "transcript_job_id = NULL, transcript_job_provider = NULL",
            (),
        )

    # ==================== Reflection Points ====================

    def replace_reflection_points(
        self, chapter_id: str, points: Iterable[ReflectionPoint]
    ) -> list[ReflectionPoint]:
        """Delete every point of the chapter and insert the new batch atomically."""
        batch = list(points)
        now = _utc_now()
        with self.transaction() as conn:
            conn.execute("DELETE FROM reflection_points WHERE chapter_id = ?", (chapter_id,))
            conn.executemany(
                "INSERT INTO reflection_points (id, chapter_id, time_seconds, topic, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                [(p.id, chapter_id, p.time_seconds, p.topic, now) for p in batch],
            )
        logger.info("Replaced reflection points for chapter %s (%d points)", chapter_id, len(batch))
        return sorted(batch, key=lambda p: p.time_seconds)

    def add_reflection_point(self, point: ReflectionPoint) -> ReflectionPoint:
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO reflection_points (id, chapter_id, time_seconds, topic, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (point.id, point.chapter_id, point.time_seconds, point.topic, _utc_now()),
            )
        return point

    def list_reflection_points(self, chapter_id: str) -> list[ReflectionPoint]:
        rows = self._fetchall(
            "SELECT id, chapter_id, time_seconds, topic FROM reflection_points "
            "WHERE chapter_id = ? ORDER BY time_seconds ASC, created_at ASC",
            (chapter_id,),
        )
        return [
            ReflectionPoint(
                id=row["id"],
                chapter_id=row["chapter_id"],
                time_seconds=row["time_seconds"],
                topic=row["topic"],
            )
            for row in rows
        ]

    # ==================== Learning Memory ====================

    @staticmethod
    def _load_memory(conn: sqlite3.Connection, student_id: str) -> Optional[LearningMemory]:
        row = conn.execute(
            "SELECT data_json FROM learning_memory WHERE student_id = ?", (student_id,)
        ).fetchone()
        if row is None:
            return None
        return LearningMemory(student_id, json.loads(row["data_json"]))

    @staticmethod
    def _save_memory(conn: sqlite3.Connection, memory: LearningMemory) -> None:
        conn.execute(
            """
            INSERT INTO learning_memory (student_id, data_json, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(student_id) DO UPDATE SET
                data_json = excluded.data_json,
                updated_at = excluded.updated_at
            """,
            (memory.student_id, json.dumps(memory.to_dict()), _utc_now()),
        )

    def get_memory(self, student_id: str) -> Optional[LearningMemory]:
        """Stored memory or None (no side effect)."""
        with self._lock:
            return self._load_memory(self._connection(), student_id)

    def get_or_create_memory(self, student_id: str) -> LearningMemory:
        """Upsert-on-read: create the default record on first access."""
        with self.transaction(immediate=True) as conn:
            memory = self._load_memory(conn, student_id)
            if memory is None:
                memory = LearningMemory(student_id)
                self._save_memory(conn, memory)
        return memory

    def update_memory(
        self, student_id: str, mutate: Callable[[LearningMemory], None]
    ) -> LearningMemory:
        """
        Atomic read-modify-write of one student's memory.

        ``mutate`` runs inside the transaction and must not do network I/O.
        Concurrent updates for one student are last-write-wins per transaction.
        """
        with self.transaction(immediate=True) as conn:
            memory = self._load_memory(conn, student_id) or LearningMemory(student_id)
            mutate(memory)
            self._save_memory(conn, memory)
        return memory
