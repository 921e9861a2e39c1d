"""
Unit tests for the SQLite reflection store.

Tests chapter/transcript persistence, reflection-point replacement,
transaction rollback and learning-memory read-modify-write.
"""

import threading

import pytest

from src.errors import NotFound
from src.models.reflection_point import Chapter, ReflectionPoint
from src.models.transcript import TranscriptSegment
from src.utils.store import ReflectionStore


def _points(chapter_id, *times):
    return [ReflectionPoint(chapter_id=chapter_id, time_seconds=t, topic=f"Topic at {t}") for t in times]


class TestLifecycle:
    def test_context_manager(self, tmp_path):
        path = tmp_path / "nested" / "reflection.db"
        with ReflectionStore(path) as store:
            assert store.is_open
            store.upsert_chapter(Chapter(id="ch-1", title="Intro"))
        assert not store.is_open
        assert path.exists()

        with ReflectionStore(path) as reopened:
            assert reopened.get_chapter("ch-1").title == "Intro"

    def test_closed_store_raises(self):
        store = ReflectionStore()
        with pytest.raises(RuntimeError):
            store.get_chapter("ch-1")


class TestChapters:
    def test_upsert_and_get(self, store, sample_segments):
        store.upsert_chapter(Chapter(id="ch-1", title="Cells", video_url="https://youtu.be/x", transcript=sample_segments))

        chapter = store.get_chapter("ch-1")
        assert chapter.title == "Cells"
        assert chapter.transcript == sample_segments
        assert chapter.has_transcript
        assert not chapter.transcript_pending

        store.upsert_chapter(Chapter(id="ch-1", title="Cells v2"))
        assert store.get_chapter("ch-1").title == "Cells v2"

    def test_missing_chapter(self, store):
        assert store.get_chapter("nope") is None
        with pytest.raises(NotFound):
            store.require_chapter("nope")

    def test_transcript_job_markers(self, store):
        store.upsert_chapter(Chapter(id="ch-1", video_url="https://cdn.example/a.mp4"))
        store.set_transcript_job("ch-1", "deepgram", "req-1")

        chapter = store.get_chapter("ch-1")
        assert chapter.transcript_pending
        assert chapter.transcript_job_provider == "deepgram"

        store.save_transcript("ch-1", [TranscriptSegment(0.0, "Hello")])
        chapter = store.get_chapter("ch-1")
        assert not chapter.transcript_pending
        assert chapter.transcript == [TranscriptSegment(0.0, "Hello")]

    def test_save_transcript_replaces(self, store, sample_segments):
        store.upsert_chapter(Chapter(id="ch-1", transcript=sample_segments))
        store.save_transcript("ch-1", [TranscriptSegment(1.0, "Only")])
        assert store.get_chapter("ch-1").transcript == [TranscriptSegment(1.0, "Only")]

    def test_update_missing_chapter(self, store):
        with pytest.raises(NotFound):
            store.clear_transcript_job("ghost")


class TestReflectionPoints:
    def test_regenerating_twice_keeps_second_batch(self, store):
        store.upsert_chapter(Chapter(id="ch-1"))
        store.replace_reflection_points("ch-1", _points("ch-1", 10, 20, 30))
        second = _points("ch-1", 200, 100)
        store.replace_reflection_points("ch-1", second)

        stored = store.list_reflection_points("ch-1")
        assert [p.time_seconds for p in stored] == [100, 200]
        assert {p.id for p in stored} == {p.id for p in second}

    def test_other_chapters_untouched(self, store):
        store.replace_reflection_points("ch-1", _points("ch-1", 10))
        store.replace_reflection_points("ch-2", _points("ch-2", 20))
        store.replace_reflection_points("ch-1", [])

        assert store.list_reflection_points("ch-1") == []
        assert len(store.list_reflection_points("ch-2")) == 1

    def test_failed_insert_rolls_back_delete(self, store):
        first = _points("ch-1", 10, 20)
        store.replace_reflection_points("ch-1", first)

        duplicate = _points("ch-1", 30)
        duplicate.append(ReflectionPoint(chapter_id="ch-1", time_seconds=40, topic="dup", id=duplicate[0].id))
        with pytest.raises(Exception):
            store.replace_reflection_points("ch-1", duplicate)

        assert [p.id for p in store.list_reflection_points("ch-1")] == [p.id for p in first]

    def test_add_point_sorted(self, store):
        store.replace_reflection_points("ch-1", _points("ch-1", 50))
        store.add_reflection_point(ReflectionPoint(chapter_id="ch-1", time_seconds=5, topic="Early"))
        assert [p.topic for p in store.list_reflection_points("ch-1")] == ["Early", "Topic at 50"]


class TestLearningMemory:
    def test_get_memory_has_no_side_effect(self, store):
        assert store.get_memory("s1") is None
        assert store.get_memory("s1") is None

    def test_get_or_create(self, store):
        created = store.get_or_create_memory("s1")
        assert created.total_attempts == 0
        assert store.get_memory("s1") is not None

    def test_update_memory_persists(self, store):
        store.update_memory("s1", lambda m: m.record_attempt("Cells", False))
        store.update_memory("s1", lambda m: m.record_attempt("Cells", True))

        memory = store.get_memory("s1")
        assert memory.total_attempts == 2
        assert memory.strength_topics == ["Cells"]
        assert memory.weak_topics == []

    def test_failed_mutation_is_rolled_back(self, store):
        store.update_memory("s1", lambda m: m.record_attempt("Cells", True))

        def explode(memory):
            memory.record_attempt("Cells", False)
            raise ValueError("boom")

        with pytest.raises(ValueError):
            store.update_memory("s1", explode)
        assert store.get_memory("s1").total_attempts == 1

    def test_concurrent_updates_are_serialized(self, store):
        def work():
            for _ in range(20):
                store.update_memory("s1", lambda m: m.record_attempt("Loops", True))

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        memory = store.get_memory("s1")
        assert memory.total_attempts == 80
        assert memory.correct_attempts == 80
