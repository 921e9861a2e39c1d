"""
Reflection Engine - request-level operations of the video tutoring loop.

Ties the components together:
1. Transcript acquisition (cached, YouTube fetch, or speech-to-text job + webhook)
2. Reflection point selection and idempotent regeneration
3. Personalized question generation (open-ended and multiple-choice batches)
4. Answer evaluation with learning-memory updates
5. Remediation and the tutor conversation
6. Learning-memory reads and preference updates

Every operation returns a JSON-ready dict and raises ReflectionError
subclasses for caller errors. Network calls never run while the store lock is held.
"""

import logging
from typing import Any, Dict, Optional

from .agents.answer_evaluator import AnswerEvaluator
from .agents.checkpoint_selector import CheckpointSelector
from .agents.question_generator import QuestionGenerator
from .agents.remediation_generator import RemediationGenerator
from .agents.tutor_agent import TutorAgent
from .errors import InvalidInput, NotFound
from .models.learning_memory import LearningMemory, coerce_attempts
from .models.reflection_point import ReflectionPoint
from .models.transcript import (
    AssemblyAIResult,
    DeepgramResult,
    normalize_assemblyai,
    normalize_deepgram,
    segments_to_dicts,
)
from .utils.store import ReflectionStore
from .utils.transcription import (
    ASSEMBLYAI,
    DEEPGRAM,
    STT_PROVIDERS,
    TranscriptionClient,
    is_direct_media_url,
    is_youtube_url,
)

logger = logging.getLogger(__name__)

POINT_MODES = ("random", "semantic")


def _require_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(message)
    return value.strip()


class ReflectionEngine:
    """
    Entry point for every tutoring operation.

    The store handle is opened by the caller (the API lifespan) and passed in;
    agents default to config-driven instances and can be replaced in tests.
    """

    def __init__(
        self,
        store: ReflectionStore,
        selector: Optional[CheckpointSelector] = None,
        question_generator: Optional[QuestionGenerator] = None,
        evaluator: Optional[AnswerEvaluator] = None,
        remediator: Optional[RemediationGenerator] = None,
        tutor: Optional[TutorAgent] = None,
        transcription: Optional[TranscriptionClient] = None,
    ):
        self.store = store
        self.selector = selector or CheckpointSelector()
        self.question_generator = question_generator or QuestionGenerator()
        self.evaluator = evaluator or AnswerEvaluator()
        self.remediator = remediator or RemediationGenerator()
        self.tutor = tutor or TutorAgent()
        self.transcription = transcription or TranscriptionClient()

    # ==================== Transcripts ====================

    def acquire_transcript(self, chapter_id: str) -> Dict[str, Any]:
        """
        Make sure a chapter has a transcript.

        Returns cached segments' count, fetches YouTube captions synchronously,
        or submits a speech-to-text job for direct media and reports ``processing``.

        Raises:
            InvalidInput: chapterId missing or the URL is neither YouTube nor media
            NotFound: Chapter/video missing or no transcript available
            UpstreamUnavailable: Transcription service failure
        """
        chapter_id = _require_text(chapter_id, "chapterId required")
        chapter = self.store.get_chapter(chapter_id)
        if chapter is None or not chapter.video_url:
            raise NotFound("Chapter not found or has no video")

        if chapter.has_transcript:
            return {"ok": True, "segmentsCount": len(chapter.transcript), "fromCache": True}

        if chapter.transcript_pending:
            return {
                "status": "processing",
                "jobId": chapter.transcript_job_id,
                "provider": chapter.transcript_job_provider,
            }

        if is_youtube_url(chapter.video_url):
            segments = self.transcription.fetch_transcript(chapter.video_url)
            if not segments:
                raise NotFound("No transcript found for this video.")
            self.store.save_transcript(chapter_id, segments)
            logger.info("Stored %d transcript segments for chapter %s", len(segments), chapter_id)
            return {"ok": True, "segmentsCount": len(segments), "fromCache": False}

        if is_direct_media_url(chapter.video_url):
            provider, job_id = self.transcription.submit_job(chapter.video_url, chapter_id)
            self.store.set_transcript_job(chapter_id, provider, job_id)
            return {"status": "processing", "jobId": job_id, "provider": provider}

        raise InvalidInput("Video URL is neither a YouTube link nor a direct media file")

    def get_transcript(self, chapter_id: str) -> Dict[str, Any]:
        chapter_id = _require_text(chapter_id, "chapterId required")
        chapter = self.store.require_chapter(chapter_id)
        return {
            "segments": segments_to_dicts(chapter.transcript),
            "fromCache": chapter.has_transcript,
            "processing": chapter.transcript_pending,
        }

    def handle_transcript_webhook(
        self, provider: Optional[str], chapter_id: Optional[str], body: Any
    ) -> Dict[str, Any]:
        """
        Receive a finished speech-to-text job.

        Push providers post the full result; pull providers post an id that is
        fetched here. A provider-reported job error clears the job markers and
        still answers successfully so the provider stops retrying.

        Raises:
            InvalidInput: Unknown provider, missing chapterId or transcript id
            NotFound: Chapter missing
            UpstreamUnavailable: Pull fetch failed
        """
        chapter_id = _require_text(chapter_id, "chapterId required")
        if provider not in STT_PROVIDERS:
            raise InvalidInput(f"provider must be {DEEPGRAM} or {ASSEMBLYAI}")
        self.store.require_chapter(chapter_id)

        if provider == DEEPGRAM:
            results = body.get("results") if isinstance(body, dict) else None
            segments = normalize_deepgram(DeepgramResult(results=results if isinstance(results, dict) else {}))
        else:
            job_id = (body.get("transcript_id") or body.get("id")) if isinstance(body, dict) else None
            if not job_id:
                raise InvalidInput("Missing transcript_id in webhook body")
            transcript = self.transcription.fetch_job(str(job_id))
            if transcript.get("status") == "error":
                logger.error(
                    "Transcription job %s for chapter %s failed: %s",
                    job_id,
                    chapter_id,
                    transcript.get("error"),
                )
                self.store.clear_transcript_job(chapter_id)
                return {"ok": False, "error": "Transcript failed"}
            segments = normalize_assemblyai(AssemblyAIResult(body=transcript))

        if segments:
            self.store.save_transcript(chapter_id, segments)
        else:
            logger.warning("Webhook for chapter %s carried no transcript segments", chapter_id)
            self.store.clear_transcript_job(chapter_id)
        return {"ok": True, "segmentsCount": len(segments)}

    # ==================== Reflection Points ====================

    def generate_reflection_points(self, chapter_id: str, mode: Optional[str] = None) -> Dict[str, Any]:
        """
        Select and persist a chapter's reflection points.

        ``random`` always replaces the stored batch (possibly with an empty one
        for short videos). ``semantic`` only replaces it when the model produced
        points; otherwise the existing points are kept and ``saved`` is False.

        Raises:
            InvalidInput: Unknown mode or chapter without transcript
            NotFound: Chapter missing
        """
        chapter_id = _require_text(chapter_id, "chapterId required")
        mode = mode or "random"
        if mode not in POINT_MODES:
            raise InvalidInput(f"mode must be one of {list(POINT_MODES)}")

        chapter = self.store.require_chapter(chapter_id)
        if not chapter.has_transcript:
            raise InvalidInput("No transcript found. Please generate a transcript first.")

        if mode == "random":
            candidates = self.selector.select_random(chapter.transcript)
        else:
            candidates = self.selector.extract_topics(chapter.transcript, chapter.title)

        saved = mode == "random" or bool(candidates)
        if saved:
            self.store.replace_reflection_points(
                chapter_id,
                [
                    ReflectionPoint(chapter_id=chapter_id, time_seconds=c.time_seconds, topic=c.topic)
                    for c in candidates
                ],
            )
        else:
            logger.warning("No topics extracted for chapter %s; keeping existing points", chapter_id)

        points = self.store.list_reflection_points(chapter_id)
        return {
            "success": True,
            "mode": mode,
            "saved": saved,
            "count": len(points),
            "points": [p.to_dict() for p in points],
        }

    def list_reflection_points(self, chapter_id: str) -> Dict[str, Any]:
        self.store.require_chapter(chapter_id)
        points = self.store.list_reflection_points(chapter_id)
        return {"points": [p.to_dict() for p in points]}

    def add_reflection_point(self, chapter_id: str, time: Any, topic: Any) -> Dict[str, Any]:
        self.store.require_chapter(chapter_id)
        point = self.store.add_reflection_point(ReflectionPoint.from_input(chapter_id, time, topic))
        return {"success": True, "point": point.to_dict()}

    # ==================== Questions ====================

    def _memory_for(self, student_id: Optional[str]) -> Optional[LearningMemory]:
        if not isinstance(student_id, str) or not student_id.strip():
            return None
        return self.store.get_memory(student_id.strip())

    def generate_question(
        self,
        topic: Optional[str] = None,
        transcript_text: Optional[str] = None,
        student_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        result = self.question_generator.generate(
            topic=topic,
            transcript_text=transcript_text,
            memory=self._memory_for(student_id),
        )
        return result.to_dict()

    def generate_question_batch(self, transcript_text: Optional[str], count: Any = None) -> Dict[str, Any]:
        questions = self.question_generator.generate_batch(transcript_text, count)
        return {"questions": [q.to_dict() for q in questions]}

    # ==================== Evaluation & Memory ====================

    def evaluate_answer(
        self,
        question: str,
        answer: str,
        topic: str,
        student_id: str,
        reference_answer: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Grade an answer and, unless grading degraded, record the attempt.

        Raises:
            InvalidInput: Missing required fields
        """
        memory = self._memory_for(student_id)
        result = self.evaluator.evaluate(
            question=question,
            answer=answer,
            topic=topic,
            student_id=student_id,
            memory=memory,
            reference_answer=reference_answer,
        )
        if not result.degraded:
            self.store.update_memory(
                student_id.strip(),
                lambda m: m.record_attempt(topic.strip(), result.correct),
            )
        else:
            logger.warning("Skipping memory update for %s: evaluation degraded", student_id)

        data = result.to_dict()
        data.update({"question": question, "topic": topic})
        return data

    def record_attempt(
        self, student_id: Any, topic: Any, is_correct: Any, attempts: Any = None
    ) -> Dict[str, Any]:
        """
        Record an attempt outcome explicitly.

        Raises:
            InvalidInput: Missing studentId/topic, non-boolean isCorrect or bad attempts
        """
        if (
            not isinstance(student_id, str)
            or not student_id.strip()
            or not isinstance(topic, str)
            or not topic.strip()
            or not isinstance(is_correct, bool)
        ):
            raise InvalidInput("Student ID, topic, and correctness are required")
        attempts = coerce_attempts(attempts)

        memory = self.store.update_memory(
            student_id.strip(),
            lambda m: m.record_attempt(topic.strip(), is_correct, attempts),
        )
        return {
            "success": True,
            "memory": memory.performance_summary(),
            "updated": {"topic": topic.strip(), "isCorrect": is_correct, "attempts": attempts},
        }

    def performance_summary(self, student_id: Any) -> Dict[str, Any]:
        student_id = _require_text(student_id, "Student ID is required")
        memory = self.store.get_memory(student_id) or LearningMemory(student_id)
        return memory.performance_summary()

    def get_learning_memory(self, student_id: Any) -> Dict[str, Any]:
        student_id = _require_text(student_id, "Student ID is required")
        return {"memory": self.store.get_or_create_memory(student_id).to_wire()}

    def update_learning_memory(
        self,
        student_id: Any,
        preferences: Optional[Dict[str, Any]] = None,
        onboarding_answers: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        student_id = _require_text(student_id, "Student ID is required")
        memory = self.store.update_memory(
            student_id,
            lambda m: m.apply_preferences(preferences, onboarding_answers),
        )
        return {"success": True, "memory": memory.to_wire()}

    # ==================== Remediation & Tutor ====================

    def remediate(
        self, transcript_text: Optional[str], failed_question: Any, wrong_answer_index: Any
    ) -> Dict[str, Any]:
        return self.remediator.generate(transcript_text, failed_question, wrong_answer_index).to_dict()

    def chat(self, messages: Any, context: Any) -> Dict[str, Any]:
        return self.tutor.respond(messages, context)
