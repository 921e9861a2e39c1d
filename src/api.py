"""
HTTP surface of the Reflective Video Tutoring Engine.

JSON in, JSON out, camelCase fields. Every failure answers ``{"error": message}``
with the status carried by the engine error; anything unexpected is logged and
answered with 500.

Run locally:
    uvicorn src.api:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import config
from .errors import ReflectionError, UpstreamUnavailable
from .orchestrator import ReflectionEngine
from .utils.store import ReflectionStore

logger = logging.getLogger(__name__)


# ==================== Request Bodies ====================


class TranscriptBody(BaseModel):
    chapterId: Optional[str] = None


class PointsGenerateBody(BaseModel):
    chapterId: Optional[str] = None
    mode: Optional[str] = None


class AddPointBody(BaseModel):
    time: Any = None
    topic: Any = None


class GenerateBody(BaseModel):
    topic: Optional[str] = None
    transcriptText: Optional[str] = None
    studentId: Optional[str] = None


class GenerateBatchBody(BaseModel):
    transcriptText: Optional[str] = None
    count: Optional[int] = None


class EvaluateBody(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None
    topic: Optional[str] = None
    studentId: Optional[str] = None
    referenceAnswer: Optional[str] = None


class MemoryUpdateBody(BaseModel):
    studentId: Any = None
    topic: Any = None
    isCorrect: Any = None
    attempts: Any = None


class RemediateBody(BaseModel):
    transcriptText: Optional[str] = None
    failedQuestion: Optional[dict[str, Any]] = None
    wrongAnswerIndex: Any = None


class ChatBody(BaseModel):
    messages: Any = None
    context: Any = None


class LearningMemoryPatchBody(BaseModel):
    preferences: Optional[dict[str, Any]] = None
    onboardingAnswers: Optional[dict[str, Any]] = None


# ==================== Application ====================


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(engine: Optional[ReflectionEngine] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Pre-built engine (tests). When omitted, the lifespan opens the
            configured store and builds a default engine, closing the store on shutdown.
    """

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        logging.basicConfig(level=config.logging.log_level)
        owned_store: Optional[ReflectionStore] = None
        if app.state.engine is None:
            config.prepare_fs()
            for problem in config.validate():
                logger.warning("Config: %s", problem)
            owned_store = ReflectionStore(config.paths.database_path).open()
            app.state.engine = ReflectionEngine(owned_store)
        try:
            yield
        finally:
            if owned_store is not None:
                owned_store.close()
                app.state.engine = None

    app = FastAPI(title="Reflective Video Tutor", version="0.1.0", lifespan=_lifespan)
    app.state.engine = engine

    @app.exception_handler(ReflectionError)
    async def _reflection_error(_: Request, exc: ReflectionError):
        if exc.status_code >= 500:
            logger.error("%s: %s", type(exc).__name__, exc.message)
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return _error(400, f"Invalid request: {details}")

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal Server Error")

    def get_engine(request: Request) -> ReflectionEngine:
        engine = request.app.state.engine
        if engine is None:
            raise UpstreamUnavailable("Engine not initialized")
        return engine

    # ---------- Health ----------

    @app.get("/health")
    def health():
        problems = config.validate()
        return {"status": "ok", "configErrors": problems}

    # ---------- Transcripts ----------

    @app.post("/api/reflection/transcript")
    def acquire_transcript(body: TranscriptBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.acquire_transcript(body.chapterId)

    @app.get("/api/reflection/transcript")
    def read_transcript(chapterId: Optional[str] = None, engine: ReflectionEngine = Depends(get_engine)):
        return engine.get_transcript(chapterId)

    @app.post("/api/reflection/transcript/webhook")
    def transcript_webhook(
        provider: Optional[str] = None,
        chapterId: Optional[str] = None,
        body: Any = Body(default=None),
        engine: ReflectionEngine = Depends(get_engine),
    ):
        result = engine.handle_transcript_webhook(provider, chapterId, body)
        return JSONResponse(status_code=200, content=result)

    # ---------- Reflection points ----------

    @app.post("/api/reflection/points/generate")
    def generate_points(body: PointsGenerateBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.generate_reflection_points(body.chapterId, body.mode)

    @app.get("/api/chapters/{chapterId}/reflection-points")
    def list_points(chapterId: str, engine: ReflectionEngine = Depends(get_engine)):
        return engine.list_reflection_points(chapterId)

    @app.post("/api/chapters/{chapterId}/reflection-points")
    def add_point(chapterId: str, body: AddPointBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.add_reflection_point(chapterId, body.time, body.topic)

    # ---------- Questions & evaluation ----------

    @app.post("/api/reflection/generate")
    def generate_question(body: GenerateBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.generate_question(body.topic, body.transcriptText, body.studentId)

    @app.post("/api/reflection/generate-batch")
    def generate_batch(body: GenerateBatchBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.generate_question_batch(body.transcriptText, body.count)

    @app.post("/api/reflection/evaluate")
    def evaluate(body: EvaluateBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.evaluate_answer(
            question=body.question,
            answer=body.answer,
            topic=body.topic,
            student_id=body.studentId,
            reference_answer=body.referenceAnswer,
        )

    @app.post("/api/reflection/memory-update")
    def memory_update(body: MemoryUpdateBody, engine: ReflectionEngine = Depends(get_engine)):
        return engine.record_attempt(body.studentId, body.topic, body.isCorrect, body.attempts)

    @app.get("/api/reflection/memory-update")
    def memory_summary(studentId: Optional[str] = None, engine: ReflectionEngine = Depends(get_engine)):
        return engine.performance_summary(studentId)

    # ---------- Remediation & tutor ----------

    @app.post("/api/reflection/remediate")
    def remediate(body: RemediateBody, engine: ReflectionEngine = Depends(get_engine)):
        try:
            return engine.remediate(body.transcriptText, body.failedQuestion, body.wrongAnswerIndex)
        except UpstreamUnavailable as e:
            logger.error("Remediation failed: %s", e.message)
            return _error(500, "Failed to generate remediation")

    @app.post("/api/reflection/chat")
    def chat(body: ChatBody, engine: ReflectionEngine = Depends(get_engine)):
        try:
            return engine.chat(body.messages, body.context)
        except UpstreamUnavailable as e:
            logger.error("Chat turn failed: %s", e.message)
            return _error(500, "Failed to process chat request")

    # ---------- Learning memory ----------

    @app.get("/api/users/{studentId}/learning-memory")
    def get_learning_memory(studentId: str, engine: ReflectionEngine = Depends(get_engine)):
        return engine.get_learning_memory(studentId)

    @app.patch("/api/users/{studentId}/learning-memory")
    def patch_learning_memory(
        studentId: str,
        body: LearningMemoryPatchBody,
        engine: ReflectionEngine = Depends(get_engine),
    ):
        return engine.update_learning_memory(studentId, body.preferences, body.onboardingAnswers)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("src.api:app", host="0.0.0.0", port=8000)
