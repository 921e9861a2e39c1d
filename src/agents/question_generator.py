"""
Question Generator - reflection questions for video checkpoints.

Produces:
- One open-ended question (with a reference answer) for a topic and/or a
  transcript excerpt, personalized by the student's learning memory
- A batch of multiple-choice questions over the transcript watched so far

Single-question generation never fails: when every model is unavailable a
fixed question about the topic is returned and marked as fallback-sourced.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from langchain_core.prompts import PromptTemplate

try:
    from ..config import config
    from ..errors import InvalidInput, UpstreamUnavailable
    from ..models.learning_memory import LearningMemory, format_memory_for_prompt
    from ..utils.llm_client import FALLBACK_SOURCE, ModelChain
    from ..utils.validation import is_valid_payload
except ImportError:
    from src.config import config
    from src.errors import InvalidInput, UpstreamUnavailable
    from src.models.learning_memory import LearningMemory, format_memory_for_prompt
    from src.utils.llm_client import FALLBACK_SOURCE, ModelChain
    from src.utils.validation import is_valid_payload

logger = logging.getLogger(__name__)

GENERIC_SUBJECT = "this section of the video"
GENERIC_REFERENCE_ANSWER = (
    "A strong answer names the main ideas from this part of the video and explains "
    "them in the student's own words, ideally with an example."
)


def fallback_question_text(topic: Optional[str]) -> str:
    subject = (topic or "").strip() or GENERIC_SUBJECT
    return (
        f"What key concepts did you learn about {subject}? "
        "How would you explain them to someone else?"
    )


@dataclass
class QuizQuestion:
    """
    A question shown at a reflection point.

    Exactly one shape:
    - open-ended: ``reference_answer`` set, no options
    - multiple-choice: ``options`` (4) and ``correct_index`` set, no reference answer
    """

    question: str
    reference_answer: Optional[str] = None
    options: Optional[List[str]] = None
    correct_index: Optional[int] = None
    id: Optional[str] = None

    @property
    def is_multiple_choice(self) -> bool:
        return self.options is not None

    def validate(self) -> "QuizQuestion":
        """
        Raises:
            InvalidInput: If the question is blank or not exactly one shape
        """
        if not isinstance(self.question, str) or not self.question.strip():
            raise InvalidInput("question text is required")

        open_ended = self.reference_answer is not None
        multiple_choice = self.options is not None or self.correct_index is not None
        if open_ended == multiple_choice:
            raise InvalidInput(
                "question must be either open-ended (referenceAnswer) or multiple-choice (options + correctIndex)"
            )
        if multiple_choice:
            if not isinstance(self.options, list) or len(self.options) != 4:
                raise InvalidInput("multiple-choice questions need exactly 4 options")
            if (
                isinstance(self.correct_index, bool)
                or not isinstance(self.correct_index, int)
                or not 0 <= self.correct_index <= 3
            ):
                raise InvalidInput("correctIndex must be an integer in 0..3")
        return self

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"question": self.question}
        if self.id is not None:
            data["id"] = self.id
        if self.is_multiple_choice:
            data["options"] = list(self.options)
            data["correctIndex"] = self.correct_index
        else:
            data["referenceAnswer"] = self.reference_answer
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "QuizQuestion":
        """Build and validate from the camelCase wire form."""
        if not isinstance(data, dict):
            raise InvalidInput("question must be an object")
        return cls(
            question=data.get("question"),
            reference_answer=data.get("referenceAnswer"),
            options=data.get("options"),
            correct_index=data.get("correctIndex"),
            id=data.get("id"),
        ).validate()


@dataclass
class GeneratedQuestion:
    """Result of single-question generation."""

    question: QuizQuestion
    topic: Optional[str]
    model_used: str
    degraded: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "question": self.question.question,
            "referenceAnswer": self.question.reference_answer,
            "topic": self.topic,
            "modelUsed": self.model_used,
            "degraded": self.degraded,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


class QuestionGenerator:
    """
    Generates reflection questions with model escalation.

    Single questions try the default model then the fallback model; batches
    use the default model only.
    """

    def __init__(
        self,
        chain: Optional[ModelChain] = None,
        batch_chain: Optional[ModelChain] = None,
    ):
        self.chain = chain or ModelChain(
            [config.model.default_model, config.model.fallback_model],
            temperature=config.model.question_temperature,
            max_tokens=config.model.question_max_tokens,
        )
        self.batch_chain = batch_chain or ModelChain(
            [config.model.default_model],
            temperature=config.model.batch_temperature,
            max_tokens=config.model.batch_max_tokens,
        )

        self.question_prompt = PromptTemplate(
            input_variables=["learner_profile"],
            template="""You are an expert educational assistant. Generate one thoughtful, open-ended reflection question that tests understanding of what the student just watched. The question should be clear, concise, and encourage critical thinking. Avoid yes/no questions.

Adapt difficulty and wording to this learner:
{learner_profile}

Return ONLY a JSON object:
{{"question": "the question", "referenceAnswer": "a short model answer (2-3 sentences)"}}""",
        )

        self.batch_prompt = PromptTemplate(
            input_variables=["count"],
            template="""You are an expert educational assistant. Given a video transcript, generate {count} distinct multiple-choice questions that test understanding of the key concepts covered in the transcript.

Return ONLY a valid JSON object with a single key "questions" containing an array of objects.
Each object must have:
- "id": string (unique id)
- "question": string (the question text)
- "options": array of 4 strings (1 correct, 3 distractors)
- "correctIndex": number (0-3)

The questions should cover different parts or concepts if possible. Be concise.""",
        )

    # ==================== Single Question ====================

    def generate(
        self,
        topic: Optional[str] = None,
        transcript_text: Optional[str] = None,
        memory: Optional[LearningMemory] = None,
    ) -> GeneratedQuestion:
        """
        Generate one open-ended reflection question.

        Args:
            topic: Topic of the reflection point
            transcript_text: Transcript watched so far
            memory: Student learning memory for personalization

        Returns:
            GeneratedQuestion; fallback-sourced when every model failed

        Raises:
            InvalidInput: If neither topic nor transcript is given
        """
        topic = topic.strip() if isinstance(topic, str) else None
        transcript_text = transcript_text.strip() if isinstance(transcript_text, str) else None
        if not topic and not transcript_text:
            raise InvalidInput("Topic or transcript text is required")

        parts = []
        if topic:
            parts.append(f"Topic: {topic}")
        if transcript_text:
            excerpt = transcript_text[: config.generation.question_transcript_chars]
            parts.append(f"Transcript excerpt:\n{excerpt}")
        parts.append("Generate a reflection question about this content.")

        messages = [
            {
                "role": "system",
                "content": self.question_prompt.format(learner_profile=format_memory_for_prompt(memory)),
            },
            {"role": "user", "content": "\n\n".join(parts)},
        ]

        outcome = self.chain.run(messages, schema="generated_question")
        if outcome.degraded:
            logger.error("Question generation fell back to the fixed question: %s", outcome.reason)
            return GeneratedQuestion(
                question=QuizQuestion(
                    question=fallback_question_text(topic),
                    reference_answer=GENERIC_REFERENCE_ANSWER,
                ),
                topic=topic,
                model_used=FALLBACK_SOURCE,
                degraded=True,
                reason=outcome.reason,
            )

        payload = outcome.payload
        reference = payload.get("referenceAnswer")
        if not isinstance(reference, str) or not reference.strip():
            reference = GENERIC_REFERENCE_ANSWER

        return GeneratedQuestion(
            question=QuizQuestion(question=payload["question"].strip(), reference_answer=reference.strip()),
            topic=topic,
            model_used=outcome.model_used,
        )

    # ==================== Multiple-Choice Batch ====================

    def generate_batch(self, transcript_text: Optional[str], count: Any = None) -> List[QuizQuestion]:
        """
        Generate a batch of multiple-choice questions.

        Args:
            transcript_text: Transcript watched so far (required)
            count: Number of questions, clamped to 1..10 (default 3)

        Returns:
            Valid questions only; [] on any upstream or parse failure

        Raises:
            InvalidInput: If transcript text is missing
        """
        if not isinstance(transcript_text, str) or not transcript_text.strip():
            raise InvalidInput("Transcript required")
        count = self._clamp_count(count)

        messages = [
            {"role": "system", "content": self.batch_prompt.format(count=count)},
            {
                "role": "user",
                "content": (
                    "Transcript (content watched so far):\n\n"
                    f"{transcript_text[: config.generation.batch_transcript_chars]}\n\n"
                    f"Generate {count} quiz questions."
                ),
            },
        ]
        try:
            payload = self.batch_chain.run_single(messages, schema="question_batch")
        except UpstreamUnavailable as e:
            logger.error("Batch quiz generation failed: %s", e.message)
            return []

        questions = []
        for item in payload["questions"]:
            if not is_valid_payload("mcq_question", item) or not item["question"].strip():
                logger.warning("Dropping malformed multiple-choice item: %r", item)
                continue
            questions.append(
                QuizQuestion(
                    question=item["question"].strip(),
                    options=list(item["options"]),
                    correct_index=item["correctIndex"],
                    id=str(item.get("id") or f"q-{uuid.uuid4().hex[:8]}"),
                )
            )
        return questions

    @staticmethod
    def _clamp_count(count: Any) -> int:
        if count is None:
            return config.generation.batch_default_count
        if isinstance(count, bool) or not isinstance(count, (int, float)):
            raise InvalidInput("count must be a number")
        return max(1, min(int(count), config.generation.batch_max_count))
