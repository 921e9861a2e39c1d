"""
Answer Evaluator - grades free-text reflection answers.

Combines two signals:
- A semantic judgement from the model (``correct`` and/or ``score`` 0-1)
- Lexical cosine similarity between the answer and the reference answer,
  stop words removed

Students who keep missing a weak topic are graded by the stronger model.
Evaluation never raises upstream errors; when every model fails the result is
a safe "not correct" default marked as fallback-sourced.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from langchain_core.prompts import PromptTemplate

try:
    from ..config import config
    from ..errors import InvalidInput
    from ..models.learning_memory import LearningMemory, format_memory_for_prompt
    from ..utils.llm_client import FALLBACK_SOURCE, ModelChain
except ImportError:
    from src.config import config
    from src.errors import InvalidInput
    from src.models.learning_memory import LearningMemory, format_memory_for_prompt
    from src.utils.llm_client import FALLBACK_SOURCE, ModelChain

logger = logging.getLogger(__name__)

CORRECT_FEEDBACK = "Great job! You captured the key idea."
INCORRECT_FEEDBACK = "Thank you for your answer. Let's refine it a bit."
UNAVAILABLE_FEEDBACK = "Unable to evaluate your answer at this time. Please continue with the lesson."

STOP_WORDS = frozenset(
    """
    a an and the to of in on for with at by from is are was were be as it that
    this these those or but so if then because into about over under
    """.split()
)

_NON_WORD = re.compile(r"[^\w\s]|_", re.UNICODE)


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens with punctuation and stop words removed."""
    cleaned = _NON_WORD.sub(" ", (text or "").lower())
    return [token for token in cleaned.split() if token not in STOP_WORDS]


def lexical_similarity(answer: str, reference: Optional[str]) -> float:
    """Cosine similarity of token frequency vectors (0 when either side is empty)."""
    if not answer or not reference or not answer.strip() or not reference.strip():
        return 0.0
    a = Counter(tokenize(answer))
    b = Counter(tokenize(reference))
    if not a or not b:
        return 0.0
    dot = sum(count * b[token] for token, count in a.items() if token in b)
    norm_a = math.sqrt(sum(c * c for c in a.values()))
    norm_b = math.sqrt(sum(c * c for c in b.values()))
    return dot / (norm_a * norm_b)


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _coerce_bool(value: Any) -> Optional[bool]:
    """Model ``correct`` field as a bool; None when it carries no verdict."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "yes", "correct", "1"):
            return True
        if lowered in ("false", "no", "incorrect", "0"):
            return False
    return None


def _coerce_score(value: Any) -> Optional[float]:
    """Model ``score`` as 0-1; percentages (1 < score <= 100) are rescaled."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    if 1 < value <= 100:
        value = value / 100
    return _clamp(float(value))


@dataclass
class EvaluationResult:
    """
    Outcome of grading one answer.

    Attributes:
        correct: Whether the answer is accepted
        feedback: Feedback for the student (never empty)
        hint: Hint toward the right answer ("" when correct)
        model_used: Model that produced the verdict, or "fallback"
        score: Blended score 0-1
        degraded: True when no model could evaluate
    """

    correct: bool
    feedback: str
    hint: str
    model_used: str
    score: float
    degraded: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "correct": self.correct,
            "feedback": self.feedback,
            "hint": self.hint,
            "score": self.score,
            "modelUsed": self.model_used,
            "degraded": self.degraded,
        }
        if self.reason:
            data["reason"] = self.reason
        return data


class AnswerEvaluator:
    """Grades open-ended answers with model escalation for struggling students."""

    def __init__(self, chain: Optional[ModelChain] = None):
        self.settings = config.evaluation
        self.chain = chain or ModelChain(
            [config.model.default_model, config.model.fallback_model],
            temperature=config.model.evaluation_temperature,
            max_tokens=config.model.evaluation_max_tokens,
        )

        self.evaluation_prompt = PromptTemplate(
            input_variables=[
                "topic",
                "question",
                "reference_answer",
                "answer",
                "similarity",
                "learner_profile",
            ],
            template="""As an expert educator, evaluate this student answer.

Topic: {topic}
Question: {question}
Reference Answer: {reference_answer}
Student's Answer: {answer}
Lexical Similarity Score (0-1): {similarity}

Learner profile:
{learner_profile}

Provide your evaluation as a JSON object:
{{
  "correct": true or false,
  "score": number between 0 and 1 (semantic correctness),
  "feedback": "specific feedback on their answer",
  "hint": "a helpful hint if incorrect (or empty string if correct)"
}}

Be encouraging but accurate. Judge conceptual correctness even if wording differs; treat the lexical similarity as a loose baseline. If the answer is correct, keep the hint empty.""",
        )

    def select_models(self, topic: str, memory: Optional[LearningMemory]) -> List[str]:
        """Upgrade model first for a weak topic with enough attempts, else default."""
        upgrade = (
            memory is not None
            and memory.is_weak_topic(topic)
            and memory.total_attempts >= self.settings.upgrade_after_attempts
        )
        first = config.model.fallback_model if upgrade else config.model.default_model
        return [first, config.model.fallback_model]

    def blend(self, ai_score: float, similarity: float) -> float:
        weight = self.settings.ai_score_weight
        return ai_score * weight + similarity * (1 - weight)

    def evaluate(
        self,
        question: str,
        answer: str,
        topic: str,
        student_id: str,
        memory: Optional[LearningMemory] = None,
        reference_answer: Optional[str] = None,
    ) -> EvaluationResult:
        """
        Grade a student's answer.

        Raises:
            InvalidInput: If question, answer, topic or student_id is missing
        """
        for name, value in (
            ("question", question),
            ("answer", answer),
            ("topic", topic),
            ("studentId", student_id),
        ):
            if not isinstance(value, str) or not value.strip():
                raise InvalidInput(f"{name} is required")

        reference = reference_answer if isinstance(reference_answer, str) else ""
        similarity = lexical_similarity(answer, reference)
        models = self.select_models(topic, memory)

        messages = [
            {
                "role": "system",
                "content": "You are an expert educational evaluator. Always respond with valid JSON only.",
            },
            {
                "role": "user",
                "content": self.evaluation_prompt.format(
                    topic=topic,
                    question=question,
                    reference_answer=reference or "Not available",
                    answer=answer,
                    similarity=f"{similarity:.2f}",
                    learner_profile=format_memory_for_prompt(memory),
                ),
            },
        ]

        outcome = self.chain.run(messages, schema="evaluation", models=models)
        if outcome.degraded:
            logger.error("Evaluation fell back to the safe default: %s", outcome.reason)
            return EvaluationResult(
                correct=False,
                feedback=UNAVAILABLE_FEEDBACK,
                hint="",
                model_used=FALLBACK_SOURCE,
                score=round(similarity, 2),
                degraded=True,
                reason=outcome.reason,
            )

        payload = outcome.payload
        verdict = _coerce_bool(payload.get("correct"))
        ai_score = _coerce_score(payload.get("score"))
        if ai_score is None:
            ai_score = 1.0 if verdict else 0.0
        score = self.blend(ai_score, similarity)
        correct = verdict if verdict is not None else score >= self.settings.score_threshold

        feedback = payload.get("feedback")
        if not isinstance(feedback, str) or not feedback.strip():
            feedback = CORRECT_FEEDBACK if correct else INCORRECT_FEEDBACK
        hint = payload.get("hint")
        if correct or not isinstance(hint, str):
            hint = ""

        return EvaluationResult(
            correct=correct,
            feedback=feedback.strip(),
            hint=hint.strip(),
            model_used=outcome.model_used,
            score=round(_clamp(score), 2),
        )
