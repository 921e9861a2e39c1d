"""
Learning Memory: per-student personalization and performance model.

One record per student, created lazily on first access and never deleted:
- Learning preferences (pace, style, explanation style, confidence, goals)
- Running accuracy (total/correct attempts)
- Weak and strong topic lists (most recent first, deduplicated, capped)
- Prompt rendering for personalizing generation and evaluation
"""

from __future__ import annotations

from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Literal, Optional

try:
    from ..config import config
    from ..errors import InvalidInput
    from ..utils.validation import validate_learning_preferences
except ImportError:
    from src.config import config
    from src.errors import InvalidInput
    from src.utils.validation import validate_learning_preferences


LearningPace = Literal["FAST", "STEADY", "DEEP"]
LearningStyle = Literal["EXAMPLES_FIRST", "THEORY_FIRST", "MIXED"]
ExplanationStyle = Literal["SHORT", "DETAILED", "STEP_BY_STEP", "ANALOGY"]
ConfidenceLevel = Literal["BEGINNER", "INTERMEDIATE", "ADVANCED"]
LearningGoal = Literal["EXAM_PREP", "DEEP_UNDERSTANDING", "SPEED_LEARNING", "PRACTICAL_APPLICATION"]

PACE_LABELS = {"FAST": "Fast pace", "STEADY": "Steady pace", "DEEP": "Deep pace"}
STYLE_LABELS = {
    "EXAMPLES_FIRST": "Examples first",
    "THEORY_FIRST": "Theory first",
    "MIXED": "Mix of both",
}
EXPLANATION_LABELS = {
    "SHORT": "Short",
    "DETAILED": "Detailed",
    "STEP_BY_STEP": "Step-by-step",
    "ANALOGY": "Analogy based",
}
CONFIDENCE_LABELS = {
    "BEGINNER": "Beginner",
    "INTERMEDIATE": "Intermediate",
    "ADVANCED": "Advanced",
}
GOAL_VALUES = ("EXAM_PREP", "DEEP_UNDERSTANDING", "SPEED_LEARNING", "PRACTICAL_APPLICATION")

NO_MEMORY_PROMPT = (
    "No stored learner profile yet. Start with beginner-friendly scaffolding and adapt quickly."
)

# camelCase preference keys (wire form) -> field names
PREFERENCE_FIELDS = {
    "learningPace": "learning_pace",
    "preferredLearningStyle": "preferred_learning_style",
    "preferredExplanationStyle": "preferred_explanation_style",
    "confidenceLevel": "confidence_level",
}


def merge_unique_topics(base: Optional[list[str]], topic: str, cap: Optional[int] = None) -> list[str]:
    """
    Prepend a topic, removing any earlier occurrence, capped to ``cap`` entries.

    Blank topics leave the list unchanged (apart from the cap).
    """
    cap = cap if cap is not None else config.evaluation.topic_list_cap
    current = list(base or [])
    normalized = (topic or "").strip()
    if not normalized:
        return current[:cap]
    return [normalized] + [t for t in current if t != normalized][: cap - 1]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _label(labels: dict[str, str], value: Optional[str]) -> str:
    if not value:
        return "Not set"
    return labels.get(value, value)


class LearningMemory:
    """
    Per-student learning memory.

    Backed by a plain dict so it round-trips through the store unchanged.
    Mutations keep ``correct_attempts <= total_attempts`` and recompute
    ``accuracy_rate`` (a ratio in [0, 1]).
    """

    def __init__(self, student_id: str, data: Optional[dict] = None):
        if not student_id or not str(student_id).strip():
            raise InvalidInput("student_id is required")
        self._data = self._create_default(student_id)
        if data:
            self._data.update(deepcopy(data))
            self._data["student_id"] = student_id
        self._recompute_accuracy()

    @staticmethod
    def _create_default(student_id: str) -> dict:
        return {
            "student_id": student_id,
            "learning_pace": None,
            "preferred_learning_style": None,
            "preferred_explanation_style": None,
            "confidence_level": None,
            "goals": [],
            "weak_topics": [],
            "strength_topics": [],
            "accuracy_rate": 0.0,
            "total_attempts": 0,
            "correct_attempts": 0,
            "onboarding_answers": None,
            "last_active_at": _utc_now(),
        }

    def _recompute_accuracy(self) -> None:
        total = int(self._data.get("total_attempts") or 0)
        correct = min(int(self._data.get("correct_attempts") or 0), total)
        self._data["total_attempts"] = total
        self._data["correct_attempts"] = correct
        self._data["accuracy_rate"] = correct / total if total > 0 else 0.0

    # ==================== Profile Access ====================

    @property
    def student_id(self) -> str:
        return self._data["student_id"]

    @property
    def learning_pace(self) -> Optional[LearningPace]:
        return self._data.get("learning_pace")

    @property
    def preferred_learning_style(self) -> Optional[LearningStyle]:
        return self._data.get("preferred_learning_style")

    @property
    def preferred_explanation_style(self) -> Optional[ExplanationStyle]:
        return self._data.get("preferred_explanation_style")

    @property
    def confidence_level(self) -> Optional[ConfidenceLevel]:
        return self._data.get("confidence_level")

    @property
    def goals(self) -> list[LearningGoal]:
        return list(self._data.get("goals") or [])

    @property
    def weak_topics(self) -> list[str]:
        return list(self._data.get("weak_topics") or [])

    @property
    def strength_topics(self) -> list[str]:
        return list(self._data.get("strength_topics") or [])

    @property
    def accuracy_rate(self) -> float:
        return self._data["accuracy_rate"]

    @property
    def total_attempts(self) -> int:
        return self._data["total_attempts"]

    @property
    def correct_attempts(self) -> int:
        return self._data["correct_attempts"]

    @property
    def onboarding_answers(self) -> Optional[dict]:
        return self._data.get("onboarding_answers")

    @property
    def last_active_at(self) -> Optional[str]:
        return self._data.get("last_active_at")

    def is_weak_topic(self, topic: str) -> bool:
        return (topic or "").strip() in self.weak_topics

    # ==================== Mutations ====================

    def record_attempt(self, topic: str, is_correct: bool, attempts: int = 1) -> None:
        """
        Record the outcome of an answered question.

        Args:
            topic: Topic the question covered
            is_correct: Whether the answer was judged correct
            attempts: Attempts this outcome took (at least 1)

        Raises:
            InvalidInput: If attempts is not a positive integer
        """
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
            raise InvalidInput(f"attempts must be a positive integer, got {attempts!r}")

        self._data["total_attempts"] = self.total_attempts + attempts
        if is_correct:
            self._data["correct_attempts"] = self.correct_attempts + 1
            self._data["strength_topics"] = merge_unique_topics(self.strength_topics, topic)
            self._data["weak_topics"] = [t for t in self.weak_topics if t != (topic or "").strip()]
        else:
            self._data["weak_topics"] = merge_unique_topics(self.weak_topics, topic)
            self._data["strength_topics"] = [
                t for t in self.strength_topics if t != (topic or "").strip()
            ]

        self._recompute_accuracy()
        self.touch()

    def apply_preferences(
        self,
        preferences: Optional[dict] = None,
        onboarding_answers: Optional[dict] = None,
    ) -> None:
        """
        Apply a camelCase preference update.

        Provided values override, absent or null values keep the current ones.
        A ``goals`` list replaces goals (deduplicated, blanks dropped); ``[]`` clears them.

        Raises:
            InvalidInput: On unknown keys or enum values
        """
        preferences = validate_learning_preferences(preferences)

        for wire_key, field_name in PREFERENCE_FIELDS.items():
            value = preferences.get(wire_key)
            if value is not None:
                self._data[field_name] = value

        goals = preferences.get("goals")
        if goals is not None:
            self._data["goals"] = list(dict.fromkeys(g for g in goals if g))

        answers = onboarding_answers if onboarding_answers is not None else preferences.get("onboardingAnswers")
        if answers is not None:
            if not isinstance(answers, dict):
                raise InvalidInput("onboardingAnswers must be an object")
            self._data["onboarding_answers"] = deepcopy(answers)

        self.touch()

    def touch(self) -> None:
        self._data["last_active_at"] = _utc_now()

    # ==================== Rendering ====================

    def format_for_prompt(self) -> str:
        """Compact multi-line summary used to personalize model prompts."""
        weak = ", ".join(self.weak_topics[:5]) or "None yet"
        strong = ", ".join(self.strength_topics[:5]) or "None yet"
        return "\n".join(
            [
                f"Learning pace: {_label(PACE_LABELS, self.learning_pace)}",
                f"Learning style: {_label(STYLE_LABELS, self.preferred_learning_style)}",
                f"Explanation style: {_label(EXPLANATION_LABELS, self.preferred_explanation_style)}",
                f"Confidence: {_label(CONFIDENCE_LABELS, self.confidence_level)}",
                f"Goals: {', '.join(self.goals) or 'Not set'}",
                f"Accuracy: {self.accuracy_rate * 100:.1f}% ({self.correct_attempts}/{self.total_attempts})",
                f"Weak topics: {weak}",
                f"Strong topics: {strong}",
            ]
        )

    def performance_summary(self) -> dict:
        """Wire summary returned by the memory-update endpoints."""
        return {
            "weakTopics": self.weak_topics,
            "strengthTopics": self.strength_topics,
            "accuracyRate": self.accuracy_rate,
            "totalAttempts": self.total_attempts,
            "correctAttempts": self.correct_attempts,
        }

    # ==================== Serialization ====================

    def to_dict(self) -> dict:
        """Snake_case copy used by the store."""
        return deepcopy(self._data)

    def to_wire(self) -> dict:
        """camelCase form returned by the API."""
        return {
            "studentId": self.student_id,
            "learningPace": self.learning_pace,
            "preferredLearningStyle": self.preferred_learning_style,
            "preferredExplanationStyle": self.preferred_explanation_style,
            "confidenceLevel": self.confidence_level,
            "goals": self.goals,
            "onboardingAnswers": deepcopy(self.onboarding_answers),
            "lastActiveAt": self.last_active_at,
            **self.performance_summary(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LearningMemory":
        return cls(data["student_id"], data)

    def __repr__(self) -> str:
        return (
            f"LearningMemory(student_id={self.student_id!r}, "
            f"attempts={self.correct_attempts}/{self.total_attempts}, "
            f"weak={len(self.weak_topics)}, strong={len(self.strength_topics)})"
        )


def format_memory_for_prompt(memory: Optional[LearningMemory]) -> str:
    """Prompt summary for a memory, or the neutral default when there is none."""
    if memory is None:
        return NO_MEMORY_PROMPT
    return memory.format_for_prompt()


def coerce_attempts(value: Any) -> int:
    """Attempts from a request body: None means 1, anything else must be >= 1."""
    if value is None:
        return 1
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidInput(f"attempts must be a positive integer, got {value!r}")
    return value
