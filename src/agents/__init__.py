"""
AI agents for the reflective video tutor.

This module contains LangChain-based agents (LLM-powered decision makers):
- Checkpoint selection (where the video pauses for reflection)
- Question generation (open-ended and multiple-choice)
- Answer evaluation (semantic + lexical blend, model escalation)
- Remediation (re-teach after a wrong multiple-choice answer)
- Tutor (conversation oracle with resource requests)

Note: the tutor state machine itself is in src/models (pure logic, not an agent)
"""

from .checkpoint_selector import CheckpointCandidate, CheckpointSelector
from .question_generator import GeneratedQuestion, QuestionGenerator, QuizQuestion
from .answer_evaluator import AnswerEvaluator, EvaluationResult, lexical_similarity
from .remediation_generator import Remediation, RemediationGenerator
from .tutor_agent import TutorAgent

__all__ = [
    # Checkpoints
    "CheckpointCandidate",
    "CheckpointSelector",
    # Questions
    "GeneratedQuestion",
    "QuestionGenerator",
    "QuizQuestion",
    # Evaluation
    "AnswerEvaluator",
    "EvaluationResult",
    "lexical_similarity",
    # Remediation & tutoring
    "Remediation",
    "RemediationGenerator",
    "TutorAgent",
]
