"""
Remediation Generator - re-teaches a concept after a wrong multiple-choice answer.

Returns an explanation of why the chosen option is wrong plus a new, simpler
multiple-choice question on the same concept. One model call, no fallback:
upstream and parse failures propagate to the caller.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from langchain_core.prompts import PromptTemplate

try:
    from ..config import config
    from ..errors import InvalidInput
    from ..utils.llm_client import ModelChain
    from .question_generator import QuizQuestion
except ImportError:
    from src.config import config
    from src.errors import InvalidInput
    from src.utils.llm_client import ModelChain
    from src.agents.question_generator import QuizQuestion

logger = logging.getLogger(__name__)


@dataclass
class Remediation:
    explanation: str
    new_question: QuizQuestion
    model_used: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "explanation": self.explanation,
            "newQuestion": self.new_question.to_dict(),
            "modelUsed": self.model_used,
        }


class RemediationGenerator:
    """Explains a missed multiple-choice question and writes an easier one."""

    def __init__(self, chain: Optional[ModelChain] = None):
        self.chain = chain or ModelChain(
            [config.model.default_model],
            temperature=config.model.remediation_temperature,
            max_tokens=config.model.remediation_max_tokens,
        )

        self.system_prompt = PromptTemplate(
            input_variables=[],
            template="""You are a patient and clear teacher. A student answered a question incorrectly based on a video transcript.

Your goal is to:
1. Explain the concept clearly and simply, addressing why the option they chose is wrong (without simply saying "You are wrong").
2. Create a NEW, SIMPLER multiple-choice question to test the same concept.

Return ONLY a valid JSON object:
{{"explanation": "conversational, encouraging teaching text",
  "newQuestion": {{"question": "...", "options": ["...", "...", "...", "..."], "correctIndex": 0}}}}""",
        )

        self.user_prompt = PromptTemplate(
            input_variables=["transcript", "question", "options", "wrong_index", "wrong_option", "correct_option"],
            template="""Transcript snippet: ...{transcript}...

Original question: {question}
Options: {options}
Student's answer (index {wrong_index}): {wrong_option}
Correct answer: {correct_option}

The student got this wrong. Teach them and give a simpler question.""",
        )

    def generate(
        self,
        transcript_text: Optional[str],
        failed_question: Any,
        wrong_answer_index: Any,
    ) -> Remediation:
        """
        Generate an explanation and a follow-up question.

        Args:
            transcript_text: Transcript context (optional)
            failed_question: The missed multiple-choice question (camelCase dict or QuizQuestion)
            wrong_answer_index: Index of the option the student chose

        Raises:
            InvalidInput: Missing/malformed question or index
            UpstreamUnavailable: Model unreachable
            ParseFailure: Model response not valid remediation JSON
        """
        if failed_question is None:
            raise InvalidInput("Question data required")
        question = (
            failed_question.validate()
            if isinstance(failed_question, QuizQuestion)
            else QuizQuestion.from_dict(failed_question)
        )
        if not question.is_multiple_choice:
            raise InvalidInput("Remediation needs a multiple-choice question")
        if (
            isinstance(wrong_answer_index, bool)
            or not isinstance(wrong_answer_index, int)
            or not 0 <= wrong_answer_index < len(question.options)
        ):
            raise InvalidInput("wrongAnswerIndex must be an option index")

        excerpt = (transcript_text or "")[: config.generation.remediation_transcript_chars]
        messages = [
            {"role": "system", "content": self.system_prompt.format()},
            {
                "role": "user",
                "content": self.user_prompt.format(
                    transcript=excerpt,
                    question=question.question,
                    options=json.dumps(question.options),
                    wrong_index=wrong_answer_index,
                    wrong_option=question.options[wrong_answer_index],
                    correct_option=question.options[question.correct_index],
                ),
            },
        ]

        payload = self.chain.run_single(messages, schema="remediation")
        new_question = payload["newQuestion"]
        logger.info("Generated remediation for %r", question.question[:60])
        return Remediation(
            explanation=payload["explanation"].strip(),
            new_question=QuizQuestion(
                question=new_question["question"].strip(),
                options=list(new_question["options"]),
                correct_index=new_question["correctIndex"],
            ),
            model_used=self.chain.models[0],
        )
