"""
Unit tests for the Answer Evaluator.

Tests lexical similarity, model escalation for struggling students, the
score blend and the safe default when every model fails.
"""

import unittest

import pytest

from src.agents.answer_evaluator import (
    CORRECT_FEEDBACK,
    UNAVAILABLE_FEEDBACK,
    AnswerEvaluator,
    EvaluationResult,
    lexical_similarity,
    tokenize,
)
from src.config import config
from src.errors import InvalidInput, UpstreamUnavailable
from src.models.learning_memory import LearningMemory

QUESTION = "What does chlorophyll do during photosynthesis?"
REFERENCE = "Chlorophyll absorbs light energy used to make glucose."


class TestLexicalSimilarity(unittest.TestCase):
    def test_tokenize_drops_stop_words_and_punctuation(self):
        self.assertEqual(tokenize("The cell, and THE nucleus!"), ["cell", "nucleus"])

    def test_identical_text(self):
        self.assertAlmostEqual(lexical_similarity(REFERENCE, REFERENCE), 1.0)

    def test_disjoint_text(self):
        self.assertEqual(lexical_similarity("mitochondria power", "chlorophyll light"), 0.0)

    def test_empty_sides(self):
        self.assertEqual(lexical_similarity("", REFERENCE), 0.0)
        self.assertEqual(lexical_similarity("answer", None), 0.0)
        self.assertEqual(lexical_similarity("the and of", "the a"), 0.0)

    def test_partial_overlap(self):
        score = lexical_similarity("chlorophyll absorbs light", REFERENCE)
        self.assertGreater(score, 0.0)
        self.assertLess(score, 1.0)


class TestEvaluationResult(unittest.TestCase):
    def test_to_dict(self):
        result = EvaluationResult(correct=True, feedback="Nice", hint="", model_used="small", score=0.9)
        self.assertEqual(
            result.to_dict(),
            {"correct": True, "feedback": "Nice", "hint": "", "score": 0.9, "modelUsed": "small", "degraded": False},
        )


def _evaluator(scripted_chain, replies):
    default, fallback = config.model.default_model, config.model.fallback_model
    return AnswerEvaluator(chain=scripted_chain([default, fallback], replies))


class TestModelSelection:
    def test_struggling_student_gets_upgrade_model_first(self, scripted_chain):
        memory = LearningMemory("s1", {"weak_topics": ["Recursion"], "total_attempts": 3})
        evaluator = _evaluator(scripted_chain, {})

        models = evaluator.select_models("Recursion", memory)
        assert models[0] == config.model.fallback_model

    def test_default_model_otherwise(self, scripted_chain):
        evaluator = _evaluator(scripted_chain, {})
        assert evaluator.select_models("Recursion", None)[0] == config.model.default_model

        too_few = LearningMemory("s1", {"weak_topics": ["Recursion"], "total_attempts": 1})
        assert evaluator.select_models("Recursion", too_few)[0] == config.model.default_model

        other_topic = LearningMemory("s1", {"weak_topics": ["Loops"], "total_attempts": 5})
        assert evaluator.select_models("Recursion", other_topic)[0] == config.model.default_model

    def test_upgrade_model_is_called(self, scripted_chain):
        memory = LearningMemory("s1", {"weak_topics": ["Recursion"], "total_attempts": 3})
        evaluator = _evaluator(
            scripted_chain,
            {config.model.fallback_model: [{"correct": True, "score": 0.9, "feedback": "Good", "hint": ""}]},
        )

        result = evaluator.evaluate(
            "What is recursion?", "A function calling itself", "Recursion", "s1", memory=memory
        )

        assert result.model_used == config.model.fallback_model
        assert evaluator.chain.client(config.model.default_model).calls == []


class TestEvaluate:
    def test_model_verdict_and_blend(self, scripted_chain):
        evaluator = _evaluator(
            scripted_chain,
            {
                config.model.default_model: [
                    {"correct": True, "score": 0.8, "feedback": "Well explained.", "hint": "ignored"}
                ]
            },
        )
        result = evaluator.evaluate(QUESTION, REFERENCE, "Photosynthesis", "s1", reference_answer=REFERENCE)

        weight = config.evaluation.ai_score_weight
        assert result.correct
        assert result.feedback == "Well explained."
        assert result.hint == ""
        assert result.score == pytest.approx(round(0.8 * weight + 1.0 * (1 - weight), 2))
        assert not result.degraded

    def test_threshold_decides_without_verdict(self, scripted_chain):
        evaluator = _evaluator(
            scripted_chain,
            {
                config.model.default_model: [{"score": 0.9}, {"score": 0.2, "hint": "Mention light."}],
            },
        )
        high = evaluator.evaluate(QUESTION, "some answer", "Photosynthesis", "s1")
        low = evaluator.evaluate(QUESTION, "some answer", "Photosynthesis", "s1")

        assert high.correct
        assert high.feedback == CORRECT_FEEDBACK
        assert not low.correct
        assert low.hint == "Mention light."

    def test_percentage_score_rescaled(self, scripted_chain):
        evaluator = _evaluator(scripted_chain, {config.model.default_model: [{"score": 85}]})
        result = evaluator.evaluate(QUESTION, "answer", "Photosynthesis", "s1")
        assert 0 <= result.score <= 1
        assert result.correct

    def test_string_verdict(self, scripted_chain):
        evaluator = _evaluator(scripted_chain, {config.model.default_model: [{"correct": "false", "score": 0.9}]})
        assert not evaluator.evaluate(QUESTION, "answer", "Photosynthesis", "s1").correct

    def test_hint_empty_whenever_correct(self, scripted_chain):
        evaluator = _evaluator(
            scripted_chain,
            {config.model.default_model: [{"correct": True, "hint": "You missed nothing", "feedback": ""}]},
        )
        result = evaluator.evaluate(QUESTION, "answer", "Photosynthesis", "s1")
        assert result.correct
        assert result.hint == ""
        assert result.feedback == CORRECT_FEEDBACK

    def test_falls_back_to_second_model(self, scripted_chain):
        evaluator = _evaluator(
            scripted_chain,
            {
                config.model.default_model: [UpstreamUnavailable("timeout")],
                config.model.fallback_model: [{"correct": False, "score": 0.1}],
            },
        )
        result = evaluator.evaluate(QUESTION, "answer", "Photosynthesis", "s1")
        assert result.model_used == config.model.fallback_model
        assert not result.correct

    def test_all_models_fail_returns_safe_default(self, scripted_chain):
        evaluator = _evaluator(scripted_chain, {})
        result = evaluator.evaluate(
            QUESTION, "chlorophyll absorbs light", "Photosynthesis", "s1", reference_answer=REFERENCE
        )

        assert not result.correct
        assert result.degraded
        assert result.model_used == "fallback"
        assert result.feedback == UNAVAILABLE_FEEDBACK
        assert result.score == round(lexical_similarity("chlorophyll absorbs light", REFERENCE), 2)

    @pytest.mark.parametrize(
        "field", ["question", "answer", "topic", "student_id"]
    )
    def test_required_fields(self, scripted_chain, field):
        kwargs = {"question": QUESTION, "answer": "a", "topic": "t", "student_id": "s1"}
        kwargs[field] = "  "
        with pytest.raises(InvalidInput):
            _evaluator(scripted_chain, {}).evaluate(**kwargs)

    def test_prompt_carries_learner_profile(self, scripted_chain):
        memory = LearningMemory("s1")
        memory.apply_preferences({"preferredExplanationStyle": "STEP_BY_STEP"})
        evaluator = _evaluator(scripted_chain, {config.model.default_model: [{"correct": True}]})

        evaluator.evaluate(QUESTION, "answer", "Photosynthesis", "s1", memory=memory)

        prompt = evaluator.chain.client(config.model.default_model).calls[0][1]["content"]
        assert "Explanation style: Step-by-step" in prompt
        assert "Reference Answer: Not available" in prompt
