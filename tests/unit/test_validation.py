"""
Unit tests for schema validation utilities.

Tests:
- SchemaValidator on a temporary schema
- Model payload checks (ParseFailure on mismatch)
- Learning-preference checks (InvalidInput on mismatch)
"""

import json

import pytest

from src.errors import InvalidInput, ParseFailure, UpstreamUnavailable
from src.utils.validation import (
    SchemaValidator,
    is_valid_payload,
    validate_learning_preferences,
    validate_model_payload,
)


@pytest.fixture
def temp_schema_file(tmp_path):
    schema = {
        "$schema": "http://json-schema.org/draft-07/schema#",
        "type": "object",
        "properties": {"test": {"type": "string"}},
        "required": ["test"],
    }
    schema_file = tmp_path / "test.schema.json"
    schema_file.write_text(json.dumps(schema), encoding="utf-8")
    return schema_file


class TestSchemaValidator:
    def test_valid_data(self, temp_schema_file):
        result = SchemaValidator(temp_schema_file).validate({"test": "ok"})
        assert result
        assert result.errors == []
        assert "passed" in str(result)

    def test_invalid_data_collects_errors(self, temp_schema_file):
        result = SchemaValidator(temp_schema_file).validate({"test": 5})
        assert not result
        assert len(result.errors) == 1
        assert "At 'test'" in result.errors[0]
        assert "failed with 1 error" in str(result)


class TestModelPayloads:
    def test_generated_question_requires_question(self):
        with pytest.raises(ParseFailure):
            validate_model_payload("generated_question", {"referenceAnswer": "x"})

    def test_parse_failure_is_upstream_error(self):
        with pytest.raises(UpstreamUnavailable):
            validate_model_payload("generated_question", {"question": ""})

    def test_valid_generated_question_is_returned(self):
        payload = {"question": "Why?", "referenceAnswer": "Because."}
        assert validate_model_payload("generated_question", payload) is payload

    def test_evaluation_needs_correct_or_score(self):
        assert is_valid_payload("evaluation", {"correct": True})
        assert is_valid_payload("evaluation", {"score": 0.4})
        assert not is_valid_payload("evaluation", {"feedback": "nice"})

    def test_mcq_question_needs_four_options(self):
        item = {"question": "Q", "options": ["a", "b", "c"], "correctIndex": 0}
        assert not is_valid_payload("mcq_question", item)
        item["options"].append("d")
        assert is_valid_payload("mcq_question", item)

    def test_mcq_correct_index_range(self):
        item = {"question": "Q", "options": ["a", "b", "c", "d"], "correctIndex": 4}
        assert not is_valid_payload("mcq_question", item)

    def test_remediation_shape(self):
        payload = {
            "explanation": "Think about energy.",
            "newQuestion": {"question": "Q", "options": ["a", "b", "c", "d"], "correctIndex": 1},
        }
        assert is_valid_payload("remediation", payload)
        del payload["newQuestion"]["correctIndex"]
        assert not is_valid_payload("remediation", payload)

    def test_tutor_turn_allows_null_resource_request(self):
        assert is_valid_payload("tutor_turn", {"message": "Hi", "status": "CHAT", "resourceRequest": None})
        assert not is_valid_payload("tutor_turn", {"status": "CHAT"})


class TestLearningPreferences:
    def test_none_means_no_change(self):
        assert validate_learning_preferences(None) == {}

    def test_valid_preferences(self):
        prefs = {"learningPace": "FAST", "goals": ["EXAM_PREP"], "confidenceLevel": None}
        assert validate_learning_preferences(prefs) == prefs

    def test_unknown_enum_value(self):
        with pytest.raises(InvalidInput):
            validate_learning_preferences({"learningPace": "TURBO"})

    def test_unknown_key(self):
        with pytest.raises(InvalidInput):
            validate_learning_preferences({"favouriteColour": "blue"})
