"""
Unit tests for the JSON chat client and model escalation chain.

Tests:
- JSON extraction from completions (code fences, garbage)
- JSONChatClient error mapping and token accounting
- ModelChain fallback order, degraded outcomes and single-model calls
"""

import unittest
from unittest.mock import MagicMock, Mock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from src.config import token_tracker
from src.errors import ParseFailure, UpstreamUnavailable
from src.utils.llm_client import (
    FALLBACK_SOURCE,
    JSONChatClient,
    ModelChain,
    extract_json,
    to_langchain_messages,
)


class TestExtractJson(unittest.TestCase):
    def test_plain_json(self):
        self.assertEqual(extract_json('{"a": 1}'), {"a": 1})

    def test_json_code_fence(self):
        content = 'Here you go:\n```json\n{"question": "Why?"}\n```'
        self.assertEqual(extract_json(content), {"question": "Why?"})

    def test_bare_code_fence(self):
        self.assertEqual(extract_json("```\n[1, 2]\n```"), [1, 2])

    def test_non_json_raises_parse_failure(self):
        with self.assertRaises(ParseFailure):
            extract_json("I think the answer is correct.")

    def test_empty_content(self):
        with self.assertRaises(ParseFailure):
            extract_json("   ")

    def test_non_text_content(self):
        with self.assertRaises(ParseFailure):
            extract_json(None)


class TestLangchainMessages(unittest.TestCase):
    def test_roles_map_to_message_types(self):
        converted = to_langchain_messages(
            [
                {"role": "system", "content": "rules"},
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
            ]
        )
        self.assertIsInstance(converted[0], SystemMessage)
        self.assertIsInstance(converted[1], HumanMessage)
        self.assertIsInstance(converted[2], AIMessage)
        self.assertEqual(converted[2].content, "hello")


class TestJSONChatClient(unittest.TestCase):
    @patch("src.utils.llm_client.ChatOpenAI")
    def test_client_uses_json_mode_without_retries(self, mock_chat):
        JSONChatClient("llama-3.1-8b-instant", temperature=0.2, max_tokens=50)

        kwargs = mock_chat.call_args.kwargs
        self.assertEqual(kwargs["model"], "llama-3.1-8b-instant")
        self.assertEqual(kwargs["max_retries"], 0)
        self.assertEqual(kwargs["max_tokens"], 50)
        self.assertEqual(kwargs["model_kwargs"], {"response_format": {"type": "json_object"}})

    @patch("src.utils.llm_client.ChatOpenAI")
    def test_complete_json_records_tokens(self, mock_chat):
        mock_llm = MagicMock()
        mock_llm.invoke.return_value = Mock(
            content='{"question": "What is ATP?"}',
            usage_metadata={"input_tokens": 12, "output_tokens": 8},
        )
        mock_chat.return_value = mock_llm

        client = JSONChatClient("llama-3.1-8b-instant")
        payload = client.complete_json([{"role": "user", "content": "Ask me"}])

        self.assertEqual(payload, {"question": "What is ATP?"})
        self.assertEqual(token_tracker.total_tokens(), 20)
        self.assertEqual(token_tracker.get_stats()["calls_by_model"], {"llama-3.1-8b-instant": 1})

    @patch("src.utils.llm_client.ChatOpenAI")
    def test_transport_error_becomes_upstream_unavailable(self, mock_chat):
        mock_llm = MagicMock()
        mock_llm.invoke.side_effect = TimeoutError("read timed out")
        mock_chat.return_value = mock_llm

        with self.assertRaises(UpstreamUnavailable) as cm:
            JSONChatClient("llama-3.1-8b-instant").complete([{"role": "user", "content": "x"}])
        self.assertIn("read timed out", cm.exception.message)

    @patch("src.utils.llm_client.ChatOpenAI")
    def test_missing_content_is_upstream_error(self, mock_chat):
        mock_llm = MagicMock()
        mock_llm.invoke.return_value = Mock(content=None, usage_metadata=None)
        mock_chat.return_value = mock_llm

        with self.assertRaises(UpstreamUnavailable):
            JSONChatClient("llama-3.1-8b-instant").complete([{"role": "user", "content": "x"}])


class TestModelChain:
    def test_requires_a_model(self):
        with pytest.raises(ValueError):
            ModelChain([])

    def test_first_model_success(self, scripted_chain):
        chain = scripted_chain(["small", "large"], {"small": [{"question": "Q?"}]})
        outcome = chain.run([{"role": "user", "content": "x"}], schema="generated_question")

        assert outcome.ok
        assert outcome.model_used == "small"
        assert outcome.payload == {"question": "Q?"}
        assert chain.client("large").calls == []

    def test_falls_back_on_upstream_error(self, scripted_chain):
        chain = scripted_chain(
            ["small", "large"],
            {"small": [UpstreamUnavailable("503")], "large": [{"question": "Q?"}]},
        )
        outcome = chain.run([{"role": "user", "content": "x"}])

        assert outcome.ok
        assert outcome.model_used == "large"

    def test_falls_back_on_schema_mismatch(self, scripted_chain):
        chain = scripted_chain(
            ["small", "large"],
            {"small": [{"unexpected": True}], "large": [{"question": "Q?"}]},
        )
        outcome = chain.run([{"role": "user", "content": "x"}], schema="generated_question")

        assert outcome.model_used == "large"
        assert len(chain.client("small").calls) == 1

    def test_falls_back_on_non_json(self, scripted_chain):
        chain = scripted_chain(["small", "large"], {"small": ["not json"], "large": [{"question": "Q?"}]})
        assert chain.run([{"role": "user", "content": "x"}]).model_used == "large"

    def test_all_models_fail_is_degraded(self, scripted_chain):
        chain = scripted_chain(["small", "large"])
        outcome = chain.run([{"role": "user", "content": "x"}])

        assert outcome.degraded
        assert not outcome.ok
        assert outcome.payload is None
        assert outcome.model_used == FALLBACK_SOURCE
        assert "large" in outcome.reason

    def test_models_override_order(self, scripted_chain):
        chain = scripted_chain(["small", "large"], {"large": [{"question": "Q?"}]})
        outcome = chain.run([{"role": "user", "content": "x"}], models=["large", "large"])

        assert outcome.model_used == "large"
        assert chain.client("small").calls == []

    def test_run_single_propagates_errors(self, scripted_chain):
        chain = scripted_chain(["small", "large"], {"large": [{"question": "Q?"}]})
        with pytest.raises(UpstreamUnavailable):
            chain.run_single([{"role": "user", "content": "x"}])
        assert chain.client("large").calls == []

    def test_run_single_validates_schema(self, scripted_chain):
        chain = scripted_chain(["small"], {"small": [{"questions": "nope"}]})
        with pytest.raises(ParseFailure):
            chain.run_single([{"role": "user", "content": "x"}], schema="question_batch")

    def test_clients_are_cached(self, scripted_chain):
        chain = scripted_chain(["small"])
        assert chain.client("small") is chain.client("small")
