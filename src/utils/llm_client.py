"""
JSON-mode chat client and model-escalation chain.

Every generation call in the engine goes through here:
- JSONChatClient wraps one ChatOpenAI model in JSON response mode
- ModelChain tries an ordered list of models with a uniform contract and
  reports a tagged GenerationOutcome (ok vs. degraded with a reason)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

try:
    from ..config import config, token_tracker
    from ..errors import ParseFailure, UpstreamUnavailable
    from .validation import validate_model_payload
except ImportError:
    from src.config import config, token_tracker
    from src.errors import ParseFailure, UpstreamUnavailable
    from src.utils.validation import validate_model_payload

logger = logging.getLogger(__name__)

FALLBACK_SOURCE = "fallback"


def extract_json(content: str) -> Any:
    """
    Parse JSON from a model completion.

    Tolerates markdown code fences around the JSON body.

    Raises:
        ParseFailure: If no JSON can be decoded
    """
    if not isinstance(content, str):
        raise ParseFailure(f"Model content is not text: {type(content).__name__}")

    text = content.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    if not text:
        raise ParseFailure("Model returned empty content")

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Model returned non-JSON content: {e}") from e


def to_langchain_messages(messages: Sequence[Dict[str, str]]) -> List[BaseMessage]:
    """Convert ``[{role, content}]`` dicts to LangChain message objects."""
    converted: List[BaseMessage] = []
    for message in messages:
        role = message.get("role")
        content = message.get("content", "")
        if role == "system":
            converted.append(SystemMessage(content=content))
        elif role == "assistant":
            converted.append(AIMessage(content=content))
        else:
            converted.append(HumanMessage(content=content))
    return converted


class JSONChatClient:
    """
    One text-generation model invoked in JSON response mode.

    The ChatOpenAI retry budget is zeroed; ModelChain owns retries.
    """

    def __init__(
        self,
        model_name: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
        timeout: Optional[float] = None,
    ):
        self.model_name = model_name
        self.llm = ChatOpenAI(
            model=model_name,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout or config.model.request_timeout,
            max_retries=0,
            api_key=config.model.api_key or "missing-api-key",
            base_url=config.model.base_url,
            model_kwargs={"response_format": {"type": "json_object"}},
        )

    def complete(self, messages: Sequence[Dict[str, str]]) -> str:
        """
        Send messages and return the raw completion text.

        Raises:
            UpstreamUnavailable: On transport errors, timeouts or non-success responses
        """
        try:
            response = self.llm.invoke(to_langchain_messages(messages))
        except Exception as e:
            raise UpstreamUnavailable(f"{self.model_name} request failed: {e}") from e

        usage = getattr(response, "usage_metadata", None)
        if config.logging.log_tokens and isinstance(usage, dict):
            token_tracker.add_tokens(
                int(usage.get("input_tokens", 0) or 0),
                int(usage.get("output_tokens", 0) or 0),
                self.model_name,
            )

        content = getattr(response, "content", None)
        if not isinstance(content, str):
            raise UpstreamUnavailable(f"{self.model_name} returned no completion content")
        return content

    def complete_json(self, messages: Sequence[Dict[str, str]]) -> Any:
        """Send messages and return the decoded JSON completion."""
        return extract_json(self.complete(messages))


@dataclass
class GenerationOutcome:
    """
    Tagged result of a model chain run.

    ``degraded`` is False when some model produced a usable payload; otherwise
    ``payload`` is None and ``reason`` holds the last failure.
    """

    payload: Optional[Any]
    model_used: str
    degraded: bool = False
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.degraded


ClientFactory = Callable[..., JSONChatClient]


class ModelChain:
    """
    Ordered list of models tried in sequence with one uniform contract.

    Usage:
        chain = ModelChain([config.model.default_model, config.model.fallback_model],
                           temperature=0.3, max_tokens=300)
        outcome = chain.run(messages, schema="evaluation")
        if outcome.degraded:
            ...  # caller substitutes its safe default
    """

    def __init__(
        self,
        models: Sequence[str],
        temperature: float = 0.7,
        max_tokens: int = 500,
        client_factory: Optional[ClientFactory] = None,
    ):
        if not models:
            raise ValueError("ModelChain needs at least one model")
        self.models = list(models)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client_factory = client_factory or JSONChatClient
        self._clients: Dict[str, JSONChatClient] = {}

    def client(self, model_name: str) -> JSONChatClient:
        """Lazily build (and cache) the client for one model."""
        if model_name not in self._clients:
            self._clients[model_name] = self._client_factory(
                model_name,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        return self._clients[model_name]

    def run(
        self,
        messages: Sequence[Dict[str, str]],
        schema: Optional[str] = None,
        models: Optional[Sequence[str]] = None,
    ) -> GenerationOutcome:
        """
        Try each model in order until one returns a valid JSON payload.

        Args:
            messages: Chat messages ``[{role, content}]``
            schema: Optional schema name the payload must satisfy
            models: Override the chain order for this call

        Returns:
            GenerationOutcome; never raises for upstream or parse failures
        """
        order = list(models) if models else self.models
        reason: Optional[str] = None

        for index, model_name in enumerate(order):
            try:
                payload = self.client(model_name).complete_json(messages)
                if schema:
                    validate_model_payload(schema, payload)
                return GenerationOutcome(payload=payload, model_used=model_name)
            except UpstreamUnavailable as e:
                reason = e.message
                if index + 1 < len(order):
                    logger.warning(
                        "Model %s failed (%s); falling back to %s",
                        model_name,
                        reason,
                        order[index + 1],
                    )
                else:
                    logger.error("All models failed; last error from %s: %s", model_name, reason)

        return GenerationOutcome(
            payload=None,
            model_used=FALLBACK_SOURCE,
            degraded=True,
            reason=reason,
        )

    def run_single(
        self,
        messages: Sequence[Dict[str, str]],
        schema: Optional[str] = None,
    ) -> Any:
        """
        Call only the first model, propagating failures.

        Raises:
            UpstreamUnavailable: Transport failure
            ParseFailure: Non-JSON or schema mismatch
        """
        payload = self.client(self.models[0]).complete_json(messages)
        if schema:
            validate_model_payload(schema, payload)
        return payload
