"""
Tutor Agent - drives one turn of the remediation conversation.

The language model is the oracle of the tutor automaton: it reads the fixed
context plus the full history and answers ``{message, status, resourceRequest}``.
The turn outcome comes from the pure ``next_state`` transition; a resource
request triggers a synchronous search whose results ride along with the reply.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from langchain_core.prompts import PromptTemplate

try:
    from ..config import config
    from ..errors import InvalidInput, ParseFailure
    from ..models.tutor_conversation import TurnOutcome, TutorConversation, next_state
    from ..utils.llm_client import ModelChain, extract_json
    from ..utils.resource_fetcher import ResourceFetcher
    from ..utils.validation import is_valid_payload
except ImportError:
    from src.config import config
    from src.errors import InvalidInput, ParseFailure
    from src.models.tutor_conversation import TurnOutcome, TutorConversation, next_state
    from src.utils.llm_client import ModelChain, extract_json
    from src.utils.resource_fetcher import ResourceFetcher
    from src.utils.validation import is_valid_payload

logger = logging.getLogger(__name__)


class TutorAgent:
    """Conversational tutor for a student who answered incorrectly."""

    def __init__(
        self,
        chain: Optional[ModelChain] = None,
        fetcher: Optional[ResourceFetcher] = None,
    ):
        self.chain = chain or ModelChain(
            [config.model.default_model],
            temperature=config.model.tutor_temperature,
            max_tokens=config.model.tutor_max_tokens,
        )
        self.fetcher = fetcher or ResourceFetcher()

        self.system_prompt = PromptTemplate(
            input_variables=["topic", "question", "wrong_answer", "reference_answer", "transcript_context"],
            template="""You are a helpful and patient AI tutor. A student has just answered a quiz question INCORRECTLY.

CONTEXT:
- Topic: {topic}
- Question they missed: "{question}"
- Their wrong answer: "{wrong_answer}"
- Reference answer: "{reference_answer}"
- Transcript context: "{transcript_context}"

YOUR GOAL:
1. Help the student understand why their answer was wrong and what the correct concept is.
2. Be conversational and encouraging. Do not just lecture; ask if they understand.
3. Answer any questions they have about the topic.

RESOURCES:
- If a visual aid (diagram, chart) or a video explanation would actually help, you may request one.
- Only request resources when the topic is visual or complex, not on every message.

INTENT DETECTION:
- Detect whether the student is ready to retry the quiz: they say "yes", "I'm ready", "try again", or clearly demonstrate the key concept and ask to move on.

OUTPUT FORMAT:
Always return a JSON object:
{{
  "message": "Your response...",
  "status": "CHAT" or "READY",
  "resourceRequest": {{"type": "images" or "videos", "query": "search query"}} or null
}}

- Set "status" to "READY" ONLY if the student explicitly asks to retry or clearly confirms they understand and are ready.
- If no resource is needed, set "resourceRequest" to null.""",
        )

    def build_messages(self, conversation: TutorConversation) -> list[Dict[str, str]]:
        context = conversation.context
        transcript_context = (context.transcript_context or "")[: config.generation.tutor_context_chars]
        system = self.system_prompt.format(
            topic=context.topic or "Not specified",
            question=context.question,
            wrong_answer=context.wrong_answer,
            reference_answer=context.reference_answer or "Not provided",
            transcript_context=transcript_context or "Not available",
        )
        return [{"role": "system", "content": system}] + conversation.history()

    def consult(self, conversation: TutorConversation) -> TurnOutcome:
        """
        Ask the oracle for the next turn.

        Non-JSON content from a successful call becomes a CHAT reply carrying
        the raw text.

        Raises:
            UpstreamUnavailable: Generation service unreachable (no fallback model)
        """
        content = self.chain.client(self.chain.models[0]).complete(self.build_messages(conversation))
        try:
            turn_response: Any = extract_json(content)
        except ParseFailure:
            turn_response = None
        if not is_valid_payload("tutor_turn", turn_response):
            logger.warning("Tutor returned an unexpected turn; treating the raw text as a chat reply")
            turn_response = content.strip()
        return next_state(conversation.messages, turn_response)

    def take_turn(self, conversation: TutorConversation) -> Dict[str, Any]:
        """
        Run one tutor turn and apply it to the conversation.

        The conversation is left untouched when the oracle call fails.

        Returns:
            Client payload ``{message, status, resources?}``
        """
        if conversation.is_ready:
            raise InvalidInput("Conversation is finished; the student is ready to retry")
        if not conversation.messages or conversation.messages[-1].role != "user":
            raise InvalidInput("The last message must come from the student")

        outcome = self.consult(conversation)
        conversation.apply(outcome)

        payload: Dict[str, Any] = {"message": outcome.reply, "status": outcome.state}
        request = outcome.resource_request
        if request is not None:
            logger.info("Tutor requested %s for %r", request.type, request.query)
            payload["resources"] = {
                "type": request.type,
                "data": self.fetcher.search(request.query, request.type, config.search.result_limit),
            }
        return payload

    def respond(self, messages: Any, context: Any) -> Dict[str, Any]:
        """Stateless entry point: rebuild the conversation from the wire and take one turn."""
        conversation = TutorConversation.from_wire(messages, context)
        return self.take_turn(conversation)
