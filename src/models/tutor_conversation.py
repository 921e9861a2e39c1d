"""
Tutor Conversation: two-state remediation dialogue.

A student who missed a question chats with the tutor until they are ready to
retry. The conversation is an explicit automaton:

    CHAT --(turn with status READY)--> READY   (terminal)
    CHAT --(any other turn)----------> CHAT

``next_state`` is the pure transition function; the language model acting as
oracle lives in ``src.agents.tutor_agent``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional, Union

try:
    from ..errors import InvalidInput
except ImportError:
    from src.errors import InvalidInput


ConversationStatus = Literal["CHAT", "READY"]
ResourceType = Literal["images", "videos"]

CHAT: ConversationStatus = "CHAT"
READY: ConversationStatus = "READY"

MESSAGE_ROLES = ("user", "assistant")
RESOURCE_TYPES = ("images", "videos")


@dataclass
class ChatMessage:
    role: Literal["user", "assistant"]
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class TutorContext:
    """What the student got wrong; fixed for the whole conversation."""

    topic: str
    question: str
    wrong_answer: str
    reference_answer: Optional[str] = None
    transcript_context: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any) -> "TutorContext":
        """
        Build from the camelCase request context.

        Raises:
            InvalidInput: If context is not an object
        """
        if not isinstance(data, dict):
            raise InvalidInput("context object is required")

        def text(key: str) -> str:
            value = data.get(key)
            return value if isinstance(value, str) else ""

        return cls(
            topic=text("topic"),
            question=text("question"),
            wrong_answer=text("wrongAnswer"),
            reference_answer=text("referenceAnswer") or None,
            transcript_context=text("transcriptContext") or None,
        )


@dataclass
class ResourceRequest:
    type: ResourceType
    query: str


@dataclass
class TurnOutcome:
    state: ConversationStatus
    reply: str
    resource_request: Optional[ResourceRequest] = None


def parse_messages(raw: Any) -> list[ChatMessage]:
    """
    Validate a wire message list.

    Raises:
        InvalidInput: Unless every entry is ``{role: user|assistant, content: str}``
    """
    if not isinstance(raw, list):
        raise InvalidInput("Messages array is required")
    messages = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise InvalidInput(f"messages[{index}] must be an object")
        role = entry.get("role")
        content = entry.get("content")
        if role not in MESSAGE_ROLES:
            raise InvalidInput(f"messages[{index}].role must be one of {list(MESSAGE_ROLES)}")
        if not isinstance(content, str):
            raise InvalidInput(f"messages[{index}].content must be a string")
        messages.append(ChatMessage(role=role, content=content))
    return messages


def _resource_request(raw: Any) -> Optional[ResourceRequest]:
    if not isinstance(raw, dict):
        return None
    kind = raw.get("type")
    query = raw.get("query")
    if kind not in RESOURCE_TYPES or not isinstance(query, str) or not query.strip():
        return None
    return ResourceRequest(type=kind, query=query.strip())


def next_state(history: list[ChatMessage], turn_response: Union[dict, str]) -> TurnOutcome:
    """
    Transition function of the tutor automaton.

    Args:
        history: Messages exchanged so far (the student spoke last)
        turn_response: Parsed oracle output ``{message, status, resourceRequest}``,
            or raw text when the oracle did not answer in JSON

    Returns:
        TurnOutcome with the next state, the reply and any resource request.
        Unknown status values stay in CHAT.
    """
    if history and history[-1].role != "user":
        raise InvalidInput("The last message must come from the student")

    if isinstance(turn_response, str):
        return TurnOutcome(state=CHAT, reply=turn_response)
    if not isinstance(turn_response, dict):
        return TurnOutcome(state=CHAT, reply="")

    message = turn_response.get("message")
    reply = message if isinstance(message, str) else ""
    status = turn_response.get("status")
    state = READY if isinstance(status, str) and status.strip().upper() == READY else CHAT

    return TurnOutcome(
        state=state,
        reply=reply,
        resource_request=_resource_request(turn_response.get("resourceRequest")),
    )


@dataclass
class TutorConversation:
    """Message history, fixed context and current status of one remediation chat."""

    context: TutorContext
    messages: list[ChatMessage] = field(default_factory=list)
    status: ConversationStatus = CHAT

    @property
    def is_ready(self) -> bool:
        return self.status == READY

    def add_user_message(self, content: str) -> None:
        if self.is_ready:
            raise InvalidInput("Conversation is finished; the student is ready to retry")
        self.messages.append(ChatMessage(role="user", content=content))

    def apply(self, outcome: TurnOutcome) -> None:
        """
        Record a tutor turn: append the reply and move to the outcome's state.

        Raises:
            InvalidInput: If the conversation already reached READY
        """
        if self.is_ready:
            raise InvalidInput("Conversation is finished; the student is ready to retry")
        self.messages.append(ChatMessage(role="assistant", content=outcome.reply))
        self.status = outcome.state

    def history(self) -> list[dict]:
        return [m.to_dict() for m in self.messages]

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "messages": self.history(),
            "context": asdict(self.context),
        }

    @classmethod
    def from_wire(cls, messages: Any, context: Any) -> "TutorConversation":
        return cls(context=TutorContext.from_dict(context), messages=parse_messages(messages))
