"""
Data models for the reflective video tutor.

This module contains core data models:
- TranscriptSegment and the provider payload normalizers
- LearningMemory: per-student preferences and performance
- Chapter / ReflectionPoint records
- TutorConversation: the CHAT/READY remediation automaton
"""

from .transcript import (
    AssemblyAIResult,
    DeepgramResult,
    SegmentList,
    TranscriptSegment,
    normalize_transcript,
)
from .learning_memory import LearningMemory, format_memory_for_prompt
from .reflection_point import Chapter, ReflectionPoint
from .tutor_conversation import (
    ChatMessage,
    TurnOutcome,
    TutorContext,
    TutorConversation,
    next_state,
)

__all__ = [
    # Transcripts
    "AssemblyAIResult",
    "DeepgramResult",
    "SegmentList",
    "TranscriptSegment",
    "normalize_transcript",
    # Learning memory
    "LearningMemory",
    "format_memory_for_prompt",
    # Chapters
    "Chapter",
    "ReflectionPoint",
    # Tutor conversation
    "ChatMessage",
    "TurnOutcome",
    "TutorContext",
    "TutorConversation",
    "next_state",
]
