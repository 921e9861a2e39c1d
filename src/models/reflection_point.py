"""Chapter and reflection point records."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

try:
    from ..errors import InvalidInput
    from .transcript import TranscriptSegment, segments_to_dicts
except ImportError:
    from src.errors import InvalidInput
    from src.models.transcript import TranscriptSegment, segments_to_dicts


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


@dataclass
class ReflectionPoint:
    """A timestamp in a chapter's video where playback pauses for a question."""

    chapter_id: str
    time_seconds: float
    topic: str
    id: str = field(default_factory=lambda: new_id("rp"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "chapterId": self.chapter_id,
            "time": self.time_seconds,
            "topic": self.topic,
        }

    @classmethod
    def from_input(cls, chapter_id: str, time: Any, topic: Any) -> "ReflectionPoint":
        """
        Build a manually added point.

        Raises:
            InvalidInput: If time is not a non-negative number or topic is blank
        """
        if isinstance(time, bool) or not isinstance(time, (int, float)) or time < 0:
            raise InvalidInput("time must be a non-negative number")
        if not isinstance(topic, str) or not topic.strip():
            raise InvalidInput("topic is required")
        return cls(chapter_id=chapter_id, time_seconds=float(time), topic=topic.strip())


@dataclass
class Chapter:
    """A course chapter with its video and cached transcript."""

    id: str
    title: str = ""
    video_url: Optional[str] = None
    transcript: list[TranscriptSegment] = field(default_factory=list)
    transcript_job_id: Optional[str] = None
    transcript_job_provider: Optional[str] = None

    @property
    def has_transcript(self) -> bool:
        return len(self.transcript) > 0

    @property
    def transcript_pending(self) -> bool:
        return self.transcript_job_id is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "videoUrl": self.video_url,
            "transcript": segments_to_dicts(self.transcript),
            "transcriptJobId": self.transcript_job_id,
            "transcriptJobProvider": self.transcript_job_provider,
        }
