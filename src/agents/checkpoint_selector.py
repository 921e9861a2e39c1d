"""
Checkpoint Selector - chooses where a video pauses for reflection.

Two strategies:
- Randomized spacing: 4-5 timestamps inside the middle 80% of the video,
  kept at least duration/20 apart (bounded rejection sampling)
- Semantic extraction: ask the model for 3-6 topics with the timestamp
  where each is introduced

Both return points sorted ascending. Persisting a batch (delete then insert,
one transaction) is the caller's job.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Any, List, Optional

from langchain_core.prompts import PromptTemplate

try:
    from ..config import config
    from ..errors import UpstreamUnavailable
    from ..models.transcript import TranscriptSegment, estimate_duration, render_for_prompt
    from ..utils.llm_client import ModelChain
except ImportError:
    from src.config import config
    from src.errors import UpstreamUnavailable
    from src.models.transcript import TranscriptSegment, estimate_duration, render_for_prompt
    from src.utils.llm_client import ModelChain

logger = logging.getLogger(__name__)


@dataclass
class CheckpointCandidate:
    """A proposed reflection point before it is bound to a chapter."""

    time_seconds: float
    topic: str

    def to_dict(self) -> dict:
        return {"time": self.time_seconds, "topic": self.topic}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


class CheckpointSelector:
    """Selects reflection timestamps for a chapter video."""

    def __init__(self, rng: Optional[random.Random] = None, chain: Optional[ModelChain] = None):
        """
        Initialize the selector.

        Args:
            rng: Random source for spacing (injectable for deterministic tests)
            chain: Model chain for topic extraction (default model only)
        """
        self.rng = rng or random.Random()
        self.settings = config.checkpoints
        self.chain = chain or ModelChain(
            [config.model.default_model],
            temperature=config.model.topics_temperature,
            max_tokens=config.model.topics_max_tokens,
        )

        self.topics_prompt = PromptTemplate(
            input_variables=[],
            template="""You are an expert educational assistant. Given a video transcript with timestamps, identify 3-6 distinct topics or concepts covered, and for each topic provide an approximate timestamp (in seconds) where that topic is introduced or discussed.

Return ONLY a JSON object of the form:
{{"points": [{{"time": 45, "topic": "Introduction to variables"}}, {{"time": 120, "topic": "Conditional logic"}}]}}

Use timestamps from the transcript. Be concise.""",
        )

    # ==================== Randomized Spacing ====================

    def select_random(self, segments: List[TranscriptSegment]) -> List[CheckpointCandidate]:
        """
        Pick 4-5 well-spaced timestamps.

        Returns [] for videos shorter than the minimum duration. Sampling stops
        after a fixed number of attempts, so fewer points may be returned.
        """
        duration = estimate_duration(segments)
        if duration < self.settings.min_duration_seconds:
            return []

        count = self.rng.randint(self.settings.min_points, self.settings.max_points)
        min_gap = duration / self.settings.gap_divisor
        low = self.settings.window_start * duration
        high = self.settings.window_end * duration

        accepted: List[float] = []
        attempts = 0
        while len(accepted) < count and attempts < self.settings.max_attempts:
            attempts += 1
            candidate = self.rng.uniform(low, high)
            if all(abs(candidate - point) >= min_gap for point in accepted):
                accepted.append(candidate)

        accepted.sort()
        return [
            CheckpointCandidate(time_seconds=t, topic=self.settings.placeholder_topic)
            for t in accepted
        ]

    # ==================== Semantic Extraction ====================

    def extract_topics(
        self, segments: List[TranscriptSegment], chapter_title: str = "Video"
    ) -> List[CheckpointCandidate]:
        """
        Ask the model where the video's main topics start.

        Returns:
            Sorted candidates; [] on empty transcript, upstream failure or
            an unusable response
        """
        rendered = render_for_prompt(segments, config.generation.topics_transcript_chars)
        if not rendered.strip():
            return []

        messages = [
            {"role": "system", "content": self.topics_prompt.format()},
            {
                "role": "user",
                "content": f"Chapter: {chapter_title or 'Video'}\n\nTranscript:\n{rendered}",
            },
        ]
        try:
            payload = self.chain.run_single(messages)
        except UpstreamUnavailable as e:
            logger.warning("Topic extraction failed: %s", e.message)
            return []

        return self.parse_topics(payload)

    def parse_topics(self, payload: Any) -> List[CheckpointCandidate]:
        """Permissive parse of a bare list or a ``points``/``topics`` wrapper."""
        if isinstance(payload, list):
            items = payload
        elif isinstance(payload, dict):
            items = payload.get("points") or payload.get("topics") or []
        else:
            items = []
        if not isinstance(items, list):
            return []

        candidates = []
        for item in items:
            if not isinstance(item, dict):
                continue
            time = item.get("time")
            topic = item.get("topic")
            if not _is_number(time) or not isinstance(topic, str):
                continue
            candidates.append(
                CheckpointCandidate(
                    time_seconds=float(max(0, round(time))),
                    topic=topic[: self.settings.topic_max_chars],
                )
            )

        candidates.sort(key=lambda c: c.time_seconds)
        return candidates
