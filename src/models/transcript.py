"""
Transcript model and provider payload normalizers.

Every transcription source is reduced to one ordered list of TranscriptSegment:
- DeepgramResult: push-style provider, full result object, seconds
- AssemblyAIResult: pull-by-id provider, milliseconds
- SegmentList: flat list of caption entries (YouTube transcript API and stored copies)

``normalize_transcript`` classifies a raw payload into one of these variants and
never raises; anything it cannot read yields an empty list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Union

# Gap that starts a new phrase when grouping word-level output
DEEPGRAM_PHRASE_GAP_SECONDS = 1.0
ASSEMBLYAI_PHRASE_GAP_MS = 800

# Flat-list ``offset`` values at or above this are milliseconds
OFFSET_MS_THRESHOLD = 1000


@dataclass
class TranscriptSegment:
    """One timed span of transcript text."""

    start_seconds: float
    text: str
    duration_seconds: Optional[float] = None

    def to_dict(self) -> dict:
        data = {"start": self.start_seconds, "text": self.text}
        if self.duration_seconds is not None:
            data["duration"] = self.duration_seconds
        return data


@dataclass
class DeepgramResult:
    results: dict


@dataclass
class AssemblyAIResult:
    body: dict


@dataclass
class SegmentList:
    entries: list


TranscriptPayload = Union[DeepgramResult, AssemblyAIResult, SegmentList]


def _number(value: Any) -> Optional[float]:
    """Numeric value or None (bools are not numbers here)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _clean_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _finalize(segments: list[TranscriptSegment]) -> list[TranscriptSegment]:
    kept = [s for s in segments if s.text]
    return sorted(kept, key=lambda s: s.start_seconds)


# ==================== Variant Normalizers ====================


def _group_words(
    words: list[dict],
    text_key: str,
    gap: float,
    scale: float,
    inclusive: bool = False,
) -> list[TranscriptSegment]:
    """
    Join consecutive words into phrases, starting a new phrase on a pause.

    Args:
        words: Word dicts carrying ``start``, ``end`` and ``text_key``
        gap: Pause (in the words' own unit) that splits phrases
        scale: Divisor converting the words' unit to seconds
        inclusive: Whether a pause exactly equal to ``gap`` still joins
    """
    phrases: list[TranscriptSegment] = []
    current_start: Optional[float] = None
    current_end = 0.0
    current_words: list[str] = []

    for word in words:
        if not isinstance(word, dict):
            continue
        start = _number(word.get("start"))
        if start is None:
            continue
        end = _number(word.get("end"))
        end = start if end is None else end
        token = _clean_text(word.get(text_key))

        pause = start - current_end
        if current_start is not None and (pause <= gap if inclusive else pause < gap):
            if token:
                current_words.append(token)
            current_end = end
            continue

        if current_start is not None:
            phrases.append(
                TranscriptSegment(
                    start_seconds=current_start / scale,
                    text=" ".join(current_words),
                    duration_seconds=max(current_end - current_start, 0) / scale,
                )
            )
        current_start = start
        current_end = end
        current_words = [token] if token else []

    if current_start is not None:
        phrases.append(
            TranscriptSegment(
                start_seconds=current_start / scale,
                text=" ".join(current_words),
                duration_seconds=max(current_end - current_start, 0) / scale,
            )
        )
    return _finalize(phrases)


def _utterance_segments(utterances: Any, text_keys: tuple[str, ...], scale: float) -> list[TranscriptSegment]:
    if not isinstance(utterances, list):
        return []
    segments = []
    for utterance in utterances:
        if not isinstance(utterance, dict):
            continue
        start = _number(utterance.get("start")) or 0.0
        end = _number(utterance.get("end"))
        text = ""
        for key in text_keys:
            text = _clean_text(utterance.get(key))
            if text:
                break
        duration = max(end - start, 0) / scale if end is not None else None
        segments.append(TranscriptSegment(start / scale, text, duration))
    return _finalize(segments)


def normalize_deepgram(payload: DeepgramResult) -> list[TranscriptSegment]:
    """Deepgram result: utterances, then grouped words, then whole transcript, then single words."""
    results = payload.results if isinstance(payload.results, dict) else {}
    channels = results.get("channels")
    channel = channels[0] if isinstance(channels, list) and channels and isinstance(channels[0], dict) else {}
    alternatives = channel.get("alternatives")
    alternative = (
        alternatives[0]
        if isinstance(alternatives, list) and alternatives and isinstance(alternatives[0], dict)
        else {}
    )
    words = alternative.get("words") if isinstance(alternative.get("words"), list) else []

    for utterances in (channel.get("utterances"), results.get("utterances")):
        if isinstance(utterances, list) and utterances:
            segments = _utterance_segments(utterances, ("transcript", "text"), scale=1.0)
            if segments:
                return segments
            break

    if words:
        segments = _group_words(words, "word", DEEPGRAM_PHRASE_GAP_SECONDS, scale=1.0)
        if segments:
            return segments

    transcript = _clean_text(alternative.get("transcript"))
    if transcript:
        return [TranscriptSegment(start_seconds=0.0, text=transcript)]

    singles = []
    for word in words:
        if isinstance(word, dict):
            singles.append(
                TranscriptSegment(_number(word.get("start")) or 0.0, _clean_text(word.get("word")))
            )
    return _finalize(singles)


def normalize_assemblyai(payload: AssemblyAIResult) -> list[TranscriptSegment]:
    """AssemblyAI transcript (milliseconds): utterances, then grouped words, then text."""
    body = payload.body if isinstance(payload.body, dict) else {}

    utterances = body.get("utterances")
    if isinstance(utterances, list) and utterances:
        return _utterance_segments(utterances, ("text",), scale=1000.0)

    words = body.get("words")
    if isinstance(words, list) and words:
        return _group_words(words, "text", ASSEMBLYAI_PHRASE_GAP_MS, scale=1000.0, inclusive=True)

    text = _clean_text(body.get("text"))
    return [TranscriptSegment(start_seconds=0.0, text=text)] if text else []


def normalize_segment_list(payload: SegmentList) -> list[TranscriptSegment]:
    """Flat caption entries with ``start`` (seconds) or ``offset`` (seconds or ms)."""
    segments = []
    for entry in payload.entries:
        if not isinstance(entry, dict):
            continue

        start = _number(entry.get("start"))
        if start is None:
            start = _number(entry.get("start_seconds"))
        if start is None:
            offset = _number(entry.get("offset"))
            if offset is None:
                start = 0.0
            elif offset >= OFFSET_MS_THRESHOLD:
                start = offset / 1000
            else:
                start = offset

        duration = None
        for key in ("duration", "dur", "duration_seconds"):
            duration = _number(entry.get(key))
            if duration is not None:
                break

        segments.append(
            TranscriptSegment(
                start_seconds=max(start, 0.0),
                text=_clean_text(entry.get("text")),
                duration_seconds=max(duration, 0.0) if duration is not None else None,
            )
        )
    return _finalize(segments)


_NORMALIZERS = {
    DeepgramResult: normalize_deepgram,
    AssemblyAIResult: normalize_assemblyai,
    SegmentList: normalize_segment_list,
}


def classify_payload(raw: Any) -> Optional[TranscriptPayload]:
    """Map a raw provider payload to its variant, or None when unrecognized."""
    if isinstance(raw, (DeepgramResult, AssemblyAIResult, SegmentList)):
        return raw
    if isinstance(raw, list):
        return SegmentList(entries=raw)
    if not isinstance(raw, dict):
        return None
    if isinstance(raw.get("results"), dict):
        return DeepgramResult(results=raw["results"])
    for key in ("transcript", "segments"):
        if isinstance(raw.get(key), list):
            return SegmentList(entries=raw[key])
    if any(key in raw for key in ("utterances", "words", "text")):
        return AssemblyAIResult(body=raw)
    return None


def normalize_transcript(raw: Any) -> list[TranscriptSegment]:
    """
    Normalize any supported transcript payload to ordered segments.

    Returns:
        Segments sorted by start, blank text dropped; [] for unknown input
    """
    payload = classify_payload(raw)
    if payload is None:
        return []
    return _NORMALIZERS[type(payload)](payload)


# ==================== Helpers ====================


def estimate_duration(segments: list[TranscriptSegment]) -> float:
    """Video length estimate: start of the last segment (0 when empty)."""
    if not segments:
        return 0.0
    return max(s.start_seconds for s in segments)


def render_for_prompt(segments: list[TranscriptSegment], max_chars: int) -> str:
    """Render ``[<start>s] <text>`` lines, truncated to ``max_chars``."""
    lines = [f"[{round(s.start_seconds)}s] {s.text}" for s in segments]
    return "\n".join(lines)[:max_chars]


def transcript_text(segments: list[TranscriptSegment]) -> str:
    """Plain transcript text, one segment per line."""
    return "\n".join(s.text for s in segments)


def segments_to_dicts(segments: list[TranscriptSegment]) -> list[dict]:
    return [s.to_dict() for s in segments]


def segments_from_dicts(entries: Any) -> list[TranscriptSegment]:
    """Rebuild segments from their stored ``{start, duration?, text}`` form."""
    if not isinstance(entries, list):
        return []
    return normalize_segment_list(SegmentList(entries=entries))
