"""
Transcription provider client.

Three ways to obtain a chapter transcript:
- YouTube videos: synchronous transcript API fetch
- Direct media files with a push provider (Deepgram-like): submit a job whose
  full result is POSTed to our webhook
- Direct media files with a pull provider (AssemblyAI-like): submit a job; the
  webhook receives only an id and we fetch the transcript by id
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional, Tuple
from urllib.parse import quote, urlparse

import requests

try:
    from ..config import config
    from ..errors import InvalidInput, UpstreamUnavailable
    from ..models.transcript import TranscriptSegment, normalize_transcript
except ImportError:
    from src.config import config
    from src.errors import InvalidInput, UpstreamUnavailable
    from src.models.transcript import TranscriptSegment, normalize_transcript

logger = logging.getLogger(__name__)

DEEPGRAM = "deepgram"
ASSEMBLYAI = "assemblyai"
STT_PROVIDERS = (DEEPGRAM, ASSEMBLYAI)

DEEPGRAM_LISTEN_URL = "https://api.deepgram.com/v1/listen"
ASSEMBLYAI_TRANSCRIPT_URL = "https://api.assemblyai.com/v2/transcript"

YOUTUBE_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?v=|youtu\.be/|youtube\.com/embed/)([^&\n?#]+)"),
    re.compile(r"^([a-zA-Z0-9_-]{11})$"),
]
DIRECT_MEDIA_EXTENSIONS = re.compile(r"\.(mp4|mp3|m4a|webm|wav|ogg|mpeg)$", re.IGNORECASE)
BLOB_STORAGE_HOSTS = (
    "blob.vercel-storage.com",
    "s3.amazonaws.com",
    "r2.cloudflarestorage.com",
)


# ==================== URL Helpers ====================


def extract_video_id(url_or_id: Optional[str]) -> Optional[str]:
    """YouTube video id from a watch/short/embed URL or a bare 11-char id."""
    if not url_or_id or not url_or_id.strip():
        return None
    candidate = url_or_id.strip()
    for pattern in YOUTUBE_PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    return None


def is_youtube_url(url: Optional[str]) -> bool:
    return extract_video_id(url) is not None


def is_direct_media_url(url: Optional[str]) -> bool:
    """True for media file URLs (.mp4, .mp3, ...) or known blob-storage hosts."""
    if not url or not url.strip():
        return False
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    if DIRECT_MEDIA_EXTENSIONS.search(parsed.path):
        return True
    host = parsed.hostname.lower()
    return any(host == h or host.endswith("." + h) for h in BLOB_STORAGE_HOSTS)


def build_webhook_url(base_url: str, provider: str, chapter_id: str) -> str:
    return (
        f"{base_url.rstrip('/')}/api/reflection/transcript/webhook"
        f"?provider={provider}&chapterId={quote(chapter_id, safe='')}"
    )


# ==================== Client ====================


class TranscriptionClient:
    """
    HTTP client for the transcript API and the speech-to-text providers.

    Every call carries the configured request timeout. Failures raise
    UpstreamUnavailable.
    """

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self.settings = config.transcription
        self.session = session or requests.Session()
        self.timeout = timeout or config.model.request_timeout

    def _request(self, method: str, url: str, what: str, **kwargs) -> Any:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise UpstreamUnavailable(f"{what} request failed: {e}") from e

        if response.status_code == 429:
            logger.warning("%s rate limited; Retry-After=%s", what, response.headers.get("Retry-After"))
        if not response.ok:
            raise UpstreamUnavailable(f"{what} error ({response.status_code}): {response.text[:200]}")

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"{what} returned invalid JSON") from e

    # ---------- YouTube transcript API ----------

    def fetch_transcript(self, video_url: str) -> list[TranscriptSegment]:
        """
        Fetch a YouTube transcript synchronously.

        Raises:
            UpstreamUnavailable: Missing API key, HTTP failure or malformed body
        """
        if not self.settings.transcript_api_key:
            raise UpstreamUnavailable("Missing TRANSCRIPT_API_KEY environment variable")

        logger.info("Fetching transcript for %s", video_url)
        data = self._request(
            "GET",
            self.settings.transcript_api_url,
            "Transcript API",
            params={"video_url": video_url, "include_timestamp": "true", "format": "json"},
            headers={"Authorization": f"Bearer {self.settings.transcript_api_key}"},
        )
        if not isinstance(data, dict) or not isinstance(data.get("transcript"), list):
            raise UpstreamUnavailable("Invalid transcript format received from API")
        return normalize_transcript(data["transcript"])

    # ---------- Speech-to-text jobs ----------

    def configured_provider(self) -> Optional[str]:
        """The explicitly chosen provider when it has a key, else whichever has one."""
        keys = {
            DEEPGRAM: self.settings.deepgram_api_key,
            ASSEMBLYAI: self.settings.assemblyai_api_key,
        }
        chosen = self.settings.stt_provider
        if chosen in keys and keys[chosen]:
            return chosen
        for provider in STT_PROVIDERS:
            if keys[provider]:
                return provider
        return None

    def submit_job(self, media_url: str, chapter_id: str) -> Tuple[str, str]:
        """
        Submit a speech-to-text job for a direct media URL.

        Returns:
            (provider, job_id)

        Raises:
            UpstreamUnavailable: No provider or webhook base configured, or submit failed
        """
        provider = self.configured_provider()
        if provider is None:
            raise UpstreamUnavailable(
                "No STT provider configured (set DEEPGRAM_API_KEY or ASSEMBLYAI_API_KEY)"
            )
        if not self.settings.app_base_url:
            raise UpstreamUnavailable("APP_BASE_URL is required for transcription webhooks")

        webhook_url = build_webhook_url(self.settings.app_base_url, provider, chapter_id)
        logger.info("Submitting %s job for chapter %s", provider, chapter_id)

        if provider == DEEPGRAM:
            data = self._request(
                "POST",
                DEEPGRAM_LISTEN_URL,
                "Deepgram API",
                params={"callback": webhook_url, "utterances": "true", "smart_format": "true"},
                headers={"Authorization": f"Token {self.settings.deepgram_api_key}"},
                json={"url": media_url},
            )
            job_id = data.get("request_id") if isinstance(data, dict) else None
        else:
            data = self._request(
                "POST",
                ASSEMBLYAI_TRANSCRIPT_URL,
                "AssemblyAI API",
                headers={"Authorization": self.settings.assemblyai_api_key},
                json={"audio_url": media_url, "webhook_url": webhook_url},
            )
            job_id = data.get("id") if isinstance(data, dict) else None

        if not job_id:
            raise UpstreamUnavailable(f"{provider} did not return a job id")
        return provider, str(job_id)

    def fetch_job(self, job_id: str) -> dict:
        """
        Fetch a finished pull-provider transcript by id.

        Returns:
            Raw provider body (may carry ``status == "error"``)

        Raises:
            InvalidInput: Empty job id
            UpstreamUnavailable: Missing key or fetch failure
        """
        if not job_id:
            raise InvalidInput("Missing transcript_id in webhook body")
        if not self.settings.assemblyai_api_key:
            raise UpstreamUnavailable("ASSEMBLYAI_API_KEY not configured")

        data = self._request(
            "GET",
            f"{ASSEMBLYAI_TRANSCRIPT_URL}/{quote(str(job_id), safe='')}",
            "AssemblyAI transcript",
            headers={"Authorization": self.settings.assemblyai_api_key},
        )
        if not isinstance(data, dict):
            raise UpstreamUnavailable("AssemblyAI returned an unexpected transcript body")
        return data
