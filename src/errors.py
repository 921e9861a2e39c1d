"""
Error taxonomy shared by the tutoring engine and its HTTP surface.

- InvalidInput: missing or malformed required fields (no retry)
- NotFound: referenced chapter, transcript or job is absent
- UpstreamUnavailable: generation/search/transcription service unreachable or non-success
- ParseFailure: model returned non-JSON or JSON missing required keys
  (treated like UpstreamUnavailable for retry purposes)
"""

from __future__ import annotations


class ReflectionError(Exception):
    """Base class for all engine errors. Carries an HTTP-equivalent status."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(ReflectionError):
    status_code = 400


class NotFound(ReflectionError):
    status_code = 404


class UpstreamUnavailable(ReflectionError):
    status_code = 502


class ParseFailure(UpstreamUnavailable):
    """Model output could not be parsed or failed schema validation."""
