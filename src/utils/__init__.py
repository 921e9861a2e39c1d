"""
Utility modules for the reflective video tutor.

This module contains infrastructure helpers:
- validation: JSON Schema checks for model payloads and preference updates
- llm_client: JSON-mode chat client and model escalation chain
- resource_fetcher: image/video search for tutor conversations

store and transcription depend on src.models and are imported from their
modules directly.
"""

from .validation import (
    SchemaValidator,
    ValidationResult,
    is_valid_payload,
    validate_learning_preferences,
    validate_model_payload,
)
from .llm_client import GenerationOutcome, JSONChatClient, ModelChain, extract_json
from .resource_fetcher import ResourceFetcher

__all__ = [
    # Validation
    "SchemaValidator",
    "ValidationResult",
    "is_valid_payload",
    "validate_learning_preferences",
    "validate_model_payload",
    # Generation
    "GenerationOutcome",
    "JSONChatClient",
    "ModelChain",
    "extract_json",
    # External services
    "ResourceFetcher",
]
