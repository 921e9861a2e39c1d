"""
Configuration management for the Reflective Video Tutoring Engine.

This module centralizes all configuration settings following 12-factor app principles:
- Secrets loaded from environment variables
- Sensible defaults for development
- Single source of truth for all settings
- Thread-safe token tracking
"""

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw.strip() else default
    except ValueError:
        return default


@dataclass
class ModelConfig:
    """Text-generation service settings (OpenAI-compatible chat completions)."""

    api_key: str = field(
        default_factory=lambda: os.getenv("GROQ_API_KEY") or os.getenv("OPENAI_API_KEY", "")
    )
    base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("LLM_BASE_URL", "https://api.groq.com/openai/v1")
    )

    # Fast default and stronger fallback/upgrade model
    default_model: str = field(
        default_factory=lambda: os.getenv("DEFAULT_MODEL", "llama-3.1-8b-instant")
    )
    fallback_model: str = field(
        default_factory=lambda: os.getenv("FALLBACK_MODEL", "llama-3.3-70b-versatile")
    )

    request_timeout: float = field(
        default_factory=lambda: _env_float("REQUEST_TIMEOUT", 30.0)
    )

    # Agent-specific temperatures
    question_temperature: float = 0.7
    batch_temperature: float = 0.5
    topics_temperature: float = 0.3
    evaluation_temperature: float = 0.3
    remediation_temperature: float = 0.5
    tutor_temperature: float = 0.7

    # Agent-specific completion budgets
    question_max_tokens: int = 300
    batch_max_tokens: int = 1024
    topics_max_tokens: int = 500
    evaluation_max_tokens: int = 300
    remediation_max_tokens: int = 800
    tutor_max_tokens: int = 1000


@dataclass
class GenerationConfig:
    """Prompt input budgets (characters of transcript sent to the model)."""

    question_transcript_chars: int = 6000
    batch_transcript_chars: int = 12000
    topics_transcript_chars: int = 12000
    remediation_transcript_chars: int = 4000
    tutor_context_chars: int = 2000

    batch_default_count: int = 3
    batch_max_count: int = 10


@dataclass
class CheckpointConfig:
    """Reflection point selection parameters."""

    min_duration_seconds: float = 60.0
    min_points: int = 4
    max_points: int = 5
    window_start: float = 0.10
    window_end: float = 0.90
    gap_divisor: float = 20.0
    max_attempts: int = 20
    topic_max_chars: int = 200
    placeholder_topic: str = "Reflection Point"


@dataclass
class EvaluationConfig:
    """Answer evaluation and learning-memory parameters."""

    score_threshold: float = field(
        default_factory=lambda: _env_float("REFLECTION_SCORE_THRESHOLD", 0.62)
    )
    ai_score_weight: float = field(
        default_factory=lambda: _env_float("REFLECTION_AI_WEIGHT", 0.85)
    )

    # Upgrade to the stronger model once a weak topic has this many attempts
    upgrade_after_attempts: int = 2
    topic_list_cap: int = 20

    def __post_init__(self):
        """Reject weights outside (0, 1); the lexical share would go negative."""
        if not (0 < self.ai_score_weight < 1):
            self.ai_score_weight = 0.85


@dataclass
class SearchConfig:
    """Image/video resource search (Serper-style API)."""

    api_key: str = field(default_factory=lambda: os.getenv("SERPER_API_KEY", ""))
    base_url: str = field(
        default_factory=lambda: os.getenv("SERPER_BASE_URL", "https://google.serper.dev")
    )
    country: str = "us"
    result_limit: int = 2


@dataclass
class TranscriptionConfig:
    """Transcription providers."""

    transcript_api_key: str = field(
        default_factory=lambda: os.getenv("TRANSCRIPT_API_KEY", "")
    )
    transcript_api_url: str = "https://transcriptapi.com/api/v2/youtube/transcript"
    deepgram_api_key: str = field(default_factory=lambda: os.getenv("DEEPGRAM_API_KEY", ""))
    assemblyai_api_key: str = field(
        default_factory=lambda: os.getenv("ASSEMBLYAI_API_KEY", "")
    )
    stt_provider: str = field(
        default_factory=lambda: os.getenv("TRANSCRIPT_STT_PROVIDER", "").lower()
    )
    app_base_url: str = field(default_factory=lambda: os.getenv("APP_BASE_URL", ""))


@dataclass
class PathConfig:
    """File system paths - single source of truth for all directories."""

    project_root: Path = field(default_factory=lambda: Path(__file__).parent.parent)
    data_dir: Path = field(default_factory=lambda: Path(__file__).parent.parent / "data")

    database_path: Path = field(init=False)
    schemas_dir: Path = field(init=False)

    def __post_init__(self):
        """Initialize computed paths."""
        env_db = os.getenv("REFLECTION_DB_PATH")
        self.database_path = Path(env_db) if env_db else self.data_dir / "reflection.db"
        self.schemas_dir = self.project_root / "schemas"

    def prepare_filesystem(self):
        """
        Create directories if they don't exist.

        Separated from __post_init__ to avoid side-effects on import.
        Call this explicitly from your app entrypoint.
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


@dataclass
class LoggingConfig:
    """Logging and metrics configuration with env-driven pricing."""

    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_tokens: bool = True

    cost_per_1k_input: float = field(
        default_factory=lambda: _env_float("COST_PER_1K_INPUT", 0.00005)
    )
    cost_per_1k_output: float = field(
        default_factory=lambda: _env_float("COST_PER_1K_OUTPUT", 0.00008)
    )


class Config:
    """
    Main configuration class. Singleton pattern.

    Usage:
        from src.config import config

        timeout = config.model.request_timeout
        budget = config.generation.question_transcript_chars
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.paths = PathConfig()
            cls._instance.model = ModelConfig()
            cls._instance.generation = GenerationConfig()
            cls._instance.checkpoints = CheckpointConfig()
            cls._instance.evaluation = EvaluationConfig()
            cls._instance.search = SearchConfig()
            cls._instance.transcription = TranscriptionConfig()
            cls._instance.logging = LoggingConfig()

        return cls._instance

    def prepare_fs(self):
        """Prepare filesystem (create directories). Call once at startup."""
        self.paths.prepare_filesystem()

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []

        if not self.model.api_key:
            errors.append("GROQ_API_KEY / OPENAI_API_KEY not set in environment")

        if self.model.default_model == "" or self.model.fallback_model == "":
            errors.append("default_model and fallback_model must both be set")

        if self.model.request_timeout <= 0:
            errors.append(f"request_timeout must be > 0, got {self.model.request_timeout}")

        for name in (
            "question_temperature",
            "batch_temperature",
            "topics_temperature",
            "evaluation_temperature",
            "remediation_temperature",
            "tutor_temperature",
        ):
            value = getattr(self.model, name)
            if not (0 <= value <= 2):
                errors.append(f"{name} must be in [0, 2], got {value}")

        cp = self.checkpoints
        if not (0 <= cp.window_start < cp.window_end <= 1):
            errors.append(
                f"checkpoint window must satisfy 0 <= start < end <= 1, got ({cp.window_start}, {cp.window_end})"
            )
        if cp.min_points < 1 or cp.max_points < cp.min_points:
            errors.append(
                f"checkpoint point count range invalid: [{cp.min_points}, {cp.max_points}]"
            )
        if cp.gap_divisor <= 0:
            errors.append(f"checkpoint gap_divisor must be > 0, got {cp.gap_divisor}")

        if not (0 <= self.evaluation.score_threshold <= 1):
            errors.append(
                f"score_threshold must be in [0, 1], got {self.evaluation.score_threshold}"
            )

        if not self.paths.schemas_dir.exists():
            errors.append(f"Schemas directory not found: {self.paths.schemas_dir}")

        return errors


# Global config instance
config = Config()


class TokenTracker:
    """
    Thread-safe tracker for token usage and estimated costs.

    Usage:
        from src.config import token_tracker

        token_tracker.add_tokens(input_tokens=100, output_tokens=50, model="llama-3.1-8b-instant")
        print(token_tracker.summary())
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.input_tokens = 0
        self.output_tokens = 0
        self.total_calls = 0
        self.calls_by_model: dict[str, int] = {}

    def add_tokens(self, input_tokens: int, output_tokens: int, model: Optional[str] = None):
        """Add tokens from an API call (thread-safe)."""
        with self._lock:
            self.input_tokens += input_tokens
            self.output_tokens += output_tokens
            self.total_calls += 1
            if model:
                self.calls_by_model[model] = self.calls_by_model.get(model, 0) + 1

    def total_tokens(self) -> int:
        """Get total tokens used (thread-safe)."""
        with self._lock:
            return self.input_tokens + self.output_tokens

    def estimated_cost(self) -> float:
        """Calculate estimated cost in USD (thread-safe)."""
        with self._lock:
            input_cost = (self.input_tokens / 1000) * config.logging.cost_per_1k_input
            output_cost = (self.output_tokens / 1000) * config.logging.cost_per_1k_output
            return input_cost + output_cost

    def summary(self) -> str:
        """Get formatted summary of usage."""
        stats = self.get_stats()
        return (
            "Token Usage Summary:\n"
            f"  API Calls: {stats['calls']}\n"
            f"  Input Tokens: {stats['input_tokens']:,}\n"
            f"  Output Tokens: {stats['output_tokens']:,}\n"
            f"  Total Tokens: {stats['total_tokens']:,}\n"
            f"  Estimated Cost: ${stats['estimated_cost']:.4f}"
        )

    def reset(self):
        """Reset counters (thread-safe)."""
        with self._lock:
            self.input_tokens = 0
            self.output_tokens = 0
            self.total_calls = 0
            self.calls_by_model = {}

    def get_stats(self) -> dict:
        """Get current stats as dict (thread-safe, no deadlock)."""
        # Acquire lock once, compute everything inline
        with self._lock:
            input_tokens = self.input_tokens
            output_tokens = self.output_tokens
            total_calls = self.total_calls
            by_model = dict(self.calls_by_model)
            input_cost = (input_tokens / 1000) * config.logging.cost_per_1k_input
            output_cost = (output_tokens / 1000) * config.logging.cost_per_1k_output

        return {
            "calls": total_calls,
            "calls_by_model": by_model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
            "estimated_cost": input_cost + output_cost,
        }


# Global token tracker instance
token_tracker = TokenTracker()
