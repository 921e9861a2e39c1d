"""
Shared pytest fixtures and configuration for the tutor engine tests.

This file is automatically discovered by pytest and provides
fixtures available to all tests.
"""

import json
import sys
from pathlib import Path

import pytest

# Make the ``src`` namespace package importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.errors import UpstreamUnavailable  # noqa: E402
from src.models.reflection_point import Chapter  # noqa: E402
from src.models.transcript import TranscriptSegment  # noqa: E402
from src.utils.llm_client import ModelChain, extract_json  # noqa: E402
from src.utils.store import ReflectionStore  # noqa: E402


class ScriptedClient:
    """
    Stand-in for JSONChatClient that replays scripted replies.

    Each reply is a dict (sent as JSON), a raw string, or an exception to raise.
    Once the script runs out every call raises UpstreamUnavailable.
    """

    def __init__(self, model_name, replies):
        self.model_name = model_name
        self.replies = list(replies)
        self.calls = []

    def complete(self, messages):
        self.calls.append(messages)
        if not self.replies:
            raise UpstreamUnavailable(f"{self.model_name} request failed: no scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply if isinstance(reply, str) else json.dumps(reply)

    def complete_json(self, messages):
        return extract_json(self.complete(messages))


@pytest.fixture
def scripted_chain():
    """
    Factory for ModelChains backed by ScriptedClient.

    Usage:
        chain = scripted_chain(["small", "large"], {"small": [{"question": "Q?"}]})
        chain.client("small").calls  # messages sent to "small"
    """

    def build(models, replies=None):
        replies = replies or {}

        def factory(model_name, **kwargs):
            return ScriptedClient(model_name, replies.get(model_name, []))

        return ModelChain(models, client_factory=factory)

    return build


@pytest.fixture
def store():
    """In-memory ReflectionStore, opened for the test and closed afterwards."""
    handle = ReflectionStore(":memory:").open()
    yield handle
    handle.close()


@pytest.fixture
def sample_segments():
    """
    Ten transcript segments spread evenly over 0-500 seconds.

    Returns:
        list[TranscriptSegment]: Segments whose last start is 500s
    """
    return [
        TranscriptSegment(
            start_seconds=round(i * 500 / 9, 2),
            text=f"Part {i} of the lecture on cell biology and photosynthesis.",
            duration_seconds=5.0,
        )
        for i in range(10)
    ]


@pytest.fixture
def chapter_with_transcript(store, sample_segments):
    """A stored chapter with a YouTube URL and a cached transcript."""
    chapter = Chapter(
        id="ch-bio-1",
        title="Cell Biology",
        video_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        transcript=sample_segments,
    )
    return store.upsert_chapter(chapter)


@pytest.fixture(autouse=True)
def reset_token_tracker():
    """
    Auto-fixture to reset token tracker before each test.

    This ensures tests don't interfere with each other.
    """
    from src.config import token_tracker

    token_tracker.reset()
    yield
    token_tracker.reset()


# Pytest hooks for better test output


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark tests in unit/ directory as unit tests
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Mark tests in integration/ directory as integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
