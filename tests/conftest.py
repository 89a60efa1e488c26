"""
Shared test fixtures for the storyloom test suite.

Provides:
- MockLLMProvider: deterministic provider stub (no API keys needed)
- MockLanguageModel / FakeSummarizer: engine-facing collaborator doubles
- FixedClock: manually advanced millisecond clock
- Populated FactStore, template library and fast-retry settings
"""

import asyncio
import json
import os
from collections import deque
from typing import Any

import pytest

# Set test environment BEFORE any storyloom imports
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

from storyloom.enums import ExternalErrorKind, FactCategory
from storyloom.errors import ExternalServiceError
from storyloom.decisions.models import GameStateSnapshot
from storyloom.decisions.templates import TemplateLibrary
from storyloom.llm.provider import CompletionRequest, LLMProvider, LLMResponse
from storyloom.lore.store import FactStore
from storyloom.settings import EngineSettings

START_MS = 1_700_000_000_000


# ---------------------------------------------------------------------------
# MockLLMProvider: deterministic provider stub
# ---------------------------------------------------------------------------

class MockLLMProvider(LLMProvider):
    """LLM provider that returns canned responses from a queue.

    Usage:
        provider = MockLLMProvider()
        provider.queue_response("Hello world")
        resp = await provider.complete(messages=[...])
        assert resp.content == "Hello world"
    """

    def __init__(self):
        super().__init__(api_key="mock-key", default_model="mock-model")
        self._response_queue: deque[LLMResponse | Exception] = deque()
        self._call_history: list[dict[str, Any]] = []

    def queue_response(self, content: str = "", **kwargs):
        """Queue a text response."""
        self._response_queue.append(LLMResponse(content=content, model="mock-model", **kwargs))

    def queue_exception(self, exc: Exception):
        """Queue an exception to be raised by the next complete() call."""
        self._response_queue.append(exc)

    @property
    def call_history(self) -> list[dict[str, Any]]:
        return self._call_history

    @property
    def name(self) -> str:
        return "mock"

    def get_default_model(self) -> str:
        return "mock-model"

    def get_fast_model(self) -> str:
        return "mock-fast"

    def _collect(self, request: CompletionRequest):
        self._call_history.append({
            "method": "complete",
            "messages": request.messages,
            "system": request.system,
            "model": request.model,
            "max_tokens": request.max_tokens,
        })
        if self._response_queue:
            item = self._response_queue.popleft()
            if isinstance(item, Exception):
                raise item
            return item.content, item.usage, item
        return "mock response", {}, None

    def _init_client(self):
        self._client = object()


# ---------------------------------------------------------------------------
# Engine collaborator doubles
# ---------------------------------------------------------------------------

def decision_json(
    prompt: str = "How do you deal with the stranger at the bar?",
    options: list[str] | None = None,
    importance: str = "moderate",
) -> str:
    """A model-style decision reply."""
    options = options if options is not None else [
        "Buy the stranger a drink",
        "Ask the bartender about him",
        "Leave the saloon quietly",
    ]
    return json.dumps({
        "prompt": prompt,
        "options": [
            {"text": text, "impact": f"Consequence of choosing to {text.lower()}", "tags": ["test"]}
            for text in options
        ],
        "context": "A stranger has been watching you.",
        "importance": importance,
    })


class MockLanguageModel:
    """LanguageModel double. Queued items are reply strings or exceptions."""

    def __init__(self, delay_s: float = 0.0):
        self._queue: deque[str | Exception] = deque()
        self.calls: list[dict[str, Any]] = []
        self.delay_s = delay_s

    def queue_response(self, text: str):
        self._queue.append(text)

    def queue_decision(self, **kwargs):
        self._queue.append(decision_json(**kwargs))

    def queue_error(self, kind: ExternalErrorKind, message: str = "mock failure"):
        self._queue.append(ExternalServiceError(kind, message))

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, prompt: str, timeout_s: float) -> str:
        self.calls.append({"prompt": prompt, "timeout_s": timeout_s})
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self._queue:
            item = self._queue.popleft()
            if isinstance(item, Exception):
                raise item
            return item
        return decision_json()


class FakeSummarizer:
    """Summarizer double returning a fixed summary, or raising."""

    def __init__(
        self,
        summary: str = "The posse rode out and the town held its breath.",
        error: Exception | None = None,
        delay_s: float = 0.0,
        delays: list[float] | None = None,
    ):
        self.summary = summary
        self.error = error
        self.delay_s = delay_s
        self.delays = deque(delays or [])  # per-call, consumed in order before delay_s
        self.calls: list[dict[str, Any]] = []

    async def summarize(self, long_text: str, target_length: int, timeout_s: float) -> str:
        self.calls.append({"long_text": long_text, "target_length": target_length, "timeout_s": timeout_s})
        delay = self.delays.popleft() if self.delays else self.delay_s
        if delay:
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error
        return self.summary


class FixedClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = START_MS):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    """Fresh MockLLMProvider for each test."""
    return MockLLMProvider()


@pytest.fixture
def language_model():
    return MockLanguageModel()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def settings():
    """Default settings with no retry pause."""
    return EngineSettings(retry_backoff_s=0.0, generation_timeout_s=2.0)


@pytest.fixture
def templates():
    return TemplateLibrary()


@pytest.fixture
def fact_store(clock):
    """A store with one fact per category."""
    store = FactStore(clock=clock)
    store.add_fact({
        "content": "Sheriff Cole is the lawman of Dry Gulch",
        "category": FactCategory.CHARACTER,
        "importance": 8, "confidence": 7,
        "tags": ["sheriff cole", "dry gulch"],
    })
    store.add_fact({
        "content": "The Silver Spur saloon is open every night",
        "category": FactCategory.LOCATION,
        "importance": 6, "confidence": 6,
        "tags": ["silver spur", "saloon", "dry gulch"],
    })
    store.add_fact({
        "content": "The bank was robbed 3 times last year",
        "category": FactCategory.HISTORY,
        "importance": 5, "confidence": 5,
        "tags": ["bank"],
    })
    store.add_fact({
        "content": "The silver revolver belongs to Jed",
        "category": FactCategory.ITEM,
        "importance": 4, "confidence": 5,
        "tags": ["revolver", "jed"],
    })
    store.add_fact({
        "content": "Gambling is allowed in Dry Gulch",
        "category": FactCategory.CONCEPT,
        "importance": 3, "confidence": 5,
        "tags": ["gambling"],
    })
    return store


@pytest.fixture
def saloon_state():
    """Calm social moment inside the saloon."""
    return GameStateSnapshot(
        current_location="Silver Spur Saloon",
        active_characters=("Sheriff Cole",),
        recent_narrative="The sheriff leans on the bar.",
        recent_topics=("saloon",),
    )
