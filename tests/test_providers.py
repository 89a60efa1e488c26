"""Tests for the concrete SDK providers.

Each provider gets a fake SDK client injected as ``_client`` so no SDK is
imported and nothing leaves the process; the tests check how a request
is mapped onto each SDK's streaming call and how replies and token
usage are collected.
"""

from types import SimpleNamespace

import pytest

from storyloom.llm.anthropic_provider import AnthropicProvider
from storyloom.llm.google_provider import GoogleProvider, flatten_messages
from storyloom.llm.openai_provider import OpenAIProvider
from storyloom.llm.provider import CompletionRequest, token_usage

MESSAGES = [{"role": "user", "content": "Describe the saloon."}]


# ---------------------------------------------------------------------------
# Fake SDK clients
# ---------------------------------------------------------------------------

class FakeAnthropicStream:
    def __init__(self, chunks, input_tokens, output_tokens):
        self.text_stream = iter(chunks)
        self._final = SimpleNamespace(
            usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens)
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def get_final_message(self):
        return self._final


class FakeAnthropicClient:
    def __init__(self, stream):
        self.calls = []
        self._stream = stream
        self.messages = SimpleNamespace(stream=self._open)

    def _open(self, **kwargs):
        self.calls.append(kwargs)
        return self._stream


class FakeOpenAIClient:
    def __init__(self, chunks):
        self.calls = []
        self._chunks = chunks
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        return iter(self._chunks)


def openai_chunk(text=None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=text))] if text is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


class FakeGoogleClient:
    def __init__(self, chunks):
        self.calls = []
        self._chunks = chunks
        self.models = SimpleNamespace(generate_content_stream=self._stream)

    def _stream(self, **kwargs):
        self.calls.append(kwargs)
        return iter(self._chunks)


# ---------------------------------------------------------------------------
# Tests: shared helpers
# ---------------------------------------------------------------------------

class TestTokenUsage:
    def test_totals(self):
        assert token_usage(12, 5) == {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}

    def test_missing_counts_are_zero(self):
        assert token_usage(None, 4)["total_tokens"] == 4


class TestDefaults:
    @pytest.mark.parametrize("cls,name", [
        (AnthropicProvider, "anthropic"),
        (OpenAIProvider, "openai"),
        (GoogleProvider, "google"),
    ])
    def test_names_and_models(self, cls, name):
        provider = cls(api_key="test-key")
        assert provider.name == name
        assert provider.default_model == provider.get_default_model()
        assert provider.get_fast_model()
        assert provider.max_retries == 2

    def test_model_override(self):
        assert AnthropicProvider(api_key="test-key", default_model="claude-opus-4-1").default_model == "claude-opus-4-1"


# ---------------------------------------------------------------------------
# Tests: AnthropicProvider
# ---------------------------------------------------------------------------

class TestAnthropicProvider:
    async def test_streams_and_collects(self):
        provider = AnthropicProvider(api_key="test-key")
        fake = FakeAnthropicClient(FakeAnthropicStream(["The saloon ", "is loud."], 20, 6))
        provider._client = fake

        resp = await provider.complete(MESSAGES, system="Be terse.", max_tokens=300, temperature=0.2)

        assert resp.content == "The saloon is loud."
        assert resp.model == "claude-sonnet-4-5"
        assert resp.usage == {"prompt_tokens": 20, "completion_tokens": 6, "total_tokens": 26}
        call = fake.calls[0]
        assert call["system"] == "Be terse."
        assert call["max_tokens"] == 300
        assert call["temperature"] == 0.2
        assert call["messages"] == MESSAGES

    async def test_no_system_prompt_omitted(self):
        provider = AnthropicProvider(api_key="test-key")
        fake = FakeAnthropicClient(FakeAnthropicStream(["ok"], 1, 1))
        provider._client = fake

        await provider.complete(MESSAGES, model="claude-haiku-4-5")

        assert "system" not in fake.calls[0]
        assert fake.calls[0]["model"] == "claude-haiku-4-5"

    async def test_non_retryable_error_propagates(self):
        class BadRequestError(Exception):
            pass

        def reject(**kwargs):
            raise BadRequestError("bad model")

        provider = AnthropicProvider(api_key="test-key")
        provider._client = SimpleNamespace(messages=SimpleNamespace(stream=reject))
        with pytest.raises(BadRequestError):
            await provider.complete(MESSAGES)


# ---------------------------------------------------------------------------
# Tests: OpenAIProvider
# ---------------------------------------------------------------------------

class TestOpenAIProvider:
    def test_reasoning_model_kwargs(self):
        request = CompletionRequest(messages=MESSAGES, model="gpt-5.2", system="Be terse.", max_tokens=400)
        kwargs = OpenAIProvider.build_kwargs(request)
        assert kwargs["max_completion_tokens"] == 400
        assert "temperature" not in kwargs
        assert "max_tokens" not in kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "Be terse."}
        assert kwargs["stream"] is True

    def test_chat_model_kwargs(self):
        request = CompletionRequest(messages=MESSAGES, model="gpt-4o", max_tokens=400, temperature=0.3)
        kwargs = OpenAIProvider.build_kwargs(request)
        assert kwargs["max_tokens"] == 400
        assert kwargs["temperature"] == 0.3
        assert kwargs["messages"] == MESSAGES

    async def test_streams_and_collects(self):
        provider = OpenAIProvider(api_key="test-key")
        fake = FakeOpenAIClient([
            openai_chunk("Whiskey "),
            openai_chunk("and dust."),
            openai_chunk(usage=SimpleNamespace(prompt_tokens=15, completion_tokens=4)),
        ])
        provider._client = fake

        resp = await provider.complete(MESSAGES)

        assert resp.content == "Whiskey and dust."
        assert resp.usage["total_tokens"] == 19
        assert fake.calls[0]["model"] == "gpt-5.2"


# ---------------------------------------------------------------------------
# Tests: GoogleProvider
# ---------------------------------------------------------------------------

class TestGoogleProvider:
    def test_flatten_messages(self):
        text = flatten_messages([
            {"role": "user", "content": "Where am I?"},
            {"role": "assistant", "content": "In Dry Gulch."},
            {"role": "user", "content": "And the sheriff?"},
        ])
        assert text == "Where am I?\n\nPrevious response: In Dry Gulch.\n\nAnd the sheriff?"

    async def test_streams_and_collects(self):
        provider = GoogleProvider(api_key="test-key")
        metadata = SimpleNamespace(prompt_token_count=9, candidates_token_count=3)
        fake = FakeGoogleClient([
            SimpleNamespace(text="Tumbleweeds ", usage_metadata=None),
            SimpleNamespace(text=None, usage_metadata=None),
            SimpleNamespace(text="roll by.", usage_metadata=metadata),
        ])
        provider._client = fake

        resp = await provider.complete(MESSAGES, system="Be terse.", max_tokens=128)

        assert resp.content == "Tumbleweeds roll by."
        assert resp.usage == {"prompt_tokens": 9, "completion_tokens": 3, "total_tokens": 12}
        call = fake.calls[0]
        assert call["contents"] == "Describe the saloon."
        assert call["config"] == {"max_output_tokens": 128, "temperature": 0.7, "system_instruction": "Be terse."}
