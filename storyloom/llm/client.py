"""
Engine-facing collaborators built on an LLMProvider.

The decision pipeline and context assembler only know two narrow
contracts:

    LanguageModel.generate(prompt, timeout_s) -> str
    Summarizer.summarize(long_text, target_length, timeout_s) -> str

Both raise ExternalServiceError with kind timeout / transport_error /
invalid_response. Anything a host can call that way works, including
test doubles.

Provider-level overload retries are disabled for these calls: retrying
is left to the generation strategy (generation_retries).
"""

import asyncio
import logging
from typing import Protocol, runtime_checkable

from ..enums import ExternalErrorKind
from ..errors import ExternalServiceError
from .provider import LLMProvider

logger = logging.getLogger(__name__)

DECISION_SYSTEM_PROMPT = (
    "You are the decision designer for a tabletop-style role-playing game. "
    "Reply with a single JSON object and nothing else."
)

SUMMARY_SYSTEM_PROMPT = (
    "You compress role-playing session history. Keep names, places, "
    "promises, debts and unresolved threats. Drop flavour text."
)


@runtime_checkable
class LanguageModel(Protocol):
    async def generate(self, prompt: str, timeout_s: float) -> str: ...


@runtime_checkable
class Summarizer(Protocol):
    async def summarize(self, long_text: str, target_length: int, timeout_s: float) -> str: ...


async def _complete_text(
    provider: LLMProvider,
    prompt: str,
    timeout_s: float,
    *,
    system: str,
    model: str | None,
    max_tokens: int,
    service: str,
) -> str:
    """Run one completion and map every failure onto ExternalServiceError."""
    try:
        response = await asyncio.wait_for(
            provider.complete(
                messages=[{"role": "user", "content": prompt}],
                system=system,
                model=model,
                max_tokens=max_tokens,
                max_retries=0,
            ),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError as e:
        raise ExternalServiceError(
            ExternalErrorKind.TIMEOUT, f"no reply within {timeout_s}s", service=service
        ) from e
    except asyncio.CancelledError:
        raise
    except Exception as e:
        raise ExternalServiceError(
            ExternalErrorKind.TRANSPORT_ERROR, f"{type(e).__name__}: {e}", service=service
        ) from e

    text = (response.content or "").strip()
    if not text:
        raise ExternalServiceError(
            ExternalErrorKind.INVALID_RESPONSE, "empty completion", service=service
        )
    return text


class LanguageModelClient:
    """LanguageModel backed by a concrete provider."""

    def __init__(self, provider: LLMProvider, model: str | None = None, max_tokens: int = 1024):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens

    async def generate(self, prompt: str, timeout_s: float) -> str:
        logger.debug(f"[{self.provider.name}] generate: {len(prompt)} chars, timeout={timeout_s}s")
        return await _complete_text(
            self.provider,
            prompt,
            timeout_s,
            system=DECISION_SYSTEM_PROMPT,
            model=self.model,
            max_tokens=self.max_tokens,
            service="llm",
        )


class ProviderSummarizer:
    """Summarizer backed by a provider's fast model."""

    def __init__(self, provider: LLMProvider, model: str | None = None):
        self.provider = provider
        self.model = model or provider.get_fast_model()

    async def summarize(self, long_text: str, target_length: int, timeout_s: float) -> str:
        prompt = (
            f"Summarize the following session history in at most {target_length} words.\n\n"
            f"{long_text}"
        )
        # Rough words-to-tokens headroom for the reply
        max_tokens = max(64, int(target_length * 2))
        return await _complete_text(
            self.provider,
            prompt,
            timeout_s,
            system=SUMMARY_SYSTEM_PROMPT,
            model=self.model,
            max_tokens=max_tokens,
            service="summarizer",
        )
