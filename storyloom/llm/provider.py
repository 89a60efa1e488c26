"""Abstract LLM provider interface.

storyloom only needs plain text completion: decision JSON and summaries
are parsed on our side, so every provider behaves the same way. The
base class owns the request normalization, the executor hop, overload
retries and usage logging; a provider only maps a CompletionRequest
onto its SDK's streaming call.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class LLMResponse:
    """Collected reply from any provider."""

    content: str
    model: str = ""
    usage: Dict[str, int] = field(default_factory=dict)
    """{prompt_tokens, completion_tokens, total_tokens}; empty when the SDK reports none."""
    raw_response: Any = None


@dataclass
class CompletionRequest:
    """One completion, normalized before it reaches an SDK."""

    messages: List[Dict[str, str]]
    model: str
    system: str = ""
    max_tokens: int = 1024
    temperature: float = 0.7


def token_usage(prompt_tokens: Optional[int], completion_tokens: Optional[int]) -> Dict[str, int]:
    prompt_tokens = prompt_tokens or 0
    completion_tokens = completion_tokens or 0
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }


class LLMProvider(ABC):
    """Base class for text-completion providers.

    Args:
        api_key: API key for the provider
        default_model: model for decision generation (provider default if None)
        max_retries: overload/rate-limit retries per completion
    """

    def __init__(self, api_key: str, default_model: Optional[str] = None, max_retries: int = 2):
        self.api_key = api_key
        self.default_model = default_model or self.get_default_model()
        self.max_retries = max_retries
        self._client = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name ('anthropic', 'google', 'openai')."""

    @abstractmethod
    def get_default_model(self) -> str:
        """Model used for decision generation."""

    @abstractmethod
    def get_fast_model(self) -> str:
        """Cheaper model used for history summaries."""

    @abstractmethod
    def _init_client(self):
        """Create the SDK client (called lazily on first use)."""

    @abstractmethod
    def _collect(self, request: CompletionRequest) -> Tuple[str, Dict[str, int], Any]:
        """Blocking SDK call: stream the reply, return (text, usage, raw)."""

    async def complete(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        max_retries: Optional[int] = None,
    ) -> LLMResponse:
        """Generate a text completion.

        Args:
            messages: [{role, content}] in conversation order
            system: system prompt
            model: overrides default_model for this call
            max_tokens: reply token cap
            temperature: sampling temperature
            max_retries: overrides the provider's max_retries for this call

        Returns:
            LLMResponse with the collected text
        """
        self._ensure_client()
        request = CompletionRequest(
            messages=list(messages),
            model=model or self.default_model,
            system=system or "",
            max_tokens=max_tokens,
            temperature=temperature,
        )
        text, usage, raw = await self._run_with_retry(lambda: self._collect(request), max_retries=max_retries)
        logger.debug(
            f"[{self.name}] {request.model}: {usage.get('prompt_tokens', 0)} in / "
            f"{usage.get('completion_tokens', 0)} out"
        )
        return LLMResponse(content=text, model=request.model, usage=usage, raw_response=raw)

    # ── Retry helper ──────────────────────────────────────────────

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        """True for transient overload/rate-limit errors.

        Recognizes Anthropic (OverloadedError, RateLimitError, status 529)
        and OpenAI (RateLimitError, status 429) by name and status, so no
        SDK has to be importable.
        """
        if type(exc).__name__ in ("OverloadedError", "RateLimitError"):
            return True

        if getattr(exc, "status_code", None) in (429, 529):
            return True

        err_body = getattr(exc, "body", None)
        if isinstance(err_body, dict):
            err_type = err_body.get("error", {}).get("type", "")
            if err_type in ("overloaded_error", "rate_limit_error"):
                return True

        return False

    async def _run_with_retry(
        self,
        sync_fn: Callable[[], T],
        max_retries: Optional[int] = None,
        base_delay: float = 1.0,
    ) -> T:
        """Run a blocking SDK call in the default executor, retrying on overload."""
        if max_retries is None:
            max_retries = self.max_retries
        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            try:
                return await loop.run_in_executor(None, sync_fn)
            except Exception as exc:
                if not self._is_retryable(exc) or attempt >= max_retries:
                    raise
                delay = base_delay * (2 ** attempt)
                attempt += 1
                logger.warning(
                    f"[{self.name}] {type(exc).__name__}, retry {attempt}/{max_retries} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

    def _ensure_client(self):
        if self._client is None:
            self._init_client()
