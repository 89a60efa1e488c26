"""LLM Manager - provider factory driven by Config."""

import logging
from typing import Dict, List, Optional

from ..config import Config
from .anthropic_provider import AnthropicProvider
from .client import LanguageModelClient, ProviderSummarizer
from .google_provider import GoogleProvider
from .openai_provider import OpenAIProvider
from .provider import LLMProvider

logger = logging.getLogger(__name__)

_PROVIDER_CLASSES = {
    "google": GoogleProvider,
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


class LLMManager:
    """Builds and caches providers, and the engine adapters on top of them.

    Explicit keys win over the environment (see Config).
    """

    def __init__(
        self,
        primary_provider: Optional[str] = None,
        google_api_key: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
    ):
        env_keys = Config.api_keys()
        self._keys = {
            "google": google_api_key or env_keys["google"],
            "anthropic": anthropic_api_key or env_keys["anthropic"],
            "openai": openai_api_key or env_keys["openai"],
        }
        self._primary = self._resolve_primary(primary_provider)
        self._providers: Dict[str, LLMProvider] = {}

    def _resolve_primary(self, requested: Optional[str]) -> str:
        if requested and self._keys.get(requested.lower()):
            return requested.lower()
        primary = Config.primary_provider(self._keys)
        if primary is None:
            raise ValueError(
                "No LLM API keys configured. Set one of: "
                "GOOGLE_API_KEY, ANTHROPIC_API_KEY, or OPENAI_API_KEY"
            )
        return primary

    def get_provider(self, provider_name: Optional[str] = None) -> LLMProvider:
        """Cached provider instance, the primary by default."""
        name = (provider_name or self._primary).lower()

        if name in self._providers:
            return self._providers[name]

        if name not in _PROVIDER_CLASSES:
            raise ValueError(f"Unknown provider: {name}")
        if not self._keys[name]:
            raise ValueError(f"{name} API key not configured")

        provider = _PROVIDER_CLASSES[name](
            api_key=self._keys[name],
            default_model=Config.DECISION_MODEL or None,
        )
        logger.info(f"Using {name} provider ({provider.default_model})")
        self._providers[name] = provider
        return provider

    def language_model(self, provider_name: Optional[str] = None) -> LanguageModelClient:
        """LanguageModel for decision generation."""
        return LanguageModelClient(self.get_provider(provider_name))

    def summarizer(self, provider_name: Optional[str] = None) -> ProviderSummarizer:
        """Summarizer on the provider's fast model."""
        return ProviderSummarizer(self.get_provider(provider_name))

    @property
    def primary_provider(self) -> str:
        return self._primary

    def list_available_providers(self) -> List[str]:
        """Providers that have API keys configured."""
        return [name for name, key in self._keys.items() if key]
