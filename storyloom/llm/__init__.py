"""LLM provider package - multi-provider support plus engine-facing adapters."""

from .client import LanguageModel, LanguageModelClient, ProviderSummarizer, Summarizer
from .manager import LLMManager
from .provider import LLMProvider, LLMResponse

__all__ = [
    "LLMProvider", "LLMResponse", "LLMManager",
    "LanguageModel", "LanguageModelClient", "Summarizer", "ProviderSummarizer",
]
