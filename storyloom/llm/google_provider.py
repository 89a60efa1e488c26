"""Google Gemini provider (google.genai SDK)."""

from typing import Dict, List

from .provider import CompletionRequest, LLMProvider, token_usage


def flatten_messages(messages: List[Dict[str, str]]) -> str:
    """Gemini gets one contents string; earlier model turns are labelled."""
    parts = []
    for msg in messages:
        content = msg.get("content", "")
        if msg.get("role", "user") == "assistant":
            parts.append(f"Previous response: {content}")
        else:
            parts.append(content)
    return "\n\n".join(parts)


class GoogleProvider(LLMProvider):

    @property
    def name(self) -> str:
        return "google"

    def get_default_model(self) -> str:
        return "gemini-3-flash-preview"

    def get_fast_model(self) -> str:
        return "gemini-3-flash-preview"

    def _init_client(self):
        from google import genai
        self._client = genai.Client(api_key=self.api_key)

    def _collect(self, request: CompletionRequest):
        config = {
            "max_output_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.system:
            config["system_instruction"] = request.system

        parts = []
        last_chunk = None
        for chunk in self._client.models.generate_content_stream(
            model=request.model,
            contents=flatten_messages(request.messages),
            config=config,
        ):
            parts.append(chunk.text or "")
            last_chunk = chunk

        usage = {}
        metadata = getattr(last_chunk, "usage_metadata", None)
        if metadata is not None:
            usage = token_usage(
                getattr(metadata, "prompt_token_count", 0),
                getattr(metadata, "candidates_token_count", 0),
            )
        return "".join(parts), usage, last_chunk
