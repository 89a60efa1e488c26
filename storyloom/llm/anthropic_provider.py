"""Anthropic Claude provider."""

from .provider import CompletionRequest, LLMProvider, token_usage


class AnthropicProvider(LLMProvider):
    """Claude: Sonnet writes decisions, Haiku summarizes history."""

    @property
    def name(self) -> str:
        return "anthropic"

    def get_default_model(self) -> str:
        return "claude-sonnet-4-5"

    def get_fast_model(self) -> str:
        return "claude-haiku-4-5"

    def _init_client(self):
        import anthropic
        self._client = anthropic.Anthropic(api_key=self.api_key)

    def _collect(self, request: CompletionRequest):
        kwargs = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": request.messages,
        }
        if request.system:
            kwargs["system"] = request.system

        # Streamed so long replies are never cut by the non-streaming timeout
        with self._client.messages.stream(**kwargs) as stream:
            text = "".join(stream.text_stream)
            final_message = stream.get_final_message()

        usage = {}
        if getattr(final_message, "usage", None):
            usage = token_usage(final_message.usage.input_tokens, final_message.usage.output_tokens)
        return text, usage, final_message
