"""OpenAI chat-completions provider."""

from .provider import CompletionRequest, LLMProvider, token_usage

# Reasoning models take max_completion_tokens and reject temperature
_REASONING_PREFIXES = ("gpt-5", "o1", "o3", "o4")


class OpenAIProvider(LLMProvider):

    @property
    def name(self) -> str:
        return "openai"

    def get_default_model(self) -> str:
        return "gpt-5.2"

    def get_fast_model(self) -> str:
        return "gpt-5-mini"

    def _init_client(self):
        import openai
        self._client = openai.OpenAI(api_key=self.api_key)

    @staticmethod
    def build_kwargs(request: CompletionRequest) -> dict:
        """Chat-completions arguments for a request, system prompt first."""
        messages = []
        if request.system:
            messages.append({"role": "system", "content": request.system})
        messages.extend(request.messages)

        kwargs = {
            "model": request.model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if request.model.startswith(_REASONING_PREFIXES):
            kwargs["max_completion_tokens"] = request.max_tokens
        else:
            kwargs["max_tokens"] = request.max_tokens
            kwargs["temperature"] = request.temperature
        return kwargs

    def _collect(self, request: CompletionRequest):
        parts = []
        final_usage = None
        for chunk in self._client.chat.completions.create(**self.build_kwargs(request)):
            if chunk.choices and chunk.choices[0].delta.content:
                parts.append(chunk.choices[0].delta.content)
            if getattr(chunk, "usage", None):
                final_usage = chunk.usage

        usage = {}
        if final_usage is not None:
            usage = token_usage(final_usage.prompt_tokens, final_usage.completion_tokens)
        return "".join(parts), usage, None
