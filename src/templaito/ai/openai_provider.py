"""OpenAI AI provider: GPT-4o chat completions client."""

from __future__ import annotations

from templaito.errors import ProviderError


class OpenAIProvider:
    """OpenAI API client. Supports native JSON mode via ``response_format``."""

    name = "openai"
    supports_json_mode = True

    def __init__(self, api_key: str = "", timeout: float = 120.0, max_tokens: int = 4000):
        self.api_key = api_key
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client = None

    def _get_client(self):
        if self._client is None:
            import openai
            kwargs: dict = {"timeout": self.timeout}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            self._client = openai.OpenAI(**kwargs)
        return self._client

    def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        response_format: str | None = None,
    ) -> str:
        """Send a prompt to GPT and return the message content."""
        import openai

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict = {
            "model": model,
            "messages": messages,
            "max_tokens": self.max_tokens,
        }
        if response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = self._get_client().chat.completions.create(**kwargs)
        except openai.OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
