"""Anthropic AI provider: Claude API client."""

from __future__ import annotations

from templaito.errors import ProviderError


class AnthropicProvider:
    """Anthropic API client for Claude models. Has no native JSON mode."""

    name = "anthropic"
    supports_json_mode = False

    def __init__(self, api_key: str = "", timeout: float = 120.0, max_tokens: int = 4000):
        self.api_key = api_key
        self.timeout = timeout
        self.max_tokens = max_tokens
        self._client = None

    def _get_client(self):
        if self._client is None:
            import anthropic
            kwargs: dict = {"timeout": self.timeout}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            self._client = anthropic.Anthropic(**kwargs)
        return self._client

    def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        response_format: str | None = None,
    ) -> str:
        """Send a prompt to Claude and return the concatenated text blocks."""
        import anthropic

        kwargs: dict = {
            "model": model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            kwargs["system"] = system

        try:
            response = self._get_client().messages.create(**kwargs)
        except anthropic.APIError as e:
            raise ProviderError(self.name, str(e)) from e
        except TypeError as e:
            # raised by the SDK when no API key or auth token resolves
            if "authentication" not in str(e):
                raise
            raise ProviderError(self.name, str(e)) from e

        response_text = ""
        for block in response.content:
            if getattr(block, "type", "text") == "text" and hasattr(block, "text"):
                response_text += block.text
        return response_text
