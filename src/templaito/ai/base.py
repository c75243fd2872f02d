"""AI provider protocol."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class AIProvider(Protocol):
    """Protocol for AI model providers."""

    name: str
    supports_json_mode: bool

    def complete(
        self,
        prompt: str,
        model: str,
        system: str = "",
        response_format: str | None = None,
    ) -> str:
        """Send a prompt and return the raw text of the reply.

        Args:
            prompt: the user prompt
            model: model name/identifier
            system: optional system prompt
            response_format: if "json", request the provider's native JSON mode
                (ignored by providers without one)

        Raises:
            ProviderError: the call failed or timed out.
        """
        ...
