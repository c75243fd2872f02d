"""AI provider factory."""

from __future__ import annotations

from templaito.ai.anthropic_provider import AnthropicProvider
from templaito.ai.base import AIProvider
from templaito.ai.openai_provider import OpenAIProvider
from templaito.models import DesignEngine


def get_provider(engine: DesignEngine | str, config: dict | None = None) -> tuple[AIProvider, str]:
    """Return (provider_instance, model_name) for a design engine.

    ``config`` is the dict produced by ``AIConfig.to_provider_dict()``.
    """
    config = config or {}
    try:
        engine = DesignEngine(engine)
    except ValueError:
        raise ValueError(f"Unknown design engine: {engine!r}. Use 'CLAUDE' or 'GPT4O'.") from None

    timeout = float(config.get("timeout_seconds", 120.0))
    max_tokens = int(config.get("max_tokens", 4000))

    if engine == DesignEngine.CLAUDE:
        provider = AnthropicProvider(
            api_key=config.get("anthropic_api_key", ""), timeout=timeout, max_tokens=max_tokens,
        )
        return provider, config.get("anthropic_model", "claude-sonnet-4-20250514")
    provider = OpenAIProvider(
        api_key=config.get("openai_api_key", ""), timeout=timeout, max_tokens=max_tokens,
    )
    return provider, config.get("openai_model", "gpt-4o")


__all__ = ["AIProvider", "AnthropicProvider", "OpenAIProvider", "get_provider"]
