"""Content stage: marketing copy (subject, headline, body, CTA, preheader) from product data."""

from __future__ import annotations

import json
import logging

from templaito.ai import get_provider
from templaito.ai.base import AIProvider
from templaito.ai.parsing import parse_json_object
from templaito.ai.prompts import (
    CONTENT_PROMPT,
    CONTENT_SYSTEM_PROMPT,
    describe_products,
    render_prompt,
    tokens_for_result,
)
from templaito.errors import ContentGenerationFailure, ProviderError
from templaito.models import CountryScrapeResult, DesignEngine, GeneratedContent, TemplateType

logger = logging.getLogger(__name__)


def build_content_prompt(template_type: TemplateType, result: CountryScrapeResult) -> tuple[str, str]:
    """Return (system, user) prompts for the content call."""
    language = result.language
    scope = "multiple products" if result.multi_product_info is not None else "a product"
    system = CONTENT_SYSTEM_PROMPT.format(language=language, product_scope=scope)
    user = CONTENT_PROMPT.format(
        template_instructions=render_prompt(template_type.user_prompt, tokens_for_result(result)),
        product_details=describe_products(result.payload, result.urls),
        language=language,
    )
    return system, user


class ContentWriter:
    """Base content writer. Subclasses decide how the reply is requested and parsed."""

    engine: DesignEngine
    response_format: str | None = None

    def __init__(self, provider: AIProvider, model: str):
        self.provider = provider
        self.model = model

    def parse(self, raw: str) -> dict:
        raise NotImplementedError

    def generate(self, template_type: TemplateType, result: CountryScrapeResult) -> GeneratedContent:
        system, prompt = build_content_prompt(template_type, result)

        try:
            raw = self.provider.complete(prompt, self.model, system=system, response_format=self.response_format)
        except ProviderError as e:
            logger.error("Content generation call failed (%s): %s", self.engine.value, e)
            raise ContentGenerationFailure(
                f"Content generation failed: {e}",
                reason=ContentGenerationFailure.PROVIDER,
                engine=self.engine.value,
            ) from e

        try:
            data = self.parse(raw)
        except ValueError as e:
            logger.error("Unparseable content reply from %s", self.engine.value)
            raise ContentGenerationFailure(
                "Content reply was not a JSON object",
                reason=ContentGenerationFailure.UNPARSEABLE,
                engine=self.engine.value,
                raw_response=raw,
            ) from e

        return GeneratedContent.from_dict(data)


class GPT4oContentWriter(ContentWriter):
    """Uses native JSON mode, so the reply is parsed directly."""

    engine = DesignEngine.GPT4O
    response_format = "json"

    def parse(self, raw: str) -> dict:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        return data


class ClaudeContentWriter(ContentWriter):
    """No JSON mode; the reply may arrive inside a ```json fence."""

    engine = DesignEngine.CLAUDE

    def parse(self, raw: str) -> dict:
        return parse_json_object(raw)


_WRITERS: dict[DesignEngine, type[ContentWriter]] = {
    DesignEngine.CLAUDE: ClaudeContentWriter,
    DesignEngine.GPT4O: GPT4oContentWriter,
}


def content_writer_for(
    engine: DesignEngine | str,
    ai_config: dict | None = None,
    provider: AIProvider | None = None,
    model: str | None = None,
) -> ContentWriter:
    """Build the content writer for ``engine``; ``provider`` overrides the configured client."""
    engine = DesignEngine(engine)
    if provider is None:
        provider, default_model = get_provider(engine, ai_config)
        model = model or default_model
    return _WRITERS[engine](provider, model or "")
