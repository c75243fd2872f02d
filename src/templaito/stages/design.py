"""Design stage: turn generated copy and product data into a standalone HTML email."""

from __future__ import annotations

import logging

from templaito.ai import get_provider
from templaito.ai.base import AIProvider
from templaito.ai.parsing import unwrap_html
from templaito.ai.prompts import (
    DESIGN_PROMPT,
    EMAIL_ADDRESS_TOKEN,
    EMAIL_REQUIREMENTS,
    UNSUBSCRIBE_TOKEN,
    describe_products,
    render_prompt,
    tokens_for_result,
)
from templaito.errors import DesignGenerationFailure, ProviderError
from templaito.models import (
    CountryScrapeResult,
    DesignEngine,
    EmailTemplate,
    GeneratedContent,
    TemplateType,
)

logger = logging.getLogger(__name__)

SINGLE_SUBJECT_FALLBACK = "Email Template"
MULTI_SUBJECT_FALLBACK = "Multi-Product Email Template"


def build_design_prompt(
    template_type: TemplateType, content: GeneratedContent, result: CountryScrapeResult,
) -> str:
    multi = result.multi_product_info is not None
    if multi:
        layout = "multi-product landing page"
        layout_requirement = f"Multi-product landing page for {len(result.products)} products"
    else:
        layout = "single-product"
        layout_requirement = "Single product showcase with a prominent hero image"

    return DESIGN_PROMPT.format(
        layout=layout,
        requirements=EMAIL_REQUIREMENTS.format(
            email_token=EMAIL_ADDRESS_TOKEN, unsubscribe_token=UNSUBSCRIBE_TOKEN,
        ),
        template_name=template_type.name,
        template_description=template_type.description,
        template_instructions=render_prompt(template_type.user_prompt, tokens_for_result(result)),
        layout_requirement=layout_requirement,
        subject=content.subject,
        headline=content.headline,
        body_text=content.body_text,
        cta_text=content.cta_text,
        preheader=content.preheader,
        product_details=describe_products(result.payload, result.urls),
        unsubscribe_token=UNSUBSCRIBE_TOKEN,
    )


class DesignWriter:
    engine: DesignEngine
    response_format: str | None = None

    def __init__(self, provider: AIProvider, model: str):
        self.provider = provider
        self.model = model

    def extract_html(self, raw: str) -> str:
        return raw.strip()

    def generate(
        self, template_type: TemplateType, content: GeneratedContent, result: CountryScrapeResult,
    ) -> EmailTemplate:
        prompt = build_design_prompt(template_type, content, result)

        try:
            raw = self.provider.complete(prompt, self.model, system=template_type.system_prompt)
        except ProviderError as e:
            logger.error("Design generation call failed (%s): %s", self.engine.value, e)
            raise DesignGenerationFailure(
                f"Design generation failed: {e}",
                reason=DesignGenerationFailure.PROVIDER,
                engine=self.engine.value,
            ) from e

        html = self.extract_html(raw)
        if not html:
            raise DesignGenerationFailure(
                "Design reply contained no HTML",
                reason=DesignGenerationFailure.UNPARSEABLE,
                engine=self.engine.value,
                raw_response=raw,
            )
        if UNSUBSCRIBE_TOKEN not in html:
            logger.warning("Generated HTML is missing the unsubscribe token")

        fallback = MULTI_SUBJECT_FALLBACK if result.multi_product_info is not None else SINGLE_SUBJECT_FALLBACK
        return EmailTemplate(subject=content.subject or fallback, html=html)


class GPT4oDesignWriter(DesignWriter):
    engine = DesignEngine.GPT4O


class ClaudeDesignWriter(DesignWriter):
    """Claude sometimes answers with ``{"html": ...}`` despite instructions."""

    engine = DesignEngine.CLAUDE

    def extract_html(self, raw: str) -> str:
        return unwrap_html(raw)


_WRITERS: dict[DesignEngine, type[DesignWriter]] = {
    DesignEngine.CLAUDE: ClaudeDesignWriter,
    DesignEngine.GPT4O: GPT4oDesignWriter,
}


def design_writer_for(
    engine: DesignEngine | str,
    ai_config: dict | None = None,
    provider: AIProvider | None = None,
    model: str | None = None,
) -> DesignWriter:
    engine = DesignEngine(engine)
    if provider is None:
        provider, default_model = get_provider(engine, ai_config)
        model = model or default_model
    return _WRITERS[engine](provider, model or "")
