"""Template generation: scrape every country, pick a base country, then write copy and design once."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from templaito.errors import TemplaitoError
from templaito.models import GenerationResult, TemplateType
from templaito.orm import TemplateGeneration
from templaito.stages.content import ContentWriter, content_writer_for
from templaito.stages.design import DesignWriter, design_writer_for
from templaito.stages.scrape import Scraper, clean_country_urls, scrape_countries, select_base_country

logger = logging.getLogger(__name__)


def generate_template(
    country_urls: Mapping[str, list[str]],
    template_type: TemplateType,
    scraper: Scraper,
    *,
    ai_config: dict | None = None,
    content_writer: ContentWriter | None = None,
    design_writer: DesignWriter | None = None,
    max_workers: int = 4,
    scrape_timeout: float | None = None,
    cancel: threading.Event | None = None,
    session: Session | None = None,
    user_id: int | None = None,
) -> GenerationResult:
    """Build one canonical email template for a multi-country product set.

    The base country is the first country (input order) that yielded product
    data; only its data reaches the content and design writers. Writers are
    built from ``template_type.design_engine`` unless supplied. Each URL
    scrape is bounded by ``scrape_timeout`` seconds.

    Raises:
        NoUsableProductData: nothing could be scraped; no AI call is made.
        ContentGenerationFailure / DesignGenerationFailure: see ``reason``.
    """
    start = time.time()
    cleaned = clean_country_urls(country_urls)
    error: str | None = None
    successful = False

    try:
        results = scrape_countries(
            cleaned, template_type, scraper, max_workers=max_workers, cancel=cancel, timeout=scrape_timeout,
        )
        base_country = select_base_country(cleaned, results)
        base = results[base_country]
        logger.info("Base country %s (%d of %d countries scraped)", base_country, len(results), len(cleaned))

        if content_writer is None:
            content_writer = content_writer_for(template_type.design_engine, ai_config)
        if design_writer is None:
            design_writer = design_writer_for(template_type.design_engine, ai_config)

        content = content_writer.generate(template_type, base)
        email_template = design_writer.generate(template_type, content, base)
        successful = True
    except TemplaitoError as e:
        error = str(e)
        raise
    finally:
        if session is not None:
            record_generation(
                session,
                template_type=template_type,
                country_urls=cleaned,
                successful=successful,
                duration_ms=int((time.time() - start) * 1000),
                user_id=user_id,
                error=error,
            )

    return GenerationResult(
        base_country=base_country,
        country_results=results,
        email_template=email_template,
        preview_template=email_template.copy(),
        content=content,
    )


def record_generation(
    session: Session,
    template_type: TemplateType,
    country_urls: Mapping[str, list[str]],
    successful: bool,
    duration_ms: int,
    user_id: int | None = None,
    error: str | None = None,
) -> None:
    """Append a TemplateGeneration row. Failures are logged, never raised."""
    input_urls = [url for urls in country_urls.values() for url in urls]
    try:
        session.add(TemplateGeneration(
            prompt_id=template_type.id,
            user_id=user_id,
            was_successful=successful,
            generation_time=duration_ms,
            input_url=", ".join(input_urls),
            error_message=error,
        ))
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Could not record template generation: %s", e)
