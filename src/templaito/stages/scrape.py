"""Multi-country scrape and merge: one CountryScrapeResult per country with usable data."""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Protocol, runtime_checkable

from templaito.errors import NoUsableProductData, ScrapeFailure
from templaito.fanout import fan_out
from templaito.models import CountryScrapeResult, ProductInfo, TemplateType

logger = logging.getLogger(__name__)


@runtime_checkable
class Scraper(Protocol):
    """Product page scraper supplied by the host application."""

    def scrape(self, url: str) -> ProductInfo:
        """Return product data for ``url``. Raise on failure (ScrapeFailure preferred)."""
        ...


def clean_country_urls(country_urls: Mapping[str, list[str]]) -> dict[str, list[str]]:
    """Strip URLs and drop blanks, preserving country and URL order."""
    cleaned: dict[str, list[str]] = {}
    for code, urls in country_urls.items():
        cleaned[code] = [u.strip() for u in urls or [] if isinstance(u, str) and u.strip()]
    return cleaned


def _scrape_bounded(scraper: Scraper, url: str, timeout: float | None) -> ProductInfo:
    """Run one scrape, raising ScrapeFailure if it outlives ``timeout`` seconds.

    The overrunning call is abandoned on its own thread, not interrupted.
    """
    if not timeout:
        return scraper.scrape(url)
    pool = ThreadPoolExecutor(max_workers=1)
    try:
        return pool.submit(scraper.scrape, url).result(timeout=timeout)
    except FuturesTimeout:
        raise ScrapeFailure(url, f"timed out after {timeout:g}s") from None
    finally:
        pool.shutdown(wait=False)


def _scrape_one(scraper: Scraper, job: tuple[str, str], timeout: float | None = None) -> ProductInfo | None:
    code, url = job
    try:
        return _scrape_bounded(scraper, url, timeout)
    except Exception as e:
        # any scraper failure only drops this URL
        logger.warning("Scrape failed for %s (%s): %s", url, code, e)
        return None


def _assemble(
    urls: list[str], products: list[ProductInfo | None], template_type: TemplateType,
) -> CountryScrapeResult | None:
    pairs = [(u, p) for u, p in zip(urls, products) if p is not None]
    if not pairs:
        return None

    if len(urls) == 1 and not template_type.is_multi_product:
        url, product = pairs[0]
        return CountryScrapeResult.single(url, product)

    return CountryScrapeResult.multi([u for u, _ in pairs], [p for _, p in pairs])


def scrape_countries(
    country_urls: Mapping[str, list[str]],
    template_type: TemplateType,
    scraper: Scraper,
    max_workers: int = 4,
    cancel: threading.Event | None = None,
    timeout: float | None = None,
) -> dict[str, CountryScrapeResult]:
    """Scrape every URL of every country and merge results per country.

    Countries whose URLs all failed (or that had none) are absent from the
    returned mapping. Input country order is preserved. A URL whose scrape
    takes longer than ``timeout`` seconds is dropped like any other failure.
    """
    cleaned = clean_country_urls(country_urls)
    jobs = [(code, url) for code, urls in cleaned.items() for url in urls]
    products = fan_out(
        lambda job: _scrape_one(scraper, job, timeout), jobs, max_workers=max_workers, cancel=cancel,
    )

    results: dict[str, CountryScrapeResult] = {}
    offset = 0
    for code, urls in cleaned.items():
        country_products = products[offset:offset + len(urls)]
        offset += len(urls)
        if not urls:
            continue
        result = _assemble(urls, country_products, template_type)
        if result is None:
            logger.warning("No usable product data for country %s", code)
            continue
        results[code] = result
    return results


def select_base_country(
    country_urls: Mapping[str, list[str]], results: Mapping[str, CountryScrapeResult],
) -> str:
    """First country, in input order, with a scrape result."""
    for code in country_urls:
        if code in results:
            return code
    raise NoUsableProductData(list(country_urls))
