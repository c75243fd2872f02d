"""Publish stage: localize the canonical template per country and create ESP newsletters."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from urllib.parse import urlencode, urlsplit, urlunsplit

from bs4 import BeautifulSoup, Comment, Doctype, NavigableString
from sqlalchemy import select
from sqlalchemy.orm import Session

from templaito.clients import get_client
from templaito.countries import list_country_configs
from templaito.errors import InvalidRequest
from templaito.fanout import fan_out
from templaito.integrations import IntegrationVault
from templaito.models import (
    CampaignStatus,
    CountryPublishResult,
    CountryScrapeResult,
    EmailTemplate,
    ImageOverrides,
    PublishResult,
)
from templaito.orm import Campaign, CampaignCountryTarget, utcnow

logger = logging.getLogger(__name__)

_CSS_URL_RE = re.compile(r"url\(\s*(['\"]?)(.*?)\1\s*\)")
_SKIP_TEXT_PARENTS = {"script", "style"}


@dataclass
class PublishRequest:
    client_id: int
    base_country: str
    subject: str
    preheader: str
    email_template: EmailTemplate
    country_results: dict[str, CountryScrapeResult]
    send_date: str | None = None
    image_overrides: ImageOverrides | None = None
    mailing_list_overrides: dict[str, str] = field(default_factory=dict)
    campaign_id: int | None = None
    campaign_name: str | None = None


@dataclass
class _Job:
    country_code: str
    mailing_list_id: str
    sender_email: str | None
    sender_name: str | None
    html: str


# --- Localization ---

def _replace_all(text: str, mapping: dict[str, str]) -> str:
    """Single-pass replacement, longest key first, so replacements never chain."""
    if not mapping:
        return text
    pattern = re.compile("|".join(re.escape(k) for k in sorted(mapping, key=len, reverse=True)))
    return pattern.sub(lambda m: mapping[m.group(0)], text)


_UTM_KEYS = ("utm_medium", "utm_source", "utm_campaign")


def _with_utm(url: str, utm_medium: str, country_code: str) -> str:
    """Replace any UTM pairs; other query pairs are kept byte-for-byte."""
    parts = urlsplit(url)
    kept = [pair for pair in parts.query.split("&") if pair and pair.split("=", 1)[0] not in _UTM_KEYS]
    kept.append(urlencode(dict(zip(_UTM_KEYS, (utm_medium, country_code, country_code)))))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "&".join(kept), parts.fragment))


def build_replacements(
    base: CountryScrapeResult,
    target: CountryScrapeResult,
    overrides: ImageOverrides | None = None,
) -> tuple[dict[str, str], dict[str, str], dict[str, str]]:
    """Return (images, prices, links) maps from base-country values to target values.

    Product ``i`` of the base country maps onto product ``i`` of the target.
    The image override picks which of the target product's images is used;
    indexes past the end fall back to the target's AI-picked image. When two
    base products share an image, the first product's replacement wins.
    """
    multi = base.multi_product_info is not None
    images: dict[str, str] = {}
    prices: dict[str, str] = {}
    links: dict[str, str] = {}

    target_products = target.products
    for i, base_product in enumerate(base.products):
        source = target_products[i] if i < len(target_products) else base_product
        index = overrides.index_for(i, multi) if overrides else None

        chosen = source.image_at(index)
        if base_product.best_image_url and chosen and chosen != base_product.best_image_url:
            images.setdefault(base_product.best_image_url, chosen)

        if source is not base_product:
            for old, new in (
                (base_product.regular_price, source.regular_price),
                (base_product.sale_price, source.sale_price),
                (base_product.discount, source.discount),
            ):
                if old and new and old != new:
                    prices.setdefault(old, new)

        base_url = base.url_for(i)
        target_url = target.url_for(i)
        if base_url and target_url and base_url != target_url:
            links[base_url] = target_url

    return images, prices, links


def localize_html(
    html: str,
    base: CountryScrapeResult,
    target: CountryScrapeResult,
    country_code: str,
    overrides: ImageOverrides | None = None,
    utm_medium: str | None = None,
) -> str:
    """Swap the base country's images, prices and links for ``target``'s.

    Images are only replaced in ``<img src>``, ``background`` attributes and
    CSS ``url(...)`` inside ``style`` attributes. Prices are replaced in text
    nodes, links in ``href``. With ``utm_medium`` every http(s) link gets
    utm_medium/utm_source/utm_campaign parameters.
    """
    images, prices, links = build_replacements(base, target, overrides)
    if not (images or prices or links or utm_medium):
        return html

    soup = BeautifulSoup(html, "html.parser")

    def _swap_css(match: re.Match) -> str:
        quote, url = match.group(1), match.group(2)
        return f"url({quote}{images.get(url, url)}{quote})"

    for tag in soup.find_all(True):
        if images:
            src = tag.get("src")
            if tag.name == "img" and src in images:
                tag["src"] = images[src]
            background = tag.get("background")
            if background in images:
                tag["background"] = images[background]
            style = tag.get("style")
            if style and "url(" in style:
                tag["style"] = _CSS_URL_RE.sub(_swap_css, style)

        href = tag.get("href") if tag.name == "a" else None
        if href:
            href = links.get(href, href)
            if utm_medium and href.startswith(("http://", "https://")):
                href = _with_utm(href, utm_medium, country_code)
            tag["href"] = href

    if prices:
        for node in soup.find_all(string=True):
            if isinstance(node, (Comment, Doctype)) or node.parent is None or node.parent.name in _SKIP_TEXT_PARENTS:
                continue
            replaced = _replace_all(str(node), prices)
            if replaced != node:
                node.replace_with(NavigableString(replaced))

    return str(soup)


# --- Publishing ---

def _load_campaign(session: Session, client_id: int, campaign_id: int) -> Campaign:
    campaign = session.scalar(
        select(Campaign).where(Campaign.id == campaign_id, Campaign.client_id == client_id)
    )
    if campaign is None:
        raise InvalidRequest(f"Campaign {campaign_id} not found for client {client_id}")
    return campaign


def publish_campaign(
    session: Session,
    vault: IntegrationVault,
    request: PublishRequest,
    max_workers: int = 4,
    cancel: threading.Event | None = None,
    default_campaign_name: str = "Newsletter",
) -> PublishResult:
    """Create one ESP newsletter per eligible country and record the campaign.

    A country is eligible when its config is active and has a mailing list
    (after ``mailing_list_overrides``); others are skipped silently. A failure
    for one country never stops the rest: it is reported in that country's
    result. Countries already published under ``campaign_id`` are not
    re-created.
    """
    get_client(session, request.client_id)
    api_key = vault.api_key_for(request.client_id)
    utm_medium = vault.get(request.client_id).meta.get("utmMedium") or None

    if not request.email_template.html:
        raise InvalidRequest("emailTemplate.html must be provided")
    if not request.country_results:
        raise InvalidRequest("countryResults must be an object keyed by country code")
    base = request.country_results.get(request.base_country)
    if base is None:
        raise InvalidRequest(f"Base country {request.base_country!r} has no scrape result")

    campaign = _load_campaign(session, request.client_id, request.campaign_id) if request.campaign_id else None
    published = {t.country_code: t for t in campaign.targets if t.external_id} if campaign else {}

    configs = {c.country_code: c for c in list_country_configs(session, request.client_id)}
    overrides = {k.upper(): v.strip() for k, v in (request.mailing_list_overrides or {}).items() if v and v.strip()}

    results: dict[str, CountryPublishResult] = {}
    skipped: list[str] = []
    jobs: list[_Job] = []
    for code, country_result in request.country_results.items():
        config = configs.get(code)
        mailing_list = overrides.get(code) or (config.mailing_list_id if config else None)
        if config is None or not config.is_active or not mailing_list:
            skipped.append(code)
            continue
        if code in published:
            results[code] = CountryPublishResult(code, external_id=published[code].external_id, already_published=True)
            continue
        jobs.append(_Job(
            country_code=code,
            mailing_list_id=mailing_list,
            sender_email=config.sender_email,
            sender_name=config.sender_name,
            html=localize_html(
                request.email_template.html, base, country_result, code,
                overrides=request.image_overrides, utm_medium=utm_medium,
            ),
        ))

    if skipped:
        logger.info("Skipping countries without an active mailing list: %s", ", ".join(skipped))

    def _publish(job: _Job) -> CountryPublishResult:
        try:
            newsletter_id = vault.esp.create_newsletter(
                api_key,
                country_code=job.country_code,
                mailing_list_id=job.mailing_list_id,
                subject=request.subject,
                preheader=request.preheader,
                html=job.html,
                sender_email=job.sender_email,
                sender_name=job.sender_name,
                send_date=request.send_date,
            )
        except Exception as e:
            logger.error("Publishing to %s failed: %s", job.country_code, e)
            return CountryPublishResult(job.country_code, error=str(e) or type(e).__name__)
        return CountryPublishResult(job.country_code, external_id=newsletter_id)

    for outcome in fan_out(_publish, jobs, max_workers=max_workers, cancel=cancel):
        results[outcome.country_code] = outcome

    ordered = [results[code] for code in request.country_results if code in results]
    new_targets = [(job, results[job.country_code]) for job in jobs if results[job.country_code].ok]

    if campaign is None and not jobs:
        return PublishResult(campaign_id=None, per_country_results=ordered, skipped_countries=skipped)

    if campaign is None:
        campaign = Campaign(
            client_id=request.client_id,
            name=request.campaign_name or request.subject or default_campaign_name,
            subject=request.subject,
            preheader=request.preheader,
            base_country=request.base_country,
        )
        session.add(campaign)

    if new_targets or published:
        if request.send_date:
            campaign.status = CampaignStatus.SCHEDULED.value
            campaign.scheduled_at = request.send_date
        else:
            campaign.status = CampaignStatus.SENDING.value
            campaign.sent_at = campaign.sent_at or utcnow()
    else:
        campaign.status = CampaignStatus.FAILED.value

    drafts = {t.country_code: t for t in campaign.targets}
    for job, outcome in new_targets:
        target = drafts.get(job.country_code)
        if target is None:
            target = CampaignCountryTarget(country_code=job.country_code)
            campaign.targets.append(target)
        target.mailing_list_id = job.mailing_list_id
        target.external_id = outcome.external_id
    session.commit()

    return PublishResult(campaign_id=campaign.id, per_country_results=ordered, skipped_countries=skipped)
