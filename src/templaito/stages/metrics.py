"""Metrics stage: per-newsletter open and click rates from ESP report counters."""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from templaito.clients import get_client
from templaito.errors import MetricsUnavailable
from templaito.integrations import IntegrationVault
from templaito.models import NewsletterMetrics

logger = logging.getLogger(__name__)


def clean_newsletter_ids(raw_ids) -> list[str]:
    """Stringify, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for value in raw_ids or []:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            seen.setdefault(text, None)
    return list(seen)


def _count(data: dict, *keys: str) -> int:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        try:
            return max(int(value), 0)
        except (TypeError, ValueError):
            continue
    return 0


def rate(count: int, sent: int) -> float:
    return count / sent if sent > 0 else 0.0


def compute_metrics(report: dict) -> NewsletterMetrics:
    sent = _count(report, "sentTotal", "sent")
    opens = _count(report, "openTotal", "opens")
    clicks = _count(report, "clickTotal", "clicks")
    return NewsletterMetrics(
        sent_total=sent,
        open_total=opens,
        click_total=clicks,
        open_rate=rate(opens, sent),
        click_rate=rate(clicks, sent),
    )


def get_metrics(
    session: Session, vault: IntegrationVault, client_id: int, newsletter_ids,
) -> dict[str, NewsletterMetrics]:
    """Metrics for each newsletter the ESP has data for.

    Newsletters without data are omitted rather than zeroed, so callers can
    tell "not tracked yet" from "tracked, no engagement".
    """
    get_client(session, client_id)
    ids = clean_newsletter_ids(newsletter_ids)
    if not ids:
        return {}

    api_key = vault.api_key_for(client_id)
    try:
        reports = vault.esp.fetch_report_metrics(api_key, ids)
    except MetricsUnavailable:
        logger.info("No SqualoMail reports yet for client %s", client_id)
        return {}

    metrics: dict[str, NewsletterMetrics] = {}
    for newsletter_id in ids:
        report = reports.get(newsletter_id)
        if isinstance(report, dict) and report:
            metrics[newsletter_id] = compute_metrics(report)
    return metrics
