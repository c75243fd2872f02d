"""REST API routes for generation, integrations, publishing and reporting."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from templaito.analytics import usage_summary
from templaito.campaigns import list_campaigns
from templaito.catalog import get_prompt, list_active_prompts
from templaito.config import load_config
from templaito.countries import list_country_configs, update_country_configs
from templaito.crypto import SecretBox
from templaito.database import SessionLocal
from templaito.errors import (
    ClientNotFound,
    ConfigurationError,
    ESPError,
    GenerationFailure,
    IntegrationDecryptionFailure,
    IntegrationNotConnected,
    IntegrationValidationFailure,
    InvalidRequest,
    NoUsableProductData,
    OperationCancelled,
    TemplaitoError,
)
from templaito.integrations import IntegrationVault, sanitize_integration
from templaito.models import CountryScrapeResult, EmailTemplate, ImageOverrides, TemplateType
from templaito.pipeline import generate_template
from templaito.squalomail import SqualoMailClient
from templaito.stages.metrics import get_metrics
from templaito.stages.publish import PublishRequest, publish_campaign

logger = logging.getLogger(__name__)

router = APIRouter(tags=["api"])


# --- Request bodies ---

class GenerateBody(BaseModel):
    countryUrls: dict[str, list[str]]
    promptId: Optional[int] = None
    templateType: Optional[dict[str, Any]] = None
    userId: Optional[int] = None


class CountryUpdatesBody(BaseModel):
    updates: list[dict[str, Any]] = Field(default_factory=list)


class ConnectBody(BaseModel):
    apiKey: str = ""


class IntegrationSettingsBody(BaseModel):
    utmMedium: Optional[str] = None


class PublishBody(BaseModel):
    baseCountry: str
    subject: str = ""
    preheader: str = ""
    sendDate: Optional[str] = None
    emailTemplate: dict[str, Any]
    countryResults: dict[str, dict[str, Any]]
    imageOverrides: Optional[dict[str, Any]] = None
    mailingListOverrides: dict[str, str] = Field(default_factory=dict)
    campaignId: Optional[int] = None
    campaignName: Optional[str] = None


class MetricsBody(BaseModel):
    clientId: int
    newsletterIds: list[Any] = Field(default_factory=list)


# --- Collaborators (replaced in tests) ---

def esp_client() -> SqualoMailClient:
    return SqualoMailClient.from_config()


def secret_box() -> SecretBox:
    return SecretBox.from_config()


def _vault(session) -> IntegrationVault:
    return IntegrationVault(session, esp_client(), secret_box())


_STATUS_BY_ERROR: list[tuple[type[TemplaitoError], int]] = [
    (ClientNotFound, 404),
    (InvalidRequest, 400),
    (IntegrationNotConnected, 400),
    (NoUsableProductData, 422),
    (IntegrationDecryptionFailure, 409),
    (IntegrationValidationFailure, 502),
    (GenerationFailure, 502),
    (ESPError, 502),
    (ConfigurationError, 503),
    (OperationCancelled, 503),
]


def _http_error(e: TemplaitoError) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(e, error_type):
            detail: dict = {"error": str(e), "kind": type(e).__name__}
            if isinstance(e, GenerationFailure):
                detail["stage"] = e.stage
                detail["reason"] = e.reason
            return HTTPException(status, detail=detail)
    return HTTPException(500, detail={"error": str(e), "kind": type(e).__name__})


# --- Request cancellation ---

async def _cancel_on_disconnect(request: Request, cancel: threading.Event, poll_seconds: float = 0.5) -> None:
    """Set ``cancel`` once the client has gone away."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling %s", request.url.path)
            cancel.set()
            return
        await asyncio.sleep(poll_seconds)


async def _run_cancellable(request: Request, work, *args):
    """Run blocking ``work(*args, cancel)`` in the threadpool while watching for a disconnect."""
    cancel = threading.Event()
    watcher = asyncio.create_task(_cancel_on_disconnect(request, cancel))
    try:
        return await run_in_threadpool(work, *args, cancel)
    finally:
        watcher.cancel()


# --- Generation ---

@router.post("/templates/generate")
async def generate(body: GenerateBody, request: Request):
    """Scrape, pick the base country and generate the canonical template."""
    scraper = getattr(request.app.state, "scraper", None)
    if scraper is None:
        raise HTTPException(503, "No product scraper is configured")
    return await _run_cancellable(request, _generate, body, scraper)


def _generate(body: GenerateBody, scraper, cancel: threading.Event) -> dict:
    config = load_config()
    session = SessionLocal()
    try:
        if body.promptId is not None:
            template_type = get_prompt(session, body.promptId)
        elif body.templateType:
            template_type = TemplateType.from_dict(body.templateType)
        else:
            raise InvalidRequest("Template type is required")

        result = generate_template(
            body.countryUrls,
            template_type,
            scraper,
            ai_config=config.ai.to_provider_dict(),
            max_workers=config.scrape.max_workers,
            scrape_timeout=config.scrape.timeout_seconds,
            cancel=cancel,
            session=session,
            user_id=body.userId,
        )
        return result.to_dict()
    except TemplaitoError as e:
        raise _http_error(e) from e
    except ValueError as e:
        raise HTTPException(400, str(e)) from e
    finally:
        session.close()


@router.get("/prompts/active")
def active_prompts(templateType: Optional[str] = None):
    session = SessionLocal()
    try:
        return {"prompts": [p.to_dict() for p in list_active_prompts(session, templateType)]}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


# --- Client countries ---

@router.get("/clients/{client_id}/countries")
def get_countries(client_id: int):
    session = SessionLocal()
    try:
        return {"countries": [c.to_dict() for c in list_country_configs(session, client_id)]}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.patch("/clients/{client_id}/countries")
def patch_countries(client_id: int, body: CountryUpdatesBody):
    session = SessionLocal()
    try:
        configs = update_country_configs(session, client_id, body.updates)
        return {"countries": [c.to_dict() for c in configs]}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


# --- SqualoMail integration ---

@router.get("/clients/{client_id}/integration/squalomail")
def get_integration(client_id: int, refresh: Optional[str] = None):
    """Current integration. ``?refresh=1`` re-fetches lists; fetch errors keep stored data."""
    session = SessionLocal()
    try:
        vault = _vault(session)
        integration = vault.get(client_id)
        if integration is None:
            return {"integration": None}
        if refresh == "1" and integration.is_connected:
            try:
                return {"integration": vault.refresh(client_id)}
            except ESPError as e:
                logger.error("Failed to refresh SqualoMail lists for client %s: %s", client_id, e)
                session.rollback()
        return {"integration": sanitize_integration(vault.get(client_id))}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.post("/clients/{client_id}/integration/squalomail")
def connect_integration(client_id: int, body: ConnectBody):
    if not body.apiKey.strip():
        raise HTTPException(400, "SqualoMail API key is required")
    session = SessionLocal()
    try:
        return {"integration": _vault(session).connect(client_id, body.apiKey)}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.delete("/clients/{client_id}/integration/squalomail")
def disconnect_integration(client_id: int):
    session = SessionLocal()
    try:
        _vault(session).disconnect(client_id)
        return {"success": True}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.patch("/clients/{client_id}/integration/squalomail/settings")
def integration_settings(client_id: int, body: IntegrationSettingsBody):
    session = SessionLocal()
    try:
        return {"integration": _vault(session).update_settings(client_id, body.utmMedium)}
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


# --- Publishing and reporting ---

@router.post("/clients/{client_id}/campaigns/squalomail", status_code=202)
async def publish(client_id: int, body: PublishBody, request: Request):
    """Publish the canonical template to every eligible country. Partial failures are reported per country."""
    return await _run_cancellable(request, _publish, client_id, body)


def _publish(client_id: int, body: PublishBody, cancel: threading.Event) -> dict:
    config = load_config()
    session = SessionLocal()
    try:
        try:
            country_results = {
                code.upper(): CountryScrapeResult.from_dict(data) for code, data in body.countryResults.items()
            }
        except ValueError as e:
            raise InvalidRequest(f"Invalid countryResults: {e}") from e

        send_date = (body.sendDate or "").strip() or None
        request = PublishRequest(
            client_id=client_id,
            base_country=body.baseCountry.upper(),
            subject=body.subject,
            preheader=body.preheader,
            email_template=EmailTemplate.from_dict(body.emailTemplate),
            country_results=country_results,
            send_date=send_date,
            image_overrides=ImageOverrides.normalize(body.imageOverrides),
            mailing_list_overrides=body.mailingListOverrides,
            campaign_id=body.campaignId,
            campaign_name=body.campaignName,
        )
        result = publish_campaign(
            session,
            _vault(session),
            request,
            max_workers=config.publish.max_workers,
            cancel=cancel,
            default_campaign_name=config.publish.default_campaign_name,
        )
        return result.to_dict()
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.get("/campaigns")
def campaigns(
    clientId: Optional[int] = None,
    status: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
):
    if clientId is None:
        return {
            "clientId": None,
            "client": None,
            "campaigns": [],
            "pagination": {"page": 1, "limit": 50, "totalCount": 0, "totalPages": 0},
            "filters": {"status": (status or "").strip().upper() or None},
        }
    session = SessionLocal()
    try:
        return list_campaigns(session, clientId, status=status, page=page, limit=limit)
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.post("/campaigns/metrics")
def campaign_metrics(body: MetricsBody):
    session = SessionLocal()
    try:
        metrics = get_metrics(session, _vault(session), body.clientId, body.newsletterIds)
        return {
            "clientId": body.clientId,
            "metrics": {newsletter_id: m.to_dict() for newsletter_id, m in metrics.items()},
        }
    except TemplaitoError as e:
        raise _http_error(e) from e
    finally:
        session.close()


@router.get("/analytics/usage")
def analytics_usage(userId: Optional[int] = None):
    session = SessionLocal()
    try:
        return usage_summary(session, user_id=userId)
    finally:
        session.close()
