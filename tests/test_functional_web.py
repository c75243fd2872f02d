"""Functional tests for the Templaito REST API."""

from __future__ import annotations

import asyncio
import json
import threading
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

# Pre-import the API module so we can patch its namespace
import templaito.web.api as _api_module
from templaito.crypto import SecretBox
from templaito.errors import ESPError, OperationCancelled
from templaito.models import CountryScrapeResult, ProductInfo
from templaito.orm import Client, ClientIntegration, Country, TemplateGeneration
from templaito.stages.content import ClaudeContentWriter
from templaito.stages.design import ClaudeDesignWriter
from templaito.web.app import create_app
from tests.conftest import (
    SAMPLE_HTML,
    TEST_KEY,
    FakeESP,
    FakeProvider,
    FakeScraper,
    configure_country,
    make_engine_for_tests,
)

PAGES = {
    "https://shop.test/a": ProductInfo(title="Widget", images=["i1.png"], regular_price="$10"),
    "https://shop.test/de/a": ProductInfo(title="Gerät", images=["de1.png"], regular_price="€12", language="de"),
}

COPY = json.dumps({"subject": "Meet Widget", "headline": "H", "bodyText": "B", "ctaText": "C", "preheader": "P"})


class FlakyListsESP(FakeESP):
    def fetch_lists(self, api_key):
        raise ESPError("backend down", status_code=503)


@pytest.fixture
def esp():
    return FakeESP()


@pytest.fixture
def db():
    engine = make_engine_for_tests()
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def api_client(db, esp, monkeypatch):
    """TestClient with an in-memory DB, a fake scraper and a fake ESP."""
    monkeypatch.setattr(_api_module, "SessionLocal", db)
    monkeypatch.setattr(_api_module, "esp_client", lambda: esp)
    monkeypatch.setattr(_api_module, "secret_box", lambda: SecretBox(TEST_KEY))
    app = create_app(scraper=FakeScraper(PAGES))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def client_id(db):
    with db() as s:
        for code, name in (("SI", "Slovenia"), ("DE", "Germany")):
            s.add(Country(code=code, name=name, is_active=True))
        client = Client(name="Acme")
        s.add(client)
        s.commit()
        return client.id


@pytest.fixture
def fake_writers(monkeypatch):
    providers = {"content": FakeProvider(COPY), "design": FakeProvider(SAMPLE_HTML)}
    monkeypatch.setattr(
        "templaito.pipeline.content_writer_for",
        lambda engine, ai_config=None: ClaudeContentWriter(providers["content"], "m"),
    )
    monkeypatch.setattr(
        "templaito.pipeline.design_writer_for",
        lambda engine, ai_config=None: ClaudeDesignWriter(providers["design"], "m"),
    )
    return providers


def test_health(api_client):
    resp = api_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


class TestGenerate:
    def test_generate_from_template_type(self, api_client, db, fake_writers):
        resp = api_client.post("/api/templates/generate", json={
            "countryUrls": {"SI": ["https://shop.test/a"], "DE": ["https://shop.test/de/a"]},
            "templateType": {"name": "Quick", "userPrompt": "Sell {{product_name}}", "designEngine": "CLAUDE"},
        })

        assert resp.status_code == 200
        data = resp.json()
        assert data["baseCountry"] == "SI"
        assert data["emailTemplate"] == {"subject": "Meet Widget", "html": SAMPLE_HTML}
        assert data["previewTemplate"] == data["emailTemplate"]
        assert set(data["countryResults"]) == {"SI", "DE"}
        assert "Sell Widget" in fake_writers["content"].calls[0]["prompt"]

        with db() as s:
            assert s.query(TemplateGeneration).count() == 1

    def test_generate_from_prompt_id(self, api_client, db, fake_writers):
        from templaito.catalog import seed_default_prompts

        with db() as s:
            seed_default_prompts(s)
        resp = api_client.post("/api/templates/generate", json={
            "countryUrls": {"SI": ["https://shop.test/a"]}, "promptId": 1,
        })
        assert resp.status_code == 200
        assert fake_writers["design"].calls[0]["system"]

    def test_no_product_data(self, api_client, fake_writers):
        resp = api_client.post("/api/templates/generate", json={
            "countryUrls": {"SI": ["https://shop.test/missing"]},
            "templateType": {"name": "Quick"},
        })
        assert resp.status_code == 422
        assert resp.json()["detail"]["kind"] == "NoUsableProductData"
        assert fake_writers["content"].calls == []

    def test_generation_failure_reports_stage(self, api_client, fake_writers):
        fake_writers["content"].replies = ["not json at all"]
        resp = api_client.post("/api/templates/generate", json={
            "countryUrls": {"SI": ["https://shop.test/a"]},
            "templateType": {"name": "Quick"},
        })
        assert resp.status_code == 502
        detail = resp.json()["detail"]
        assert detail["stage"] == "content"
        assert detail["reason"] == "unparseable"

    def test_template_type_required(self, api_client):
        resp = api_client.post("/api/templates/generate", json={"countryUrls": {"SI": ["https://shop.test/a"]}})
        assert resp.status_code == 400

    def test_generation_receives_cancel_event(self, api_client, monkeypatch):
        seen = {}

        def cancelled(*args, cancel=None, **kwargs):
            seen["cancel"] = cancel
            raise OperationCancelled("Request was cancelled")

        monkeypatch.setattr(_api_module, "generate_template", cancelled)
        resp = api_client.post("/api/templates/generate", json={
            "countryUrls": {"SI": ["https://shop.test/a"]}, "templateType": {"name": "Quick"},
        })
        assert resp.status_code == 503
        assert resp.json()["detail"]["kind"] == "OperationCancelled"
        assert isinstance(seen["cancel"], threading.Event)
        assert not seen["cancel"].is_set()


class GoneRequest:
    """Request double whose client has already disconnected."""

    url = SimpleNamespace(path="/api/templates/generate")

    async def is_disconnected(self):
        return True


def test_disconnect_sets_cancel_event():
    cancel = threading.Event()
    asyncio.run(_api_module._cancel_on_disconnect(GoneRequest(), cancel, poll_seconds=0))
    assert cancel.is_set()


def test_active_prompts(api_client, db):
    from templaito.catalog import seed_default_prompts

    with db() as s:
        seed_default_prompts(s)
    resp = api_client.get("/api/prompts/active", params={"templateType": "MULTI_PRODUCT"})
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()["prompts"]] == ["Multi-Product Landing"]
    assert api_client.get("/api/prompts/active", params={"templateType": "NOPE"}).status_code == 400


class TestCountries:
    def test_get_backfills(self, api_client, client_id):
        resp = api_client.get(f"/api/clients/{client_id}/countries")
        assert resp.status_code == 200
        assert [c["countryCode"] for c in resp.json()["countries"]] == ["DE", "SI"]

    def test_patch(self, api_client, client_id):
        resp = api_client.patch(f"/api/clients/{client_id}/countries", json={
            "updates": [{"countryCode": "SI", "mailingListId": " L1 "}],
        })
        assert resp.status_code == 200
        si = next(c for c in resp.json()["countries"] if c["countryCode"] == "SI")
        assert si["mailingListId"] == "L1"

    def test_patch_requires_country_code(self, api_client, client_id):
        resp = api_client.patch(f"/api/clients/{client_id}/countries", json={"updates": [{"mailingListId": "x"}]})
        assert resp.status_code == 400

    def test_unknown_client(self, api_client):
        assert api_client.get("/api/clients/999/countries").status_code == 404


class TestIntegration:
    def test_connect_never_returns_credentials(self, api_client, db, client_id):
        resp = api_client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": "key-123"})
        assert resp.status_code == 200
        integration = resp.json()["integration"]
        assert integration["status"] == "CONNECTED"
        assert "encryptedCredentials" not in integration

        with db() as s:
            stored = s.query(ClientIntegration).one().encrypted_credentials
        assert stored not in resp.text
        assert "key-123" not in resp.text

        resp = api_client.get(f"/api/clients/{client_id}/integration/squalomail")
        assert stored not in resp.text
        assert resp.json()["integration"]["metadata"]["lists"]

    def test_connect_requires_key(self, api_client, client_id, esp):
        resp = api_client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": " "})
        assert resp.status_code == 400
        assert esp.calls == []

    def test_rejected_key(self, api_client, client_id, esp):
        esp.reject_key = True
        resp = api_client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": "bad"})
        assert resp.status_code == 502
        assert api_client.get(f"/api/clients/{client_id}/integration/squalomail").json() == {"integration": None}

    def test_refresh_failure_keeps_stored_data(self, db, client_id, monkeypatch):
        flaky = FlakyListsESP()
        monkeypatch.setattr(_api_module, "SessionLocal", db)
        monkeypatch.setattr(_api_module, "esp_client", lambda: flaky)
        monkeypatch.setattr(_api_module, "secret_box", lambda: SecretBox(TEST_KEY))
        with TestClient(create_app()) as client:
            client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": "key-123"})
            resp = client.get(f"/api/clients/{client_id}/integration/squalomail", params={"refresh": "1"})
        assert resp.status_code == 200
        assert resp.json()["integration"]["metadata"]["lists"] == [{"id": "L1", "name": "Main"}]

    def test_settings_and_disconnect(self, api_client, client_id):
        api_client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": "key-123"})
        resp = api_client.patch(
            f"/api/clients/{client_id}/integration/squalomail/settings", json={"utmMedium": "email"},
        )
        assert resp.json()["integration"]["metadata"]["utmMedium"] == "email"

        resp = api_client.delete(f"/api/clients/{client_id}/integration/squalomail")
        assert resp.json() == {"success": True}
        integration = api_client.get(f"/api/clients/{client_id}/integration/squalomail").json()["integration"]
        assert integration["status"] == "DISCONNECTED"


class TestPublishAndReport:
    def _payload(self):
        si = CountryScrapeResult.single("https://shop.test/a", PAGES["https://shop.test/a"])
        de = CountryScrapeResult.single("https://shop.test/de/a", PAGES["https://shop.test/de/a"])
        return {
            "baseCountry": "si",
            "subject": "Meet Widget",
            "preheader": "P",
            "emailTemplate": {"subject": "Meet Widget", "html": SAMPLE_HTML},
            "countryResults": {"si": si.to_dict(), "DE": de.to_dict()},
            "imageOverrides": {"singleImageIndex": "x"},
        }

    def test_publish_then_list_campaigns(self, api_client, db, client_id, esp):
        api_client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": "key-123"})
        with db() as s:
            configure_country(s, client_id, "SI", mailing_list_id="L-SI")
            configure_country(s, client_id, "DE", mailing_list_id="L-DE")

        esp.fail_countries = {"DE"}
        resp = api_client.post(f"/api/clients/{client_id}/campaigns/squalomail", json=self._payload())

        assert resp.status_code == 202
        data = resp.json()
        results = {r["countryCode"]: r for r in data["perCountryResults"]}
        assert "externalId" in results["SI"]
        assert "error" in results["DE"]
        assert data["skippedCountries"] == []

        page = api_client.get("/api/campaigns", params={"clientId": client_id}).json()
        assert page["pagination"]["totalCount"] == 1
        assert page["campaigns"][0]["id"] == data["campaignId"]
        assert [t["countryCode"] for t in page["campaigns"][0]["targets"]] == ["SI"]

    def test_publish_without_integration(self, api_client, client_id):
        resp = api_client.post(f"/api/clients/{client_id}/campaigns/squalomail", json=self._payload())
        assert resp.status_code == 400
        assert resp.json()["detail"]["kind"] == "IntegrationNotConnected"

    def test_campaigns_without_client(self, api_client):
        page = api_client.get("/api/campaigns").json()
        assert page["campaigns"] == []
        assert page["clientId"] is None

    def test_metrics(self, api_client, client_id, esp):
        api_client.post(f"/api/clients/{client_id}/integration/squalomail", json={"apiKey": "key-123"})
        esp.reports = {"77": {"sentTotal": 4, "openTotal": 2, "clickTotal": 1}}

        resp = api_client.post("/api/campaigns/metrics", json={"clientId": client_id, "newsletterIds": [77, "88"]})

        assert resp.status_code == 200
        assert resp.json() == {
            "clientId": client_id,
            "metrics": {"77": {"sentTotal": 4, "openTotal": 2, "clickTotal": 1, "openRate": 0.5, "clickRate": 0.25}},
        }

    def test_usage(self, api_client, fake_writers):
        api_client.post("/api/templates/generate", json={
            "countryUrls": {"SI": ["https://shop.test/a"]}, "templateType": {"name": "Quick"},
        })
        summary = api_client.get("/api/analytics/usage").json()
        assert summary["totalGenerations"] == 1
        assert summary["successful"] == 1
