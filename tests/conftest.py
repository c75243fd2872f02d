"""Shared test fixtures."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from templaito.clients import create_client
from templaito.crypto import SecretBox
from templaito.errors import ESPError, ProviderError
from templaito.models import DesignEngine, ProductInfo, TemplateKind, TemplateType
from templaito.orm import Base, ClientCountryConfig, Country

TEST_KEY = "0123456789abcdef0123456789abcdef"

SAMPLE_HTML = (
    "<!DOCTYPE html>\n<html><head><meta charset=\"utf-8\"></head><body>"
    "<table width=\"100%\"><tr><td align=\"center\">"
    "<img src=\"i1.png\" alt=\"Widget\">"
    "<p>Only $10</p>"
    "<a href=\"https://shop.test/a\" target=\"_blank\">Buy now</a>"
    "<p style=\"font-size:8px\">This message was sent to {{email_address}}. "
    "If you no longer wish to receive such messages, unsubscribe here "
    "{{unsubscribe}}UNSUBSCRIBE{{/unsubscribe}}</p>"
    "</td></tr></table></body></html>"
)


class FakeProvider:
    """AIProvider double returning scripted replies in order."""

    def __init__(self, *replies, name: str = "fake", supports_json_mode: bool = False):
        self.replies = list(replies)
        self.name = name
        self.supports_json_mode = supports_json_mode
        self.calls: list[dict] = []

    def complete(self, prompt, model, system="", response_format=None):
        self.calls.append({"prompt": prompt, "model": model, "system": system, "response_format": response_format})
        reply = self.replies.pop(0) if self.replies else ""
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeScraper:
    """Scraper double: ``pages`` maps URL to ProductInfo or an exception."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.calls: list[str] = []

    def scrape(self, url):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None:
            raise ValueError(f"404 for {url}")
        if isinstance(page, Exception):
            raise page
        return page


class FakeESP:
    """SqualoMail client double."""

    def __init__(self, fail_countries=(), reports=None, reject_key=False, token=None):
        self.fail_countries = set(fail_countries)
        self.reports = reports or {}
        self.reject_key = reject_key
        self.token = token
        self.calls: list[tuple] = []
        self._next_id = 100

    def validate_api_key(self, api_key):
        self.calls.append(("validate", api_key))
        if self.reject_key:
            raise ESPError("Invalid API key", status_code=401)
        data = {"account": {"name": "Acme"}, "lists": [{"id": "L1", "name": "Main"}]}
        if self.token:
            data["token"] = self.token
        return data

    def fetch_lists(self, api_key):
        self.calls.append(("lists", api_key))
        return {"account": {"name": "Acme"}, "lists": [{"id": "L1"}, {"id": "L2"}]}

    def create_newsletter(self, api_key, *, country_code, mailing_list_id, subject, preheader, html,
                          sender_email=None, sender_name=None, send_date=None):
        self.calls.append(("newsletter", country_code, mailing_list_id, html, send_date))
        if country_code in self.fail_countries:
            raise ESPError(f"List {mailing_list_id} rejected", status_code=422)
        self._next_id += 1
        return f"nl-{self._next_id}"

    def fetch_report_metrics(self, api_key, newsletter_ids):
        self.calls.append(("metrics", list(newsletter_ids)))
        return {i: self.reports[i] for i in newsletter_ids if i in self.reports}


def make_engine_for_tests():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = make_engine_for_tests()
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def session(session_factory):
    """In-memory SQLite session with schema created."""
    s = session_factory()
    yield s
    s.close()


@pytest.fixture
def secret_box():
    return SecretBox(TEST_KEY)


@pytest.fixture
def client_id(session):
    """A client with SI, DE and HR available as active countries."""
    for code, name in (("SI", "Slovenia"), ("DE", "Germany"), ("HR", "Croatia")):
        session.add(Country(code=code, name=name, is_active=True))
    session.commit()
    return create_client(session, " Acme ").id


def configure_country(session, client_id, code, mailing_list_id=None, is_active=True, **extra):
    """Create or update a client's country config directly."""
    config = session.query(ClientCountryConfig).filter_by(client_id=client_id, country_code=code).one_or_none()
    if config is None:
        config = ClientCountryConfig(client_id=client_id, country_code=code)
        session.add(config)
    config.mailing_list_id = mailing_list_id
    config.is_active = is_active
    for key, value in extra.items():
        setattr(config, key, value)
    session.commit()
    return config


@pytest.fixture
def widget():
    return ProductInfo(
        title="Widget",
        description="A very good widget",
        images=["i1.png", "i2.png"],
        best_image_url="i1.png",
        language="en",
        regular_price="$10",
    )


@pytest.fixture
def single_template():
    return TemplateType(
        name="Professional",
        description="Clean business layout",
        system_prompt="You design professional emails.",
        user_prompt="Email for {{product_name}} at {{regular_price}}. Footer: {{email_address}}",
        design_engine=DesignEngine.CLAUDE,
        template_type=TemplateKind.SINGLE_PRODUCT,
    )


@pytest.fixture
def multi_template():
    return TemplateType(
        name="Multi-Product Landing",
        user_prompt="Products: {{product_names}} / {{product_prices}}",
        design_engine=DesignEngine.GPT4O,
        template_type=TemplateKind.MULTI_PRODUCT,
    )


@pytest.fixture
def provider_error():
    return ProviderError("fake", "timed out")
