"""Tests for the content stage."""

import json

import pytest

from templaito.errors import ContentGenerationFailure
from templaito.models import CountryScrapeResult, DesignEngine, ProductInfo
from templaito.stages.content import (
    ClaudeContentWriter,
    GPT4oContentWriter,
    build_content_prompt,
    content_writer_for,
)
from tests.conftest import FakeProvider

CONTENT = {
    "subject": " Meet Widget ",
    "headline": "The best widget",
    "bodyText": "It does everything.",
    "ctaText": "Shop now",
    "preheader": "Limited stock",
}


@pytest.fixture
def si_result(widget):
    widget.language = "sl"
    return CountryScrapeResult.single("https://shop.test/a", widget)


def test_prompt_uses_language_and_tokens(single_template, si_result):
    system, user = build_content_prompt(single_template, si_result)
    assert "sl language" in system
    assert "a product" in system
    assert "Email for Widget at $10" in user
    # reserved token stays for the ESP
    assert "{{email_address}}" in user
    assert '"bodyText"' in user


def test_multi_prompt_scope(single_template):
    result = CountryScrapeResult.multi(
        ["https://s/a", "https://s/b"], [ProductInfo(title="A"), ProductInfo(title="B")],
    )
    system, user = build_content_prompt(single_template, result)
    assert "multiple products" in system
    assert "Product 2:" in user


def test_claude_writer_parses_fenced_json(single_template, si_result):
    provider = FakeProvider("```json\n" + json.dumps(CONTENT) + "\n```")
    content = ClaudeContentWriter(provider, "claude-test").generate(single_template, si_result)

    assert content.subject == "Meet Widget"
    assert content.body_text == "It does everything."
    assert content.cta_text == "Shop now"
    assert provider.calls[0]["model"] == "claude-test"
    assert provider.calls[0]["response_format"] is None


def test_gpt4o_writer_requests_json_mode(single_template, si_result):
    provider = FakeProvider(json.dumps(CONTENT), supports_json_mode=True)
    content = GPT4oContentWriter(provider, "gpt-4o").generate(single_template, si_result)

    assert content.headline == "The best widget"
    assert provider.calls[0]["response_format"] == "json"


def test_missing_fields_become_empty(single_template, si_result):
    provider = FakeProvider('{"subject": "Only subject", "ctaText": 42}')
    content = ClaudeContentWriter(provider, "m").generate(single_template, si_result)
    assert content.subject == "Only subject"
    assert content.cta_text == ""
    assert content.preheader == ""


def test_unparseable_reply(single_template, si_result):
    provider = FakeProvider("Sure! Here is some copy without JSON.")
    with pytest.raises(ContentGenerationFailure) as exc_info:
        ClaudeContentWriter(provider, "m").generate(single_template, si_result)

    err = exc_info.value
    assert err.is_unparseable
    assert err.stage == "content"
    assert err.engine == "CLAUDE"
    assert err.raw_response.startswith("Sure!")


def test_provider_failure(single_template, si_result, provider_error):
    provider = FakeProvider(provider_error)
    with pytest.raises(ContentGenerationFailure) as exc_info:
        GPT4oContentWriter(provider, "m").generate(single_template, si_result)
    assert exc_info.value.is_provider_error
    assert exc_info.value.raw_response is None


def test_gpt4o_rejects_non_object(single_template, si_result):
    provider = FakeProvider('["not", "an", "object"]')
    with pytest.raises(ContentGenerationFailure) as exc_info:
        GPT4oContentWriter(provider, "m").generate(single_template, si_result)
    assert exc_info.value.is_unparseable


def test_writer_factory_uses_given_provider():
    provider = FakeProvider()
    writer = content_writer_for(DesignEngine.GPT4O, provider=provider, model="x")
    assert isinstance(writer, GPT4oContentWriter)
    assert writer.provider is provider
    assert writer.model == "x"


def test_writer_factory_rejects_unknown_engine():
    with pytest.raises(ValueError):
        content_writer_for("LLAMA", provider=FakeProvider())
