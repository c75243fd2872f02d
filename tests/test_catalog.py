"""Tests for the built-in prompt catalog."""

import pytest

from templaito.ai.prompts import EMAIL_ADDRESS_TOKEN, UNSUBSCRIBE_TOKEN
from templaito.catalog import DEFAULT_PROMPTS, get_prompt, list_active_prompts, seed_default_prompts
from templaito.errors import InvalidRequest
from templaito.models import TemplateKind
from templaito.orm import Prompt


def test_seed_is_idempotent(session):
    assert seed_default_prompts(session) == len(DEFAULT_PROMPTS)
    assert seed_default_prompts(session) == 0


def test_defaults_keep_esp_tokens():
    for entry in DEFAULT_PROMPTS:
        assert EMAIL_ADDRESS_TOKEN in entry["user_prompt"], entry["name"]
        assert UNSUBSCRIBE_TOKEN in entry["user_prompt"], entry["name"]


def test_list_active_filters_by_type(session):
    seed_default_prompts(session)
    multi = list_active_prompts(session, "MULTI_PRODUCT")
    assert [p.name for p in multi] == ["Multi-Product Landing"]
    assert multi[0].is_multi_product

    single = list_active_prompts(session, TemplateKind.SINGLE_PRODUCT)
    assert len(single) == len(DEFAULT_PROMPTS) - 1


def test_defaults_listed_first(session):
    seed_default_prompts(session)
    session.add(Prompt(name="AAA Custom", status="ACTIVE", is_default=False))
    session.add(Prompt(name="Draft", status="DRAFT"))
    session.commit()

    names = [p.name for p in list_active_prompts(session)]
    assert names[-1] == "AAA Custom"
    assert "Draft" not in names


def test_unknown_type(session):
    with pytest.raises(InvalidRequest):
        list_active_prompts(session, "TRIPLE_PRODUCT")


def test_get_prompt(session):
    seed_default_prompts(session)
    draft = Prompt(name="Draft", status="DRAFT")
    session.add(draft)
    session.commit()

    template_type = get_prompt(session, 1)
    assert template_type.id == 1
    assert template_type.design_engine.value == "CLAUDE"

    with pytest.raises(InvalidRequest):
        get_prompt(session, draft.id)
    with pytest.raises(InvalidRequest):
        get_prompt(session, 999)
