"""Tests for CLI commands."""

import pytest
from sqlalchemy.orm import Session
from typer.testing import CliRunner

from templaito.cli import app
from templaito.crypto import SecretBox
from templaito.database import init_db, make_engine
from templaito.integrations import IntegrationVault
from templaito.orm import Client
from tests.conftest import TEST_KEY, FakeESP

runner = CliRunner()


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    """Point the CLI at a throwaway SQLite file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("TEMPLAITO_CONFIG", str(tmp_path / "missing.yaml"))
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    return url


@pytest.fixture
def cli_client(db_url):
    engine = make_engine(db_url)
    init_db(engine)
    with Session(engine) as s:
        client = Client(name="Acme")
        s.add(client)
        s.commit()
        client_id = client.id
    engine.dispose()
    return client_id


@pytest.fixture
def esp(monkeypatch):
    esp = FakeESP(reports={"501": {"sentTotal": 10, "openTotal": 4, "clickTotal": 1}})
    monkeypatch.setattr(
        "templaito.cli._vault",
        lambda session, config: IntegrationVault(session, esp, SecretBox(TEST_KEY)),
    )
    return esp


def test_help():
    """CLI shows help without error."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "SqualoMail" in result.output


def test_db_without_flags_shows_help(db_url):
    result = runner.invoke(app, ["db"])
    assert result.exit_code == 0
    assert "--stats" in result.output


def test_db_init_and_stats(db_url):
    result = runner.invoke(app, ["db", "--init"])
    assert result.exit_code == 0
    assert "initialized" in result.output

    result = runner.invoke(app, ["db", "--stats"])
    assert result.exit_code == 0
    assert "campaigns" in result.output


def test_db_reset(db_url):
    result = runner.invoke(app, ["db", "--reset"])
    assert result.exit_code == 0
    assert "reset" in result.output.lower()


def test_prompts_seed_and_list(db_url):
    result = runner.invoke(app, ["prompts", "list"])
    assert "prompts seed" in result.output

    result = runner.invoke(app, ["prompts", "seed"])
    assert result.exit_code == 0
    assert "Seeded 6" in result.output

    result = runner.invoke(app, ["prompts", "list", "--type", "MULTI_PRODUCT"])
    assert result.exit_code == 0
    assert "Multi-Product Landing" in result.output
    assert "Professional" not in result.output


def test_prompts_list_bad_type(db_url):
    result = runner.invoke(app, ["prompts", "list", "--type", "NOPE"])
    assert result.exit_code == 1


def test_countries(db_url):
    result = runner.invoke(app, ["countries", "add", "si", "Slovenia"])
    assert result.exit_code == 0
    assert "Saved SI (Slovenia)" in result.output

    runner.invoke(app, ["countries", "add", "HR", "Croatia", "--inactive"])
    result = runner.invoke(app, ["countries", "list", "--active"])
    assert "Slovenia" in result.output
    assert "Croatia" not in result.output

    result = runner.invoke(app, ["countries", "add", "XYZ", "Nowhere"])
    assert result.exit_code == 1


def test_countries_detect():
    result = runner.invoke(app, ["countries", "detect", "https://vigoshop.hr/a", "https://shop.com/b"])
    assert result.exit_code == 0
    assert "HR  https://vigoshop.hr/a" in result.output
    assert "--  https://shop.com/b" in result.output


def test_integration_lifecycle(cli_client, esp):
    result = runner.invoke(app, ["integration", "connect", str(cli_client), "--api-key", "key-123"])
    assert result.exit_code == 0, result.output
    assert "Status: CONNECTED" in result.output
    assert "Mailing lists: 1" in result.output
    assert "key-123" not in result.output

    result = runner.invoke(app, ["integration", "settings", str(cli_client), "--utm-medium", "email"])
    assert "UTM medium: email" in result.output

    result = runner.invoke(app, ["integration", "refresh", str(cli_client)])
    assert "Mailing lists: 2" in result.output

    result = runner.invoke(app, ["metrics", str(cli_client), "501", "502"])
    assert result.exit_code == 0
    assert "501" in result.output
    assert "40.0%" in result.output
    assert "502" not in result.output

    result = runner.invoke(app, ["integration", "disconnect", str(cli_client)])
    assert "disconnected" in result.output

    result = runner.invoke(app, ["metrics", str(cli_client), "501"])
    assert result.exit_code == 1


def test_integration_unknown_client(db_url, esp):
    result = runner.invoke(app, ["integration", "connect", "99", "--api-key", "key"])
    assert result.exit_code == 1
