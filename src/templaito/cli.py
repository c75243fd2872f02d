"""Templaito CLI: Typer app with database, prompt, integration and reporting commands."""

from __future__ import annotations

import logging
from typing import List, Optional

import typer

app = typer.Typer(
    name="templaito",
    help="Product pages to marketing emails, published per country through SqualoMail.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_session(config):
    """Session bound to the configured database, with tables created."""
    from sqlalchemy.orm import Session

    from templaito.database import init_db, make_engine

    engine = make_engine(config.storage.database_url)
    init_db(engine)
    return Session(engine)


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(1)


# --- Database commands ---

db_app = typer.Typer(help="Database management commands.")
app.add_typer(db_app, name="db")


@db_app.callback(invoke_without_command=True)
def db_callback(
    ctx: typer.Context,
    init: bool = typer.Option(False, "--init", help="Create missing tables."),
    reset: bool = typer.Option(False, "--reset", help="Drop and recreate every table."),
    stats: bool = typer.Option(False, "--stats", help="Show row counts for all tables."),
):
    """Database management."""
    from sqlalchemy.orm import Session

    from templaito.config import load_config
    from templaito.database import db_stats, init_db, make_engine, reset_db

    config = load_config()
    engine = make_engine(config.storage.database_url)

    if reset:
        reset_db(engine)
        typer.echo("Database reset and initialized.")
        return

    if init:
        init_db(engine)
        typer.echo("Database initialized.")
        return

    if stats:
        init_db(engine)
        with Session(engine) as session:
            s = db_stats(session)
        typer.echo("Table row counts:")
        for table, count in s.items():
            status = f"{count}" if count >= 0 else "missing"
            typer.echo(f"  {table:30s} {status}")
        return

    # No flags, show help
    typer.echo(ctx.get_help())


# --- Prompt commands ---

prompts_app = typer.Typer(help="Prompt template catalog.")
app.add_typer(prompts_app, name="prompts")


@prompts_app.command("seed")
def prompts_seed():
    """Insert the built-in prompt templates that are missing."""
    from templaito.catalog import seed_default_prompts
    from templaito.config import load_config

    with _open_session(load_config()) as session:
        added = seed_default_prompts(session)
    typer.echo(f"Seeded {added} default prompts.")


@prompts_app.command("list")
def prompts_list(
    template_type: Optional[str] = typer.Option(None, "--type", "-t", help="SINGLE_PRODUCT or MULTI_PRODUCT."),
):
    """List active prompt templates."""
    from templaito.catalog import list_active_prompts
    from templaito.config import load_config
    from templaito.errors import TemplaitoError

    with _open_session(load_config()) as session:
        try:
            prompts = list_active_prompts(session, template_type)
        except TemplaitoError as e:
            _fail(str(e))

    if not prompts:
        typer.echo("No active prompts. Run 'templaito prompts seed'.")
        return
    for p in prompts:
        marker = "*" if p.is_default else " "
        typer.echo(f" {marker} [{p.id:>3}] {p.name:25s} {p.template_type.value:15s} {p.design_engine.value}")


# --- Integration commands ---

integration_app = typer.Typer(help="SqualoMail integration per client.")
app.add_typer(integration_app, name="integration")


def _vault(session, config):
    from templaito.crypto import SecretBox
    from templaito.integrations import IntegrationVault
    from templaito.squalomail import SqualoMailClient

    return IntegrationVault(session, SqualoMailClient.from_config(config), SecretBox.from_config(config))


def _echo_integration(integration: dict | None) -> None:
    if integration is None:
        typer.echo("No integration.")
        return
    meta = integration.get("metadata") or {}
    lists = meta.get("lists") or []
    typer.echo(f"Status: {integration['status']}")
    typer.echo(f"Last synced: {integration.get('lastSyncedAt') or '-'}")
    typer.echo(f"Mailing lists: {len(lists) if isinstance(lists, list) else '-'}")
    if meta.get("utmMedium"):
        typer.echo(f"UTM medium: {meta['utmMedium']}")


@integration_app.command("connect")
def integration_connect(
    client_id: int = typer.Argument(..., help="Client id."),
    api_key: str = typer.Option(..., "--api-key", prompt=True, hide_input=True, help="SqualoMail API key."),
):
    """Validate an API key with SqualoMail and store it encrypted."""
    from templaito.config import load_config
    from templaito.errors import TemplaitoError

    config = load_config()
    with _open_session(config) as session:
        try:
            integration = _vault(session, config).connect(client_id, api_key)
        except TemplaitoError as e:
            _fail(str(e))
    typer.echo("SqualoMail connected.")
    _echo_integration(integration)


@integration_app.command("refresh")
def integration_refresh(client_id: int = typer.Argument(..., help="Client id.")):
    """Re-fetch account details and mailing lists."""
    from templaito.config import load_config
    from templaito.errors import TemplaitoError

    config = load_config()
    with _open_session(config) as session:
        try:
            integration = _vault(session, config).refresh(client_id)
        except TemplaitoError as e:
            _fail(str(e))
    _echo_integration(integration)


@integration_app.command("disconnect")
def integration_disconnect(client_id: int = typer.Argument(..., help="Client id.")):
    """Forget the stored credential."""
    from templaito.config import load_config
    from templaito.errors import TemplaitoError

    config = load_config()
    with _open_session(config) as session:
        try:
            _vault(session, config).disconnect(client_id)
        except TemplaitoError as e:
            _fail(str(e))
    typer.echo("SqualoMail disconnected.")


@integration_app.command("settings")
def integration_settings(
    client_id: int = typer.Argument(..., help="Client id."),
    utm_medium: str = typer.Option("", "--utm-medium", help="utm_medium for published links; empty clears it."),
):
    """Update integration settings."""
    from templaito.config import load_config
    from templaito.errors import TemplaitoError

    config = load_config()
    with _open_session(config) as session:
        try:
            integration = _vault(session, config).update_settings(client_id, utm_medium)
        except TemplaitoError as e:
            _fail(str(e))
    _echo_integration(integration)


# --- Reporting ---

@app.command()
def metrics(
    client_id: int = typer.Argument(..., help="Client id."),
    newsletter_ids: List[str] = typer.Argument(..., help="SqualoMail newsletter ids."),
):
    """Show open and click rates for published newsletters."""
    from templaito.config import load_config
    from templaito.errors import TemplaitoError
    from templaito.stages.metrics import get_metrics

    config = load_config()
    with _open_session(config) as session:
        try:
            results = get_metrics(session, _vault(session, config), client_id, newsletter_ids)
        except TemplaitoError as e:
            _fail(str(e))

    if not results:
        typer.echo("No metrics available yet.")
        return
    typer.echo(f"  {'Newsletter':20s} {'Sent':>8s} {'Opens':>8s} {'Clicks':>8s} {'Open %':>7s} {'Click %':>7s}")
    for newsletter_id, m in results.items():
        typer.echo(
            f"  {newsletter_id:20s} {m.sent_total:>8d} {m.open_total:>8d} {m.click_total:>8d} "
            f"{m.open_rate * 100:>6.1f}% {m.click_rate * 100:>6.1f}%"
        )


# --- Countries ---

countries_app = typer.Typer(help="Countries available for publishing.")
app.add_typer(countries_app, name="countries")


@countries_app.command("list")
def countries_list(
    active: bool = typer.Option(False, "--active", help="Only active countries."),
):
    """List countries."""
    from templaito.config import load_config
    from templaito.countries import list_countries

    with _open_session(load_config()) as session:
        rows = [(c.code, c.name, c.is_active) for c in list_countries(session, active_only=active)]
    if not rows:
        typer.echo("No countries.")
        return
    for code, name, is_active in rows:
        typer.echo(f"  {code}  {name:25s} {'active' if is_active else 'inactive'}")


@countries_app.command("add")
def countries_add(
    code: str = typer.Argument(..., help="ISO alpha-2 code."),
    name: str = typer.Argument(..., help="Display name."),
    inactive: bool = typer.Option(False, "--inactive", help="Create the country as inactive."),
):
    """Create or rename a country."""
    from templaito.config import load_config
    from templaito.countries import upsert_country
    from templaito.errors import TemplaitoError

    with _open_session(load_config()) as session:
        try:
            country = upsert_country(session, code, name, is_active=False if inactive else None)
        except TemplaitoError as e:
            _fail(str(e))
        typer.echo(f"Saved {country.code} ({country.name}).")


@countries_app.command("detect")
def countries_detect(urls: List[str] = typer.Argument(..., help="Product URLs.")):
    """Show which country each URL belongs to."""
    from templaito.countries import country_from_url

    for url in urls:
        typer.echo(f"  {country_from_url(url) or '--'}  {url}")


# --- Web server ---

@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", "-h", help="Bind host."),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development."),
):
    """Start the API server."""
    import uvicorn

    typer.echo(f"Starting Templaito API at http://{host}:{port}/api")
    uvicorn.run(
        "templaito.web.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )
