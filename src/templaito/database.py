"""SQLAlchemy engine, session factory and schema management."""

from __future__ import annotations

from sqlalchemy import create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from templaito.config import load_config
from templaito.orm import (
    Base,
    Campaign,
    CampaignCountryTarget,
    Client,
    ClientCountryConfig,
    ClientIntegration,
    Country,
    Prompt,
    TemplateGeneration,
    User,
)


def _get_database_url() -> str:
    """Configured storage URL; DATABASE_URL overrides the YAML value."""
    return load_config().storage.database_url


def make_engine(url: str | None = None) -> Engine:
    """Create a SQLAlchemy engine with appropriate settings."""
    url = url or _get_database_url()
    kwargs: dict = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    engine = create_engine(url, **kwargs)
    # Enable WAL and foreign keys for SQLite
    if url.startswith("sqlite"):
        @event.listens_for(engine, "connect")
        def _set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return engine


engine = make_engine()
SessionLocal = sessionmaker(bind=engine)


def init_db(bind: Engine | None = None) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind or engine)


def reset_db(bind: Engine | None = None) -> None:
    """Drop and recreate every table."""
    bind = bind or engine
    Base.metadata.drop_all(bind)
    Base.metadata.create_all(bind)


_STATS_MODELS = {
    "users": User,
    "clients": Client,
    "countries": Country,
    "client_country_configs": ClientCountryConfig,
    "client_integrations": ClientIntegration,
    "campaigns": Campaign,
    "campaign_country_targets": CampaignCountryTarget,
    "prompts": Prompt,
    "template_generations": TemplateGeneration,
}


def db_stats(session: Session) -> dict[str, int]:
    """Return row counts for all tables."""
    stats = {}
    for table, model in _STATS_MODELS.items():
        try:
            stats[table] = session.scalar(select(func.count()).select_from(model)) or 0
        except OperationalError:
            session.rollback()
            stats[table] = -1  # table doesn't exist
    return stats
