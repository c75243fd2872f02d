"""Global countries, per-client country settings, and URL-to-country detection."""

from __future__ import annotations

import re
from urllib.parse import urlsplit

from sqlalchemy import select
from sqlalchemy.orm import Session

from templaito.clients import get_client
from templaito.errors import InvalidRequest
from templaito.orm import ClientCountryConfig, Country

# Two-letter TLDs that are commonly used as generic domains
GENERIC_TLDS = frozenset({"EU", "IO", "CO", "ME", "TV"})

_PASTE_SPLIT_RE = re.compile(r"[\t\n]")

_TEXT_FIELDS = {
    "mailingListId": "mailing_list_id",
    "mailingListName": "mailing_list_name",
    "senderEmail": "sender_email",
    "senderName": "sender_name",
}


def upsert_country(session: Session, code: str, name: str, is_active: bool | None = None) -> Country:
    code = (code or "").strip().upper()
    name = (name or "").strip()
    if len(code) != 2:
        raise InvalidRequest("Country code (ISO Alpha-2) is required")
    if not name:
        raise InvalidRequest("Country name is required")

    country = session.get(Country, code)
    if country is None:
        country = Country(code=code, name=name, is_active=True if is_active is None else is_active)
        session.add(country)
    else:
        country.name = name
        if is_active is not None:
            country.is_active = is_active
    session.commit()
    return country


def list_countries(session: Session, active_only: bool = False) -> list[Country]:
    stmt = select(Country).order_by(Country.name)
    if active_only:
        stmt = stmt.where(Country.is_active.is_(True))
    return list(session.scalars(stmt))


def _client_configs(session: Session, client_id: int) -> list[ClientCountryConfig]:
    return list(session.scalars(
        select(ClientCountryConfig)
        .where(ClientCountryConfig.client_id == client_id)
        .order_by(ClientCountryConfig.country_code)
    ))


def list_country_configs(session: Session, client_id: int) -> list[ClientCountryConfig]:
    """Client's country settings, creating missing rows for every active country."""
    get_client(session, client_id)
    configs = _client_configs(session, client_id)

    existing = {c.country_code for c in configs}
    active_codes = session.scalars(
        select(Country.code).where(Country.is_active.is_(True)).order_by(Country.code)
    )
    missing = [code for code in active_codes if code not in existing]
    if missing:
        for code in missing:
            session.add(ClientCountryConfig(client_id=client_id, country_code=code))
        session.commit()
        configs = _client_configs(session, client_id)
    return configs


def update_country_configs(session: Session, client_id: int, updates: list[dict]) -> list[ClientCountryConfig]:
    """Apply partial updates to a client's country settings, all or nothing.

    Each update needs ``countryCode``. Text fields are trimmed and empty
    strings stored as null; ``resetSyncedAt`` clears ``lastSyncedAt``.
    Updates for countries the client has no row for are ignored.
    """
    get_client(session, client_id)
    if not updates:
        raise InvalidRequest("No updates provided")

    configs = {c.country_code: c for c in list_country_configs(session, client_id)}
    try:
        for item in updates:
            if not isinstance(item, dict):
                raise InvalidRequest("countryCode is required for each update")
            code = item.get("countryCode")
            if not code or not isinstance(code, str):
                raise InvalidRequest("countryCode is required for each update")

            config = configs.get(code.strip().upper())
            if config is None:
                continue

            if isinstance(item.get("isActive"), bool):
                config.is_active = item["isActive"]

            for key, attr in _TEXT_FIELDS.items():
                if key not in item:
                    continue
                value = item[key]
                if value and not isinstance(value, str):
                    raise InvalidRequest(f"{key} must be a string")
                setattr(config, attr, (value.strip() or None) if value else None)

            if item.get("resetSyncedAt"):
                config.last_synced_at = None
    except InvalidRequest:
        session.rollback()
        raise

    session.commit()
    return _client_configs(session, client_id)


def country_from_url(url: str) -> str | None:
    """Detect a country code from a shop URL.

    ``https://vigoshop.hr/x`` gives ``HR``; ``https://si.coolmango.eu/x`` gives
    ``SI``. Generic two-letter TLDs are skipped in favour of the subdomain.
    """
    try:
        hostname = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return None
    if not hostname:
        return None

    parts = hostname.split(".")
    tld = parts[-1].upper()
    if len(tld) == 2 and tld.isalpha() and tld not in GENERIC_TLDS:
        return tld

    if len(parts) >= 2:
        subdomain = parts[0].upper()
        if len(subdomain) == 2 and subdomain.isalpha():
            return subdomain
    return None


def group_urls_by_country(text: str, country_codes) -> dict[str, list[str]]:
    """Bucket tab- or newline-separated URLs into the given countries.

    URLs whose country is unknown or not in ``country_codes`` are dropped.
    """
    allowed = {c.upper() for c in country_codes}
    grouped: dict[str, list[str]] = {}
    for chunk in _PASTE_SPLIT_RE.split(text or ""):
        url = chunk.strip()
        if not url.startswith("http"):
            continue
        code = country_from_url(url)
        if code and code in allowed:
            grouped.setdefault(code, []).append(url)
    return grouped
