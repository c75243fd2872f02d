"""Client (tenant) lookup shared by every client-scoped operation."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from templaito.errors import ClientNotFound
from templaito.orm import Client


def get_client(session: Session, client_id: int) -> Client:
    """Return the client, treating archived clients as missing."""
    client = session.scalar(
        select(Client).where(Client.id == client_id, Client.is_archived.is_(False))
    )
    if client is None:
        raise ClientNotFound(client_id)
    return client


def create_client(session: Session, name: str, user_id: int | None = None) -> Client:
    client = Client(name=name.strip(), user_id=user_id)
    session.add(client)
    session.commit()
    return client


def archive_client(session: Session, client_id: int) -> None:
    client = get_client(session, client_id)
    client.is_archived = True
    session.commit()
