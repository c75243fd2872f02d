"""Campaign history for a client."""

from __future__ import annotations

import math

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from templaito.clients import get_client
from templaito.errors import InvalidRequest
from templaito.models import CampaignStatus
from templaito.orm import Campaign

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


def _positive_int(value, fallback: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def list_campaigns(
    session: Session,
    client_id: int,
    status: str | None = None,
    page=1,
    limit=DEFAULT_LIMIT,
) -> dict:
    """Newest-first page of a client's campaigns with their country targets.

    Invalid page/limit values fall back to 1 and 50; limit is capped at 100.
    An unknown status raises InvalidRequest.
    """
    client = get_client(session, client_id)
    page = _positive_int(page, 1)
    limit = min(_positive_int(limit, DEFAULT_LIMIT), MAX_LIMIT)

    status_filter = (status or "").strip().upper() or None
    if status_filter is not None:
        try:
            CampaignStatus(status_filter)
        except ValueError:
            raise InvalidRequest(f"Unsupported status filter: {status_filter}") from None

    where = [Campaign.client_id == client.id]
    if status_filter:
        where.append(Campaign.status == status_filter)

    total = session.scalar(select(func.count()).select_from(Campaign).where(*where)) or 0
    rows = session.scalars(
        select(Campaign)
        .where(*where)
        .options(selectinload(Campaign.targets))
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    return {
        "clientId": client.id,
        "client": {"id": client.id, "name": client.name},
        "campaigns": [c.to_dict() for c in rows],
        "pagination": {
            "page": page,
            "limit": limit,
            "totalCount": total,
            "totalPages": math.ceil(total / limit) if total else 0,
        },
        "filters": {"status": status_filter},
    }
