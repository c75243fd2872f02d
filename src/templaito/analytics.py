"""Template usage analytics built from TemplateGeneration records."""

from __future__ import annotations

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from templaito.orm import Prompt, TemplateGeneration


def usage_summary(session: Session, user_id: int | None = None) -> dict:
    """Totals, success rate, mean duration and per-prompt counts."""
    where = [TemplateGeneration.user_id == user_id] if user_id is not None else []
    succeeded = func.sum(case((TemplateGeneration.was_successful.is_(True), 1), else_=0))

    total, ok, avg_ms = session.execute(
        select(func.count(TemplateGeneration.id), succeeded, func.avg(TemplateGeneration.generation_time))
        .where(*where)
    ).one()
    total = total or 0
    ok = int(ok or 0)

    per_prompt = session.execute(
        select(TemplateGeneration.prompt_id, Prompt.name, func.count(TemplateGeneration.id), succeeded)
        .outerjoin(Prompt, Prompt.id == TemplateGeneration.prompt_id)
        .where(*where)
        .group_by(TemplateGeneration.prompt_id, Prompt.name)
        .order_by(func.count(TemplateGeneration.id).desc())
    ).all()

    return {
        "totalGenerations": total,
        "successful": ok,
        "failed": total - ok,
        "successRate": ok / total if total else 0.0,
        "averageGenerationTime": float(avg_ms) if avg_ms is not None else None,
        "byPrompt": [
            {"promptId": prompt_id, "name": name, "count": count, "successful": int(good or 0)}
            for prompt_id, name, count, good in per_prompt
        ],
    }
