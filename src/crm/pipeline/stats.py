"""Pipeline analytics over already-fetched collections.

Pure functions: they read rows (dicts or read models) and never touch the
backend or the cache.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from src.crm.entities.schemas import ActivityStatus, PipelineStage

_CLOSED = {PipelineStage.VENDU.value, PipelineStage.PERDU.value}


def _get(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def _value(item: Any, name: str) -> str | None:
    raw = _get(item, name)
    return getattr(raw, "value", raw)


class StageTotal(BaseModel):
    count: int = 0
    amount: float = 0.0


class DealStats(BaseModel):
    """Headline numbers of the deal pipeline."""

    total_value: float = 0.0
    won_deals: int = 0
    active_deals: int = 0
    weighted_pipeline: float = 0.0
    by_stage: dict[str, StageTotal] = Field(default_factory=dict)


class ActivityStats(BaseModel):
    todo_count: int = 0
    completed_today: int = 0


def deal_stats(deals: Iterable[Any]) -> DealStats:
    """Totals across deals; active means neither vendu nor perdu.

    The weighted pipeline sums ``amount * probability / 100`` over active deals.
    """
    stats = DealStats(
        by_stage={stage.value: StageTotal() for stage in PipelineStage}
    )
    for deal in deals:
        amount = float(_get(deal, "amount") or 0)
        probability = float(_get(deal, "probability") or 0)
        stage = _value(deal, "stage") or PipelineStage.NOUVEAU.value

        stats.total_value += amount
        if stage == PipelineStage.VENDU.value:
            stats.won_deals += 1
        if stage not in _CLOSED:
            stats.active_deals += 1
            stats.weighted_pipeline += amount * probability / 100

        bucket = stats.by_stage.setdefault(stage, StageTotal())
        bucket.count += 1
        bucket.amount += amount
    return stats


def _as_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def activity_stats(activities: Iterable[Any], today: date | None = None) -> ActivityStats:
    """Planned activities, and activities done whose scheduled date is today."""
    today = today or datetime.now(timezone.utc).date()
    stats = ActivityStats()
    for activity in activities:
        status = _value(activity, "status")
        if status == ActivityStatus.PLANIFIE.value:
            stats.todo_count += 1
        elif status == ActivityStatus.TERMINE.value and _as_date(_get(activity, "date")) == today:
            stats.completed_today += 1
    return stats
