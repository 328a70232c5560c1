"""Card heuristics -- the deal health score and the contact smart badges.

Deal health, starting from 50:
- updated less than 3 days ago: +20; more than 7 days ago: -30
- probability above 70: +15; above 50: +10; below 30 (and non-zero): -10
- stage offre, negociation or compromis: +10
- expected close within the next 14 days: +10; already past: -15

Contact badges:
- Chaud: last contact 2 days ago or less; Froid: more than 14 days ago
- Relance: next follow-up due today or already past
- High Value: any deal above 300000
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel

from src.crm.entities.schemas import PipelineStage

ADVANCED_STAGES = frozenset(
    {PipelineStage.OFFRE.value, PipelineStage.NEGOCIATION.value, PipelineStage.COMPROMIS.value}
)


class DealHealth(BaseModel):
    score: int
    label: str


def _get(deal: Any, name: str) -> Any:
    if isinstance(deal, dict):
        return deal.get(name)
    return getattr(deal, name, None)


def _to_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _whole_days(delta_seconds: float) -> int:
    # Whole days, truncated toward zero
    return int(delta_seconds / 86400)


def deal_health_score(deal: Any, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    score = 50

    updated_at = _to_datetime(_get(deal, "updated_at"))
    if updated_at is not None:
        days_since_update = _whole_days((now - updated_at).total_seconds())
        if days_since_update < 3:
            score += 20
        elif days_since_update > 7:
            score -= 30

    probability = _get(deal, "probability") or 0
    if probability:
        if probability > 70:
            score += 15
        elif probability > 50:
            score += 10
        elif probability < 30:
            score -= 10

    stage = _get(deal, "stage")
    if getattr(stage, "value", stage) in ADVANCED_STAGES:
        score += 10

    close_date = _to_datetime(_get(deal, "expected_close_date"))
    if close_date is not None:
        days_until_close = _whole_days((close_date - now).total_seconds())
        if 0 <= days_until_close <= 14:
            score += 10
        if days_until_close < 0:
            score -= 15

    return max(0, min(100, score))


def deal_health_label(score: int) -> str:
    if score >= 70:
        return "Bon"
    if score >= 40:
        return "Attention"
    return "Critique"


def deal_health(deal: Any, now: datetime | None = None) -> DealHealth:
    score = deal_health_score(deal, now)
    return DealHealth(score=score, label=deal_health_label(score))


# ── Contact badges ──────────────────────────────────────────────────────────

HOT_MAX_DAYS = 2
COLD_MIN_DAYS = 14
HIGH_VALUE_AMOUNT = 300000


class BadgeType(str, Enum):
    HOT = "hot"
    COLD = "cold"
    FOLLOWUP = "followup"
    HIGH_VALUE = "high-value"


class ContactBadge(BaseModel):
    type: BadgeType
    label: str
    icon: str
    tone: str


_BADGES = {
    BadgeType.HOT: ContactBadge(type=BadgeType.HOT, label="Chaud", icon="🔥", tone="destructive"),
    BadgeType.COLD: ContactBadge(type=BadgeType.COLD, label="Froid", icon="❄️", tone="info"),
    BadgeType.FOLLOWUP: ContactBadge(
        type=BadgeType.FOLLOWUP, label="Relance", icon="⏰", tone="warning"
    ),
    BadgeType.HIGH_VALUE: ContactBadge(
        type=BadgeType.HIGH_VALUE, label="High Value", icon="💰", tone="success"
    ),
}


def contact_badges(contact: Any, now: datetime | None = None) -> list[ContactBadge]:
    """Smart badges of a contact card, in display order.

    ``contact`` may embed its deals (``deals``: rows or read models with an
    amount) for the high-value badge.
    """
    now = now or datetime.now(timezone.utc)
    badges: list[ContactBadge] = []

    last_contact = _to_datetime(_get(contact, "last_contact_date"))
    if last_contact is not None:
        days_since_contact = _whole_days((now - last_contact).total_seconds())
        if days_since_contact <= HOT_MAX_DAYS:
            badges.append(_BADGES[BadgeType.HOT])
        elif days_since_contact > COLD_MIN_DAYS:
            badges.append(_BADGES[BadgeType.COLD])

    followup = _to_datetime(_get(contact, "next_followup_date"))
    if followup is not None and (followup <= now or followup.date() == now.date()):
        badges.append(_BADGES[BadgeType.FOLLOWUP])

    deals = _get(contact, "deals") or []
    if any(float(_get(deal, "amount") or 0) > HIGH_VALUE_AMOUNT for deal in deals):
        badges.append(_BADGES[BadgeType.HIGH_VALUE])

    return badges
