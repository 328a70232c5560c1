"""Deterministic tests for pipeline analytics, the deal health score and contact badges.

Pure Python over in-memory rows, no mocking. A fixed ``now`` keeps the
date-relative health rules reproducible.

Covers:
- deal_stats totals, won/active counts and the probability-weighted pipeline
- activity_stats planned count and activities completed today
- deal_health score components, clamping and labels
- contact_badges thresholds: recency, due follow-up, high-value deals
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from src.crm.entities.schemas import ContactRead, DealRead
from src.crm.pipeline.health import (
    contact_badges,
    deal_health,
    deal_health_label,
    deal_health_score,
)
from src.crm.pipeline.stats import activity_stats, deal_stats

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ── Deal Stats ────────────────────────────────────────────────────────────


class TestDealStats:
    def test_totals(self):
        deals = [
            {"stage": "offre", "amount": 200000, "probability": 50},
            {"stage": "vendu", "amount": 300000, "probability": 100},
            {"stage": "perdu", "amount": 150000, "probability": 0},
            {"stage": "nouveau", "amount": 100000, "probability": 10},
        ]

        stats = deal_stats(deals)

        assert stats.total_value == 750000
        assert stats.won_deals == 1
        assert stats.active_deals == 2
        assert stats.weighted_pipeline == pytest.approx(110000)
        assert stats.by_stage["offre"].count == 1
        assert stats.by_stage["vendu"].amount == 300000
        assert stats.by_stage["acte"].count == 0

    def test_accepts_read_models_and_missing_values(self):
        deals = [
            DealRead(id="d1", organization_id="org-1", name="A", stage="acte", amount=1000),
            {"stage": None, "amount": None, "probability": None},
        ]

        stats = deal_stats(deals)

        assert stats.total_value == 1000
        assert stats.active_deals == 2
        assert stats.by_stage["nouveau"].count == 1

    def test_empty(self):
        stats = deal_stats([])
        assert stats.total_value == 0
        assert len(stats.by_stage) == 13


class TestActivityStats:
    def test_todo_and_completed_today(self):
        today = NOW.date()
        activities = [
            {"status": "planifie", "date": "2026-03-12T09:00:00+00:00"},
            {"status": "planifie", "date": "2026-03-01T09:00:00+00:00"},
            {"status": "termine", "date": "2026-03-10T08:30:00Z"},
            {"status": "termine", "date": "2026-03-09T17:00:00+00:00"},
            {"status": "annule", "date": "2026-03-10T10:00:00+00:00"},
        ]

        stats = activity_stats(activities, today=today)

        assert stats.todo_count == 2
        assert stats.completed_today == 1


# ── Deal Health ───────────────────────────────────────────────────────────


def _deal(**overrides) -> dict:
    deal = {
        "stage": "nouveau",
        "probability": 0,
        "updated_at": NOW - timedelta(days=5),
        "expected_close_date": None,
    }
    deal.update(overrides)
    return deal


class TestDealHealth:
    """Score components from a neutral baseline of 50."""

    def test_neutral_deal(self):
        assert deal_health_score(_deal(), now=NOW) == 50

    def test_recent_update_bonus_and_stale_penalty(self):
        assert deal_health_score(_deal(updated_at=NOW - timedelta(days=1)), now=NOW) == 70
        assert deal_health_score(_deal(updated_at=NOW - timedelta(days=10)), now=NOW) == 20

    @pytest.mark.parametrize(
        ("probability", "expected"), [(80, 65), (60, 60), (40, 50), (20, 40), (0, 50)]
    )
    def test_probability(self, probability, expected):
        assert deal_health_score(_deal(probability=probability), now=NOW) == expected

    def test_advanced_stage(self):
        assert deal_health_score(_deal(stage="negociation"), now=NOW) == 60

    def test_close_date(self):
        soon = (NOW + timedelta(days=7)).date()
        overdue = (NOW - timedelta(days=3)).date()
        far = (NOW + timedelta(days=60)).date()

        assert deal_health_score(_deal(expected_close_date=soon), now=NOW) == 60
        assert deal_health_score(_deal(expected_close_date=overdue), now=NOW) == 35
        assert deal_health_score(_deal(expected_close_date=far), now=NOW) == 50

    def test_closing_today_is_not_overdue(self):
        assert deal_health_score(_deal(expected_close_date=date(2026, 3, 10)), now=NOW) == 60

    def test_score_is_clamped(self):
        best = _deal(
            stage="compromis",
            probability=90,
            updated_at=NOW - timedelta(hours=2),
            expected_close_date="2026-03-15",
        )
        worst = _deal(
            probability=10,
            updated_at=(NOW - timedelta(days=30)).isoformat(),
            expected_close_date="2026-01-01",
        )

        assert deal_health_score(best, now=NOW) == 100
        assert deal_health_score(worst, now=NOW) == 0

    @pytest.mark.parametrize(
        ("score", "label"),
        [(100, "Bon"), (70, "Bon"), (69, "Attention"), (40, "Attention"), (39, "Critique")],
    )
    def test_labels(self, score, label):
        assert deal_health_label(score) == label

    def test_deal_health_model(self):
        health = deal_health(_deal(probability=80, updated_at=NOW), now=NOW)
        assert health.score == 85
        assert health.label == "Bon"


# ── Contact Badges ────────────────────────────────────────────────────────


def _badge_types(contact: dict) -> list[str]:
    return [b.type.value for b in contact_badges(contact, now=NOW)]


class TestContactBadges:
    """Hot/cold recency, due follow-up, high-value deals."""

    @pytest.mark.parametrize(
        ("days_ago", "expected"),
        [(0, ["hot"]), (2, ["hot"]), (3, []), (14, []), (15, ["cold"])],
    )
    def test_last_contact_recency(self, days_ago, expected):
        contact = {"last_contact_date": NOW - timedelta(days=days_ago)}
        assert _badge_types(contact) == expected

    def test_partial_days_are_truncated(self):
        contact = {"last_contact_date": NOW - timedelta(days=2, hours=23)}
        assert _badge_types(contact) == ["hot"]

    @pytest.mark.parametrize(
        ("followup", "expected"),
        [
            (NOW - timedelta(days=3), ["followup"]),
            (NOW + timedelta(hours=6), ["followup"]),
            ("2026-03-10", ["followup"]),
            (NOW + timedelta(days=1), []),
        ],
    )
    def test_followup_due_today_or_past(self, followup, expected):
        assert _badge_types({"next_followup_date": followup}) == expected

    @pytest.mark.parametrize(
        ("amounts", "expected"),
        [([300000], []), ([120000, 300000.01], ["high-value"]), ([], [])],
    )
    def test_high_value_deals(self, amounts, expected):
        contact = {"deals": [{"amount": amount} for amount in amounts]}
        assert _badge_types(contact) == expected

    def test_all_badges_in_display_order(self):
        contact = ContactRead(
            id="c1",
            organization_id="org-1",
            full_name="Marie Dupont",
            last_contact_date=NOW - timedelta(days=20),
            next_followup_date=NOW - timedelta(days=1),
            deals=[{"amount": 450000}],
        )

        badges = contact_badges(contact, now=NOW)

        assert [b.label for b in badges] == ["Froid", "Relance", "High Value"]
        assert badges[0].icon == "❄️"

    def test_no_data_no_badges(self):
        assert _badge_types({"full_name": "Sans historique"}) == []
