"""Tests for entity schemas, French labels and the form boundary.

Covers:
- Stage enum order is the board column order
- Labels are resolved per enum type (shared raw values do not collide)
- Form validation errors are reported per field and never reach a repository
- Blank optional inputs are normalized to None
"""

from __future__ import annotations

from datetime import date

import pytest

from src.crm.core.errors import InputValidationError
from src.crm.entities.forms import parse_form
from src.crm.entities.schemas import (
    ActivityType,
    ContactCreate,
    ContactRole,
    DealCreate,
    DealRead,
    PipelineStage,
    PropertyCreate,
    PropertyStatus,
    label_for,
)


# ── Enums and Labels ──────────────────────────────────────────────────────


class TestPipelineStage:
    def test_stage_order(self):
        assert [s.value for s in PipelineStage] == [
            "nouveau",
            "qualification",
            "estimation",
            "mandat",
            "commercialisation",
            "visite",
            "offre",
            "negociation",
            "compromis",
            "financement",
            "acte",
            "vendu",
            "perdu",
        ]

    def test_terminal_stages(self):
        assert {s for s in PipelineStage if s.is_terminal} == {
            PipelineStage.VENDU,
            PipelineStage.PERDU,
        }


class TestLabels:
    """French display labels."""

    def test_shared_values_resolve_per_enum(self):
        assert label_for(PipelineStage.VENDU) == "Vendu ✅"
        assert label_for(PropertyStatus.VENDU) == "Vendu"
        assert label_for(PipelineStage.VISITE) == "Visites en cours"
        assert label_for(ActivityType.VISITE) == "Visite"

    def test_raw_value_with_enum_type(self):
        assert label_for("mandat", PipelineStage) == "Mandat signé"
        assert label_for("vendeur_acheteur", ContactRole) == "Vendeur/Acheteur"

    def test_unknown_and_missing_values(self):
        assert label_for("archive", PipelineStage) == "archive"
        assert label_for(None) == ""


# ── Form Boundary ─────────────────────────────────────────────────────────


class TestParseForm:
    """Raw form input is validated before any repository call."""

    def test_valid_contact(self):
        form = parse_form(
            ContactCreate,
            {"full_name": "Claire Petit", "email": "", "phone": "  ", "role": "vendeur"},
        )

        assert form.full_name == "Claire Petit"
        assert form.email is None
        assert form.phone is None
        assert form.role == ContactRole.VENDEUR
        assert form.urgency_score == 0

    def test_invalid_contact_reports_fields(self):
        with pytest.raises(InputValidationError) as exc_info:
            parse_form(
                ContactCreate,
                {"full_name": "C", "email": "pas-un-email", "urgency_score": 11},
            )

        errors = exc_info.value.field_errors
        assert set(errors) == {"full_name", "email", "urgency_score"}
        assert "Email invalide" in errors["email"]

    def test_deal_blank_close_date(self):
        form = parse_form(
            DealCreate, {"name": "Vente loft", "amount": "450000", "expected_close_date": ""}
        )

        assert form.expected_close_date is None
        assert form.amount == 450000.0
        assert form.commission_rate == 5
        assert form.probability == 0

    def test_deal_bounds(self):
        with pytest.raises(InputValidationError) as exc_info:
            parse_form(
                DealCreate,
                {"name": "Vente", "amount": -1, "commission_rate": 120, "probability": 101},
            )

        assert set(exc_info.value.field_errors) == {"amount", "commission_rate", "probability"}

    def test_property_title_length(self):
        with pytest.raises(InputValidationError) as exc_info:
            parse_form(PropertyCreate, {"title": "T2"})

        assert "title" in exc_info.value.field_errors


class TestReadModels:
    def test_deal_read_keeps_embedded_relations(self):
        deal = DealRead.model_validate(
            {
                "id": "d1",
                "organization_id": "org-1",
                "name": "Vente maison",
                "stage": "offre",
                "expected_close_date": "2026-06-30",
                "contacts": {"full_name": "Marie Dupont"},
                "properties": {"address": "3 rue des Lilas", "title": "Maison 5 pièces"},
            }
        )

        assert deal.expected_close_date == date(2026, 6, 30)
        assert deal.contacts == {"full_name": "Marie Dupont"}
        assert deal.properties["title"] == "Maison 5 pièces"
