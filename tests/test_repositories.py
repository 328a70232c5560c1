"""Repository tests on the seeded SQL backend.

Exercises the entity repositories end to end: tenant-scoped CRUD, the French
success and error notifications, cache invalidation after writes, and each
entity's own rules (deal commission, terminal stage coercion, activity
completion, predefined email templates).
"""

from __future__ import annotations

import pytest

from src.crm.core.errors import NotFoundError, PermissionDeniedError
from src.crm.entities.schemas import (
    ActivityCreate,
    ActivityStatus,
    ContactCreate,
    ContactRole,
    ContactUpdate,
    DealCreate,
    DealUpdate,
    EmailTemplateCreate,
    EmailTemplateUpdate,
    PipelineStage,
    PropertyCreate,
    PropertyUpdate,
    TemplateCategory,
)

from tests.conftest import T1, USER_T1


def _titles(notifier) -> list[str]:
    return [n.title for n in notifier.history]


# ── Deals ─────────────────────────────────────────────────────────────────


class TestDealRepository:
    """Deals: commission, stage coercion, tenant scoping."""

    async def test_create_sets_pipeline_defaults(self, deals, notifier, session_t1):
        deal = await deals.create(
            session_t1,
            DealCreate(name="Vente maison Nantes", amount=300000, commission_rate=4),
        )

        assert deal.organization_id == T1
        assert deal.stage == PipelineStage.NOUVEAU.value
        assert deal.assigned_to == USER_T1
        assert deal.commission_amount == 12000.0
        assert _titles(notifier) == ["Affaire créée avec succès"]

    async def test_list_is_cached_and_refreshed_after_create(self, deals, cache, session_t1):
        assert await deals.list(session_t1) == []
        key = deals.query_key(session_t1)
        assert cache.get(key) == []

        await deals.create(session_t1, DealCreate(name="Vente studio", amount=90000))

        # The create invalidated the cached collection, which was refetched.
        assert [r["name"] for r in cache.get(key)] == ["Vente studio"]
        assert [d.name for d in await deals.list(session_t1)] == ["Vente studio"]

    async def test_list_with_filters(self, deals, make_deal, session_t1):
        await make_deal(session_t1, name="A", stage="offre")
        await make_deal(session_t1, name="B", stage="acte")

        offers = await deals.list(session_t1, {"stage": "offre"})

        assert [d.name for d in offers] == ["A"]

    async def test_update_recomputes_commission(self, deals, make_deal, session_t1):
        row = await make_deal(session_t1, amount=200000.0, commission_rate=5.0)

        deal = await deals.update(session_t1, row["id"], DealUpdate(amount=400000))

        assert deal.amount == 400000.0
        assert deal.commission_amount == 20000.0

    @pytest.mark.parametrize(
        ("stage", "probability"), [(PipelineStage.VENDU, 100), (PipelineStage.PERDU, 0)]
    )
    async def test_terminal_stage_coerces_probability(
        self, deals, make_deal, session_t1, stage, probability
    ):
        row = await make_deal(session_t1, stage="negociation", probability=60)

        deal = await deals.update(session_t1, row["id"], DealUpdate(stage=stage))

        assert deal.stage == stage.value
        assert deal.probability == probability

    async def test_update_stage_outside_drag(self, deals, make_deal, session_t1):
        row = await make_deal(session_t1, stage="compromis", probability=80)

        deal = await deals.update_stage(session_t1, row["id"], PipelineStage.VENDU)

        assert deal.stage == "vendu"
        assert deal.probability == 100

    async def test_update_stage_of_foreign_deal_notifies_move_failure(
        self, deals, make_deal, notifier, session_t1, session_t2
    ):
        row = await make_deal(session_t2, stage="offre")

        with pytest.raises(PermissionDeniedError):
            await deals.update_stage(session_t1, row["id"], PipelineStage.VENDU)

        assert [n.title for n in notifier.errors()] == ["Erreur lors du déplacement"]
        assert (await deals.get(session_t2, row["id"])).stage == "offre"

    async def test_delete_foreign_deal_is_denied(
        self, deals, make_deal, notifier, session_t1, session_t2
    ):
        row = await make_deal(session_t2)

        with pytest.raises(PermissionDeniedError):
            await deals.delete(session_t1, row["id"])

        assert [n.title for n in notifier.errors()] == ["Erreur lors de la suppression"]
        assert await deals.get(session_t2, row["id"])

    async def test_delete(self, deals, make_deal, notifier, session_t1):
        row = await make_deal(session_t1)

        await deals.delete(session_t1, row["id"])

        assert _titles(notifier) == ["Affaire supprimée"]
        with pytest.raises(NotFoundError):
            await deals.get(session_t1, row["id"])


# ── Contacts ──────────────────────────────────────────────────────────────


class TestContactRepository:
    """Contacts enter the lead pipeline at ``nouveau``."""

    async def test_create(self, contacts, notifier, session_t1):
        contact = await contacts.create(
            session_t1,
            ContactCreate(full_name="Jean Martin", email="jean@example.com", urgency_score=7),
        )

        assert contact.pipeline_stage == "nouveau"
        assert contact.role == ContactRole.PROSPECT
        assert contact.urgency_score == 7
        assert _titles(notifier) == ["Contact créé avec succès"]

    async def test_update_writes_only_set_fields(self, contacts, make_contact, session_t1):
        row = await make_contact(session_t1, phone="0601020304", city="Lyon")

        contact = await contacts.update(session_t1, row["id"], ContactUpdate(city="Paris"))

        assert contact.city == "Paris"
        assert contact.phone == "0601020304"

    async def test_update_stage(self, contacts, make_contact, session_t1):
        row = await make_contact(session_t1, pipeline_stage="qualification")

        contact = await contacts.update_stage(session_t1, row["id"], PipelineStage.MANDAT)

        assert contact.pipeline_stage == "mandat"

    async def test_get_foreign_contact_is_not_found(
        self, contacts, make_contact, session_t1, session_t2
    ):
        row = await make_contact(session_t2)

        with pytest.raises(NotFoundError):
            await contacts.get(session_t1, row["id"])


# ── Properties ────────────────────────────────────────────────────────────


class TestPropertyRepository:
    async def test_create_and_update(self, properties, notifier, session_t1):
        listing = await properties.create(
            session_t1,
            PropertyCreate(title="Appartement T3 centre", price=320000, surface=72.5, rooms=3),
        )
        updated = await properties.update(
            session_t1, listing.id, PropertyUpdate(price=310000)
        )

        assert updated.price == 310000
        assert updated.surface == 72.5
        assert _titles(notifier) == ["Bien créé avec succès", "Bien mis à jour"]


# ── Activities ────────────────────────────────────────────────────────────


class TestActivityRepository:
    """Activities default to the current agent and the current time."""

    async def test_create_defaults(self, activities, notifier, session_t1):
        activity = await activities.create(session_t1, ActivityCreate(name="Rappeler M. Durand"))

        assert activity.assigned_to == USER_T1
        assert activity.date is not None
        assert activity.status == ActivityStatus.PLANIFIE
        assert _titles(notifier) == ["✅ Activité créée avec succès"]

    async def test_ai_generated_message(self, activities, notifier, session_t1):
        await activities.create(
            session_t1, ActivityCreate(name="Relance IA", type="relance", ai_generated=True)
        )

        assert _titles(notifier) == ["✅ Activité IA créée avec succès ✨"]

    async def test_complete(self, activities, notifier, session_t1):
        activity = await activities.create(session_t1, ActivityCreate(name="Visite"))

        done = await activities.complete(session_t1, activity.id)

        assert done.status == ActivityStatus.TERMINE
        assert done.completed_at is not None
        assert _titles(notifier)[-1] == "✅ Activité terminée"

    async def test_complete_foreign_activity_fails(
        self, activities, notifier, session_t1, session_t2
    ):
        activity = await activities.create(session_t2, ActivityCreate(name="Signature"))

        with pytest.raises(PermissionDeniedError):
            await activities.complete(session_t1, activity.id)

        assert [n.title for n in notifier.errors()] == ["Erreur"]


# ── Email Templates ───────────────────────────────────────────────────────


async def _predefined_template(backend, session) -> dict:
    [row] = await backend.insert(
        session,
        "email_templates",
        [
            {
                "organization_id": session.tenant_id,
                "name": "Premier contact",
                "subject": "Bonjour {contact_prenom}",
                "content": "Bonjour {contact_prenom}, je suis {agent_prenom}.",
                "category": "first_contact",
                "variables": ["{contact_prenom}", "{agent_prenom}"],
                "is_predefined": True,
            }
        ],
    )
    return row


class TestEmailTemplateRepository:
    """Custom templates are editable; predefined ones are read-only."""

    async def test_create_extracts_variables(self, templates, notifier, session_t1):
        template = await templates.create(
            session_t1,
            EmailTemplateCreate(
                name="Relance douce",
                subject="Suite à notre échange",
                content="Bonjour {contact_prenom}, le bien {bien_adresse} au prix de {bien_prix}.",
                category=TemplateCategory.FOLLOWUP,
            ),
        )

        assert template.variables == ["{contact_prenom}", "{bien_adresse}", "{bien_prix}"]
        assert template.is_predefined is False
        assert template.created_by == USER_T1
        assert template.usage_count == 0
        assert _titles(notifier) == ["Template créé ✅"]

    async def test_update_recomputes_variables(self, templates, session_t1):
        template = await templates.create(
            session_t1,
            EmailTemplateCreate(name="RDV", subject="RDV", content="Le {date_rdv}"),
        )

        updated = await templates.update(
            session_t1,
            template.id,
            EmailTemplateUpdate(content="Le {date_rdv} avec {agent_nom}"),
        )

        assert updated.variables == ["{agent_nom}", "{date_rdv}"]

    async def test_predefined_cannot_be_edited(self, templates, backend, notifier, session_t1):
        row = await _predefined_template(backend, session_t1)

        with pytest.raises(PermissionDeniedError):
            await templates.update(session_t1, row["id"], EmailTemplateUpdate(name="Renommé"))

        assert [n.title for n in notifier.errors()] == [
            "Impossible de modifier un template prédéfini"
        ]

    async def test_predefined_cannot_be_deleted(self, templates, backend, notifier, session_t1):
        row = await _predefined_template(backend, session_t1)

        with pytest.raises(PermissionDeniedError):
            await templates.delete(session_t1, row["id"])

        assert (await templates.get(session_t1, row["id"])).name == "Premier contact"

    async def test_backend_policy_protects_predefined(self, backend, session_t1):
        row = await _predefined_template(backend, session_t1)

        changed = await backend.update(
            session_t1, "email_templates", {"name": "x"}, {"id": row["id"]}
        )
        removed = await backend.delete(session_t1, "email_templates", {"id": row["id"]})

        assert changed == []
        assert removed == []

    async def test_duplicate_predefined(self, templates, backend, notifier, session_t1):
        row = await _predefined_template(backend, session_t1)

        clone = await templates.duplicate(session_t1, row["id"])

        assert clone.id != row["id"]
        assert clone.name == "Premier contact (copie)"
        assert clone.is_predefined is False
        assert clone.category == TemplateCategory.FIRST_CONTACT
        assert clone.variables == ["{contact_prenom}", "{agent_prenom}"]
        assert _titles(notifier) == ["Template dupliqué"]

    async def test_record_usage_on_predefined(self, templates, backend, session_t1):
        row = await _predefined_template(backend, session_t1)

        await templates.record_usage(session_t1, row["id"])
        used = await templates.record_usage(session_t1, row["id"])

        assert used.usage_count == 2
