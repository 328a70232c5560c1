"""Pydantic schemas for CRM entities -- closed enums, form payloads, read models.

Defines all structured types of the canonical schema:
- Enums: PipelineStage, ContactRole, PropertyType, PropertyStatus, TransactionType,
  ActivityType, ActivityPriority, ActivityStatus, TemplateCategory (each with French labels)
- Contacts: ContactCreate/Update/Read
- Properties: PropertyCreate/Update/Read
- Deals: DealCreate/Update/Read
- Activities: ActivityCreate/Update/Read
- Email templates: EmailTemplateCreate/Update/Read

Enum member order is meaningful: it is the column order of the boards.
Create/Update models validate form input; Read models accept backend rows
(extra columns such as embedded relations are kept, not rejected).
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ── Enums ───────────────────────────────────────────────────────────────────


class PipelineStage(str, Enum):
    """Stage of a contact (lead pipeline) or a deal (deal pipeline)."""

    NOUVEAU = "nouveau"
    QUALIFICATION = "qualification"
    ESTIMATION = "estimation"
    MANDAT = "mandat"
    COMMERCIALISATION = "commercialisation"
    VISITE = "visite"
    OFFRE = "offre"
    NEGOCIATION = "negociation"
    COMPROMIS = "compromis"
    FINANCEMENT = "financement"
    ACTE = "acte"
    VENDU = "vendu"
    PERDU = "perdu"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineStage.VENDU, PipelineStage.PERDU)


class ContactRole(str, Enum):
    VENDEUR = "vendeur"
    ACHETEUR = "acheteur"
    VENDEUR_ACHETEUR = "vendeur_acheteur"
    LOCATAIRE = "locataire"
    PROPRIETAIRE = "proprietaire"
    PROSPECT = "prospect"
    PARTENAIRE = "partenaire"
    NOTAIRE = "notaire"
    BANQUIER = "banquier"
    AUTRE = "autre"


class PropertyType(str, Enum):
    APPARTEMENT = "appartement"
    MAISON = "maison"
    TERRAIN = "terrain"
    COMMERCE = "commerce"
    BUREAU = "bureau"
    IMMEUBLE = "immeuble"
    PARKING = "parking"
    AUTRE = "autre"


class PropertyStatus(str, Enum):
    DISPONIBLE = "disponible"
    SOUS_COMPROMIS = "sous_compromis"
    VENDU = "vendu"
    LOUE = "loue"
    RETIRE = "retire"


class TransactionType(str, Enum):
    VENTE = "vente"
    LOCATION = "location"
    VIAGER = "viager"


class ActivityType(str, Enum):
    APPEL = "appel"
    EMAIL = "email"
    VISITE = "visite"
    RDV = "rdv"
    RELANCE = "relance"
    SIGNATURE = "signature"
    NOTE = "note"
    TACHE = "tache"
    AUTRE = "autre"


class ActivityPriority(str, Enum):
    BASSE = "basse"
    NORMALE = "normale"
    HAUTE = "haute"
    URGENTE = "urgente"


class ActivityStatus(str, Enum):
    PLANIFIE = "planifie"
    EN_COURS = "en_cours"
    TERMINE = "termine"
    ANNULE = "annule"


class TemplateCategory(str, Enum):
    FIRST_CONTACT = "first_contact"
    FOLLOWUP = "followup"
    PROPERTY_PROPOSAL = "property_proposal"
    POST_VISIT = "post_visit"
    APPOINTMENT = "appointment"
    NEWSLETTER = "newsletter"
    CUSTOM = "custom"


# Members of different enums share raw values ("vendu", "visite", "autre"),
# so labels are keyed by enum type first.
LABELS: dict[type[Enum], dict[str, str]] = {
    PipelineStage: {
        "nouveau": "Nouveau",
        "qualification": "Qualification",
        "estimation": "Estimation",
        "mandat": "Mandat signé",
        "commercialisation": "Commercialisation",
        "visite": "Visites en cours",
        "offre": "Offre déposée",
        "negociation": "Négociation",
        "compromis": "Compromis",
        "financement": "Financement",
        "acte": "Acte",
        "vendu": "Vendu ✅",
        "perdu": "Perdu ❌",
    },
    ContactRole: {
        "vendeur": "Vendeur",
        "acheteur": "Acheteur",
        "vendeur_acheteur": "Vendeur/Acheteur",
        "locataire": "Locataire",
        "proprietaire": "Propriétaire",
        "prospect": "Prospect",
        "partenaire": "Partenaire",
        "notaire": "Notaire",
        "banquier": "Banquier",
        "autre": "Autre",
    },
    PropertyType: {
        "appartement": "Appartement",
        "maison": "Maison",
        "terrain": "Terrain",
        "commerce": "Commerce",
        "bureau": "Bureau",
        "immeuble": "Immeuble",
        "parking": "Parking",
        "autre": "Autre",
    },
    PropertyStatus: {
        "disponible": "Disponible",
        "sous_compromis": "Sous compromis",
        "vendu": "Vendu",
        "loue": "Loué",
        "retire": "Retiré",
    },
    TransactionType: {
        "vente": "Vente",
        "location": "Location",
        "viager": "Viager",
    },
    ActivityType: {
        "appel": "Appel",
        "email": "Email",
        "visite": "Visite",
        "rdv": "Rendez-vous",
        "relance": "Relance",
        "signature": "Signature",
        "note": "Note",
        "tache": "Tâche",
        "autre": "Autre",
    },
    ActivityPriority: {
        "basse": "Basse",
        "normale": "Normale",
        "haute": "Haute",
        "urgente": "Urgente",
    },
    ActivityStatus: {
        "planifie": "Planifié",
        "en_cours": "En cours",
        "termine": "Terminé",
        "annule": "Annulé",
    },
    TemplateCategory: {
        "first_contact": "Première prise de contact",
        "followup": "Relance",
        "property_proposal": "Proposition de biens",
        "post_visit": "Suivi post-visite",
        "appointment": "Confirmation RDV",
        "newsletter": "Newsletter",
        "custom": "Personnalisés",
    },
}


def label_for(value: Enum | str | None, enum_type: type[Enum] | None = None) -> str:
    """French label of an enum member or of a raw value of ``enum_type``.

    Unknown values are returned as-is (empty string for None).
    """
    if value is None:
        return ""
    if isinstance(value, Enum):
        enum_type = type(value)
        value = value.value
    labels = LABELS.get(enum_type, {}) if enum_type is not None else {}
    return labels.get(str(value), str(value))


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ── Contacts ────────────────────────────────────────────────────────────────


class ContactCreate(BaseModel):
    """Contact form. New contacts always enter the pipeline at ``nouveau``."""

    full_name: str = Field(min_length=2, max_length=100)
    email: str | None = None
    phone: str | None = Field(default=None, max_length=20)
    role: ContactRole | None = None
    urgency_score: int = Field(default=0, ge=0, le=10)
    source: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    tags: list[str] = Field(default_factory=list)
    assigned_to: str | None = None

    @field_validator("email", "phone", "source", "notes", mode="before")
    @classmethod
    def _empty_as_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, v: str | None) -> str | None:
        if v is not None and not _EMAIL_RE.match(v):
            raise ValueError("Email invalide")
        return v


class ContactUpdate(BaseModel):
    """Partial contact update. Only explicitly set fields are written."""

    full_name: str | None = Field(default=None, min_length=2, max_length=100)
    email: str | None = None
    phone: str | None = Field(default=None, max_length=20)
    role: ContactRole | None = None
    pipeline_stage: PipelineStage | None = None
    urgency_score: int | None = Field(default=None, ge=0, le=10)
    source: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=1000)
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    tags: list[str] | None = None
    assigned_to: str | None = None
    last_contact_date: datetime | None = None
    next_followup_date: datetime | None = None

    @field_validator("email", "phone", "source", "notes", mode="before")
    @classmethod
    def _empty_as_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _valid_email(cls, v: str | None) -> str | None:
        if v is not None and not _EMAIL_RE.match(v):
            raise ValueError("Email invalide")
        return v


class ContactRead(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    organization_id: str
    full_name: str
    email: str | None = None
    phone: str | None = None
    role: ContactRole | None = None
    pipeline_stage: str = PipelineStage.NOUVEAU.value
    urgency_score: int = 0
    source: str | None = None
    notes: str | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    tags: list[str] | None = None
    assigned_to: str | None = None
    last_contact_date: datetime | None = None
    next_followup_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Properties ──────────────────────────────────────────────────────────────


class PropertyCreate(BaseModel):
    """Property listing form."""

    title: str = Field(min_length=5, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    type: PropertyType = PropertyType.APPARTEMENT
    status: PropertyStatus = PropertyStatus.DISPONIBLE
    transaction_type: TransactionType | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    price: float | None = Field(default=None, ge=0)
    surface: float | None = Field(default=None, ge=0)
    rooms: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    energy_rating: str | None = Field(default=None, max_length=5)
    contact_id: str | None = None
    assigned_to: str | None = None


class PropertyUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=5, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    type: PropertyType | None = None
    status: PropertyStatus | None = None
    transaction_type: TransactionType | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    price: float | None = Field(default=None, ge=0)
    surface: float | None = Field(default=None, ge=0)
    rooms: int | None = Field(default=None, ge=0)
    bedrooms: int | None = Field(default=None, ge=0)
    energy_rating: str | None = Field(default=None, max_length=5)
    contact_id: str | None = None
    assigned_to: str | None = None


class PropertyRead(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    organization_id: str
    title: str
    description: str | None = None
    type: PropertyType = PropertyType.APPARTEMENT
    status: PropertyStatus = PropertyStatus.DISPONIBLE
    transaction_type: TransactionType | None = None
    address: str | None = None
    city: str | None = None
    postal_code: str | None = None
    price: float | None = None
    surface: float | None = None
    rooms: int | None = None
    bedrooms: int | None = None
    energy_rating: str | None = None
    contact_id: str | None = None
    assigned_to: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Deals ───────────────────────────────────────────────────────────────────


class DealCreate(BaseModel):
    """Deal form. New deals always enter the pipeline at ``nouveau``."""

    name: str = Field(min_length=2, max_length=100)
    amount: float = Field(ge=0)
    commission_rate: float = Field(default=5, ge=0, le=100)
    probability: int = Field(default=0, ge=0, le=100)
    expected_close_date: date | None = None
    contact_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None
    notes: str | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("expected_close_date", mode="before")
    @classmethod
    def _empty_date(cls, v: Any) -> Any:
        return _blank_to_none(v)


class DealUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=100)
    amount: float | None = Field(default=None, ge=0)
    commission_rate: float | None = Field(default=None, ge=0, le=100)
    probability: int | None = Field(default=None, ge=0, le=100)
    stage: PipelineStage | None = None
    expected_close_date: date | None = None
    actual_close_date: date | None = None
    contact_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None
    notes: str | None = None
    tags: list[str] | None = None

    @field_validator("expected_close_date", "actual_close_date", mode="before")
    @classmethod
    def _empty_date(cls, v: Any) -> Any:
        return _blank_to_none(v)


class DealRead(BaseModel):
    """Deal row. ``contacts``/``properties`` hold embedded relations when selected."""

    model_config = ConfigDict(extra="allow")

    id: str
    organization_id: str
    name: str
    stage: str = PipelineStage.NOUVEAU.value
    amount: float = 0.0
    probability: int = 0
    commission_rate: float = 0.0
    commission_amount: float = 0.0
    expected_close_date: date | None = None
    actual_close_date: date | None = None
    contact_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None
    notes: str | None = None
    tags: list[str] | None = None
    contacts: dict[str, Any] | None = None
    properties: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Activities ──────────────────────────────────────────────────────────────


class ActivityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    type: ActivityType = ActivityType.TACHE
    status: ActivityStatus = ActivityStatus.PLANIFIE
    priority: ActivityPriority = ActivityPriority.NORMALE
    description: str | None = Field(default=None, max_length=500)
    date: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    contact_id: str | None = None
    deal_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None
    ai_generated: bool = False


class ActivityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=300)
    type: ActivityType | None = None
    status: ActivityStatus | None = None
    priority: ActivityPriority | None = None
    description: str | None = Field(default=None, max_length=500)
    date: datetime | None = None
    duration_minutes: int | None = Field(default=None, ge=0)
    contact_id: str | None = None
    deal_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None


class ActivityRead(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    organization_id: str
    name: str
    type: ActivityType = ActivityType.TACHE
    status: ActivityStatus = ActivityStatus.PLANIFIE
    priority: ActivityPriority = ActivityPriority.NORMALE
    description: str | None = None
    date: datetime | None = None
    duration_minutes: int | None = None
    contact_id: str | None = None
    deal_id: str | None = None
    property_id: str | None = None
    assigned_to: str | None = None
    ai_generated: bool = False
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


# ── Email Templates ─────────────────────────────────────────────────────────


class EmailTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=300)
    subject: str = Field(min_length=1, max_length=300)
    content: str = Field(min_length=1)
    category: TemplateCategory = TemplateCategory.CUSTOM


class EmailTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=300)
    subject: str | None = Field(default=None, min_length=1, max_length=300)
    content: str | None = Field(default=None, min_length=1)
    category: TemplateCategory | None = None


class EmailTemplateRead(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    organization_id: str
    name: str
    subject: str
    content: str
    category: TemplateCategory = TemplateCategory.CUSTOM
    variables: list[str] = Field(default_factory=list)
    is_predefined: bool = False
    usage_count: int = 0
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
