"""Email template variables -- extraction, rendering, client-side filtering.

Templates use ``{variable}`` placeholders from a fixed vocabulary. Only the
known variables are tracked on a template; anything else in braces is left
alone, both when extracting and when rendering.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from src.crm.entities.schemas import EmailTemplateRead, TemplateCategory

# Declaration order is the order variables are listed on a template.
TEMPLATE_VARIABLES: tuple[tuple[str, str], ...] = (
    ("{contact_prenom}", "Prénom contact"),
    ("{contact_nom}", "Nom contact"),
    ("{contact_civilite}", "Civilité"),
    ("{agent_prenom}", "Prénom agent"),
    ("{agent_nom}", "Nom agent"),
    ("{bien_type}", "Type de bien"),
    ("{bien_adresse}", "Adresse bien"),
    ("{bien_prix}", "Prix bien"),
    ("{bien_surface}", "Surface bien"),
    ("{agence_nom}", "Nom agence"),
    ("{date_rdv}", "Date RDV"),
)

VARIABLE_KEYS: tuple[str, ...] = tuple(key for key, _ in TEMPLATE_VARIABLES)


def extract_variables(content: str) -> list[str]:
    """Known variables used in ``content``, in declaration order."""
    return [key for key in VARIABLE_KEYS if key in content]


def _placeholder(name: str) -> str:
    return name if name.startswith("{") else "{" + name + "}"


def render(text: str, values: Mapping[str, Any]) -> str:
    """Substitute known variables present in ``values``.

    Keys may be given with or without braces (``contact_prenom`` or
    ``{contact_prenom}``). Variables without a value, and unknown
    placeholders, are left verbatim.
    """
    provided = {_placeholder(k): v for k, v in values.items() if v is not None}
    rendered = text
    for key in VARIABLE_KEYS:
        if key in provided:
            rendered = rendered.replace(key, str(provided[key]))
    return rendered


def filter_templates(
    templates: Iterable[EmailTemplateRead],
    search: str = "",
    category: TemplateCategory | str | None = None,
) -> list[EmailTemplateRead]:
    """Case-insensitive search on name and subject, optional category filter.

    ``category`` of None or ``"all"`` keeps every category.
    """
    needle = search.lower()
    wanted = None if category in (None, "all") else TemplateCategory(category)
    return [
        t
        for t in templates
        if (needle in t.name.lower() or needle in t.subject.lower())
        and (wanted is None or t.category == wanted)
    ]
