"""Property listing repository."""

from __future__ import annotations

from src.crm.entities.base import EntityMessages, EntityRepository
from src.crm.entities.schemas import PropertyRead


class PropertyRepository(EntityRepository[PropertyRead]):
    table = "properties"
    read_model = PropertyRead
    messages = EntityMessages(
        created="Bien créé avec succès",
        updated="Bien mis à jour",
        deleted="Bien supprimé",
    )
