"""Email template repository.

Predefined templates ship with every organization and are read-only: the
client refuses to edit or delete them, and the backend policy would reject
the write anyway. They can be duplicated into an editable copy.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from src.crm.core.errors import CRMError, PermissionDeniedError
from src.crm.core.tenant import TenantSession
from src.crm.data.backend import Row
from src.crm.entities.base import EntityMessages, EntityRepository
from src.crm.entities.schemas import EmailTemplateRead
from src.crm.integrations.templates import extract_variables

logger = structlog.get_logger(__name__)

SAVE_FAILED = "Erreur lors de la sauvegarde"


class EmailTemplateRepository(EntityRepository[EmailTemplateRead]):
    table = "email_templates"
    read_model = EmailTemplateRead
    messages = EntityMessages(
        created="Template créé ✅",
        updated="Template mis à jour ✅",
        deleted="Template supprimé",
    )
    create_failed = SAVE_FAILED
    update_failed = SAVE_FAILED

    def _create_payload(self, session: TenantSession, data: BaseModel) -> Row:
        payload = data.model_dump(mode="json")
        payload["variables"] = extract_variables(payload["content"])
        payload["is_predefined"] = False
        payload["usage_count"] = 0
        payload["created_by"] = session.user_id
        return payload

    async def _ensure_editable(
        self, session: TenantSession, entity_id: str, failure_title: str
    ) -> EmailTemplateRead:
        template = await self.get(session, entity_id)
        if template.is_predefined:
            self._notifier.error(failure_title)
            logger.info(
                "templates.predefined_write_refused",
                tenant_id=session.tenant_id,
                entity_id=entity_id,
            )
            raise PermissionDeniedError(failure_title)
        return template

    async def update(
        self, session: TenantSession, entity_id: str, data: BaseModel
    ) -> EmailTemplateRead:
        await self._ensure_editable(
            session, entity_id, "Impossible de modifier un template prédéfini"
        )
        values = data.model_dump(mode="json", exclude_unset=True)
        if "content" in values:
            values["variables"] = extract_variables(values["content"])
        row = await self._update_values(session, entity_id, values)
        self._notifier.success(self.messages.updated)
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)

    async def delete(self, session: TenantSession, entity_id: str) -> None:
        await self._ensure_editable(
            session, entity_id, "Impossible de supprimer un template prédéfini"
        )
        await super().delete(session, entity_id)

    async def duplicate(self, session: TenantSession, entity_id: str) -> EmailTemplateRead:
        """Editable copy named "<name> (copie)" with a fresh usage count."""
        source = await self.get(session, entity_id)
        payload = {
            "name": f"{source.name} (copie)",
            "subject": source.subject,
            "content": source.content,
            "category": source.category.value,
            "variables": list(source.variables),
            "is_predefined": False,
            "usage_count": 0,
            "created_by": session.user_id,
        }
        try:
            row = await self._accessor.insert(session, self.table, payload)
        except CRMError as exc:
            self._notifier.error("Erreur lors de la duplication", exc.message)
            raise
        self._notifier.success("Template dupliqué")
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)

    async def record_usage(self, session: TenantSession, entity_id: str) -> EmailTemplateRead:
        """Increment the usage counter after the template was used to send a message."""
        template = await self.get(session, entity_id)
        row = await self._accessor.update(
            session, self.table, entity_id, {"usage_count": template.usage_count + 1}
        )
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)
