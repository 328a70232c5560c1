"""Contact repository -- the lead pipeline's entities."""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from src.crm.core.tenant import TenantSession
from src.crm.data.backend import Row
from src.crm.entities.base import MOVE_FAILED, EntityMessages, EntityRepository
from src.crm.entities.schemas import ContactRead, PipelineStage
from src.crm.pipeline.definitions import CONTACT_PIPELINE

logger = structlog.get_logger(__name__)


class ContactRepository(EntityRepository[ContactRead]):
    table = "contacts"
    read_model = ContactRead
    messages = EntityMessages(
        created="Contact créé avec succès",
        updated="Contact mis à jour",
        deleted="Contact supprimé",
    )

    def _create_payload(self, session: TenantSession, data: BaseModel) -> Row:
        payload = data.model_dump(mode="json")
        payload["pipeline_stage"] = PipelineStage.NOUVEAU.value
        if payload.get("role") is None:
            payload.pop("role", None)
        return payload

    async def apply_stage(
        self, session: TenantSession, entity_id: str, stage: PipelineStage
    ) -> Row:
        """Write a stage change scoped by (id, tenant), without side effects."""
        return await self._accessor.update(
            session, self.table, entity_id, CONTACT_PIPELINE.stage_patch(stage)
        )

    async def update_stage(
        self, session: TenantSession, entity_id: str, stage: PipelineStage
    ) -> ContactRead:
        row = await self._update_values(
            session,
            entity_id,
            CONTACT_PIPELINE.stage_patch(stage),
            failure_title=MOVE_FAILED,
        )
        logger.info(
            "contacts.stage_updated",
            tenant_id=session.tenant_id,
            entity_id=entity_id,
            stage=stage.value,
        )
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)
