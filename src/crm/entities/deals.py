"""Deal repository -- the deal pipeline's entities."""

from __future__ import annotations

import structlog
from pydantic import BaseModel

from src.crm.core.tenant import TenantSession
from src.crm.data.backend import Row
from src.crm.entities.base import MOVE_FAILED, EntityMessages, EntityRepository
from src.crm.entities.schemas import DealRead, PipelineStage
from src.crm.pipeline.definitions import DEAL_PIPELINE

logger = structlog.get_logger(__name__)

# Embedded relations, resolved by the hosted backend only.
DEAL_COLUMNS = "*, contacts:contact_id(full_name), properties:property_id(address, title)"


def commission_amount(amount: float | None, rate: float | None) -> float:
    return round((amount or 0) * (rate or 0) / 100, 2)


class DealRepository(EntityRepository[DealRead]):
    table = "deals"
    read_model = DealRead
    columns = DEAL_COLUMNS
    messages = EntityMessages(
        created="Affaire créée avec succès",
        updated="Affaire mise à jour",
        deleted="Affaire supprimée",
    )

    def _create_payload(self, session: TenantSession, data: BaseModel) -> Row:
        payload = data.model_dump(mode="json")
        payload["stage"] = PipelineStage.NOUVEAU.value
        payload["assigned_to"] = payload.get("assigned_to") or session.user_id
        payload["commission_amount"] = commission_amount(
            payload.get("amount"), payload.get("commission_rate")
        )
        return payload

    async def update(self, session: TenantSession, entity_id: str, data: BaseModel) -> DealRead:
        values = data.model_dump(mode="json", exclude_unset=True)
        stage = DEAL_PIPELINE.parse_stage(values.get("stage"))
        if stage is not None:
            values.update(DEAL_PIPELINE.stage_patch(stage))
        if "amount" in values or "commission_rate" in values:
            current = await self._accessor.fetch_one(session, self.table, entity_id)
            values["commission_amount"] = commission_amount(
                values.get("amount", current.get("amount")),
                values.get("commission_rate", current.get("commission_rate")),
            )
        row = await self._update_values(session, entity_id, values)
        self._notifier.success(self.messages.updated)
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)

    async def apply_stage(
        self, session: TenantSession, entity_id: str, stage: PipelineStage
    ) -> Row:
        """Write a stage change and its coercions, scoped by (id, tenant).

        No notification and no cache invalidation: the caller owns both.
        """
        return await self._accessor.update(
            session, self.table, entity_id, DEAL_PIPELINE.stage_patch(stage)
        )

    async def update_stage(
        self, session: TenantSession, entity_id: str, stage: PipelineStage
    ) -> DealRead:
        """Move a deal outside of a drag gesture (no optimistic patch)."""
        row = await self._update_values(
            session,
            entity_id,
            DEAL_PIPELINE.stage_patch(stage),
            failure_title=MOVE_FAILED,
        )
        logger.info(
            "deals.stage_updated",
            tenant_id=session.tenant_id,
            entity_id=entity_id,
            stage=stage.value,
        )
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)
