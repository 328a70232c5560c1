"""Activity repository -- calls, visits, appointments and other tasks.

Activities are listed by scheduled date, most recent first. Completing an
activity sets ``status = termine`` and stamps ``completed_at``.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel

from src.crm.core.tenant import TenantSession
from src.crm.data.backend import OrderBy, Row
from src.crm.entities.base import EntityMessages, EntityRepository
from src.crm.entities.schemas import ActivityRead, ActivityStatus


class ActivityRepository(EntityRepository[ActivityRead]):
    table = "activities"
    read_model = ActivityRead
    default_order = OrderBy("date", ascending=False)
    messages = EntityMessages(
        created="✅ Activité créée avec succès",
        updated="Activité mise à jour",
        deleted="Activité supprimée",
    )

    def _create_payload(self, session: TenantSession, data: BaseModel) -> Row:
        payload = data.model_dump(mode="json")
        payload["assigned_to"] = payload.get("assigned_to") or session.user_id
        if payload.get("date") is None:
            payload["date"] = datetime.now(timezone.utc).isoformat()
        return payload

    def _created_message(self, data: BaseModel) -> str:
        if getattr(data, "ai_generated", False):
            return "✅ Activité IA créée avec succès ✨"
        return self.messages.created

    async def complete(self, session: TenantSession, entity_id: str) -> ActivityRead:
        """Mark an activity done."""
        row = await self._update_values(
            session,
            entity_id,
            {
                "status": ActivityStatus.TERMINE.value,
                "completed_at": datetime.now(timezone.utc).isoformat(),
            },
            failure_title="Erreur",
        )
        self._notifier.success("✅ Activité terminée")
        await self._cache.invalidate(self.table, session.tenant_id)
        return self._read(row)
