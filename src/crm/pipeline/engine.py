"""Kanban stage engine -- drag-and-drop stage moves with optimistic updates.

The engine is headless: a gesture is reduced to ``drag_start(entity_id)``
followed by ``drag_end(over_id)`` where ``over_id`` is a column id, another
card's id, or None. Only ``drag_end`` talks to the backend.

A stage move runs three named phases, always in this order:

1. snapshot: cancel any in-flight reconciliation fetch of the collection,
   then deep-copy the cached rows
2. apply: write the optimistic collection (stage plus its coercions) to the
   cache before any network call
3. reconcile or rollback: on backend success, refetch the authoritative
   collection; on failure, restore the snapshot and notify

Backend failures during phase 3 never escape ``drag_end``; they come back as
a ``rolled_back`` MoveResult. A missing tenant fails fast before phase 1.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import structlog

from src.crm.core.errors import CRMError, TenantMissingError, TransportError
from src.crm.core.notifications import Notifier
from src.crm.core.tenant import TenantSession
from src.crm.data.backend import OrderBy, Row
from src.crm.data.cache import QueryCache, QueryKey
from src.crm.entities.base import MOVE_FAILED
from src.crm.entities.schemas import PipelineStage
from src.crm.integrations.webhooks import WebhookClient
from src.crm.pipeline.board import Board, build_board
from src.crm.pipeline.definitions import PipelineDefinition

logger = structlog.get_logger(__name__)


class StageRepository(Protocol):
    """What the engine needs from a contact or deal repository."""

    async def fetch_rows(
        self,
        session: TenantSession,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[Row]: ...

    async def apply_stage(
        self, session: TenantSession, entity_id: str, stage: PipelineStage
    ) -> Row: ...


class MoveOutcome(str, Enum):
    MOVED = "moved"
    ROLLED_BACK = "rolled_back"
    IGNORED = "ignored"


@dataclass(frozen=True)
class MoveResult:
    outcome: MoveOutcome
    entity_id: str | None = None
    from_stage: str | None = None
    to_stage: str | None = None
    error: CRMError | None = None

    @property
    def moved(self) -> bool:
        return self.outcome == MoveOutcome.MOVED


class KanbanEngine:
    """Stage board for one pipeline, one tenant session and one filter set.

    Args:
        definition: Pipeline being displayed (DEAL_PIPELINE or CONTACT_PIPELINE).
        repository: Repository of the pipeline's table.
        cache: Shared query cache; the board's collection lives there.
        notifier: Sink for move failures.
        session: Authenticated caller.
        filters: Optional equality filters of the displayed collection.
        webhooks: Optional automation client fired after confirmed moves.
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        repository: StageRepository,
        cache: QueryCache,
        notifier: Notifier,
        session: TenantSession,
        *,
        filters: Mapping[str, Any] | None = None,
        webhooks: WebhookClient | None = None,
    ) -> None:
        self._definition = definition
        self._repository = repository
        self._cache = cache
        self._notifier = notifier
        self._session = session
        self._filters = dict(filters or {})
        self._webhooks = webhooks
        self._key = QueryKey.build(definition.table, session.tenant_id, self._filters)
        self._active_drag: Row | None = None

    @property
    def key(self) -> QueryKey:
        return self._key

    @property
    def active_drag(self) -> Row | None:
        return self._active_drag

    @property
    def rows(self) -> list[Row]:
        return self._cache.get(self._key) or []

    def board(self) -> Board:
        return build_board(self.rows, self._definition)

    async def load(self) -> Board:
        """Fetch (or join the in-flight fetch of) the collection and derive the board."""
        self._session.require_tenant()
        await self._cache.fetch(
            self._key, lambda: self._repository.fetch_rows(self._session, self._filters)
        )
        return self.board()

    # ── Gestures ────────────────────────────────────────────────────────────

    def drag_start(self, entity_id: str) -> Row | None:
        """Track the dragged entity if it is on the board. No backend call."""
        self._active_drag = next(
            (row for row in self.rows if row.get("id") == entity_id), None
        )
        return self._active_drag

    def drag_cancel(self) -> None:
        self._active_drag = None

    def resolve_target(self, over_id: str | None) -> PipelineStage | None:
        """Stage under the pointer: a column id, or the column holding the card under it."""
        if over_id is None:
            return None
        if over_id in self._definition.column_ids:
            return PipelineStage(over_id)
        column = self.board().column_of(over_id)
        return column.stage if column is not None else None

    async def drag_end(self, over_id: str | None) -> MoveResult:
        dragged, self._active_drag = self._active_drag, None
        if dragged is None:
            return MoveResult(MoveOutcome.IGNORED)

        entity_id = dragged["id"]
        current = dragged.get(self._definition.stage_field)
        target = self.resolve_target(over_id)
        if target is None or target.value == current:
            logger.debug(
                "pipeline.drop_ignored",
                pipeline=self._definition.name,
                entity_id=entity_id,
                over_id=over_id,
            )
            return MoveResult(
                MoveOutcome.IGNORED,
                entity_id=entity_id,
                from_stage=current,
                to_stage=target.value if target else None,
            )
        return await self.move(entity_id, target)

    # ── Stage move ──────────────────────────────────────────────────────────

    async def move(self, entity_id: str, target: PipelineStage) -> MoveResult:
        """Optimistically move an entity to ``target`` and confirm with the backend.

        Raises:
            TenantMissingError: No tenant on the session; nothing was changed.
        """
        try:
            tenant_id = self._session.require_tenant()
        except TenantMissingError as exc:
            self._notifier.error(MOVE_FAILED, exc.message)
            raise

        row = next((r for r in self.rows if r.get("id") == entity_id), None)
        from_stage = row.get(self._definition.stage_field) if row else None
        patch = self._definition.stage_patch(target)

        # Phase 1: snapshot
        self._cache.cancel(self._key)
        snapshot = self._cache.snapshot(self._key)
        previous = {field: row.get(field) for field in patch} if row else {}

        # Phase 2: apply
        generation = self._cache.set_data(self._key, self._patched(entity_id, patch))
        logger.info(
            "pipeline.move_applied",
            pipeline=self._definition.name,
            tenant_id=tenant_id,
            entity_id=entity_id,
            from_stage=from_stage,
            to_stage=target.value,
        )

        # Phase 3: reconcile or rollback
        try:
            await self._repository.apply_stage(self._session, entity_id, target)
        except Exception as exc:
            # Any failure, not only CRMError, leaves the move unconfirmed
            error = exc if isinstance(exc, CRMError) else TransportError(str(exc) or None)
            self._rollback(entity_id, snapshot, generation, patch, previous)
            self._notifier.error(MOVE_FAILED, error.message)
            logger.warning(
                "pipeline.move_rolled_back",
                pipeline=self._definition.name,
                tenant_id=tenant_id,
                entity_id=entity_id,
                to_stage=target.value,
                error_type=type(exc).__name__,
                error=error.message,
            )
            return MoveResult(
                MoveOutcome.ROLLED_BACK,
                entity_id=entity_id,
                from_stage=from_stage,
                to_stage=target.value,
                error=error,
            )

        await self._cache.invalidate(self._definition.table, tenant_id)
        await self._fire_webhook(entity_id, target)
        logger.info(
            "pipeline.move_confirmed",
            pipeline=self._definition.name,
            tenant_id=tenant_id,
            entity_id=entity_id,
            stage=target.value,
        )
        return MoveResult(
            MoveOutcome.MOVED,
            entity_id=entity_id,
            from_stage=from_stage,
            to_stage=target.value,
        )

    def _patched(self, entity_id: str, patch: Mapping[str, Any]) -> list[Row]:
        return [
            {**row, **patch} if row.get("id") == entity_id else row for row in self.rows
        ]

    def _rollback(
        self,
        entity_id: str,
        snapshot: list[Row] | None,
        generation: int,
        patch: Mapping[str, Any],
        previous: Mapping[str, Any],
    ) -> None:
        if self._cache.generation(self._key) == generation:
            self._cache.set_data(self._key, snapshot)
            return
        # A newer write landed since the optimistic patch; undo only this
        # entity's fields, and only where they still hold the patched values.
        rows = []
        for row in self.rows:
            if row.get("id") == entity_id and all(row.get(k) == v for k, v in patch.items()):
                row = {**row, **previous}
            rows.append(row)
        self._cache.set_data(self._key, rows)

    async def _fire_webhook(self, entity_id: str, stage: PipelineStage) -> None:
        action = self._definition.webhook_actions.get(stage)
        if action is None or self._webhooks is None:
            return
        result = await self._webhooks.trigger(
            action, {self._definition.webhook_id_key: entity_id}
        )
        if not result.success:
            logger.warning(
                "pipeline.webhook_failed",
                pipeline=self._definition.name,
                entity_id=entity_id,
                action=action,
                error=result.error,
            )
