"""Pipeline definitions -- which table, which field, which stages, which rules.

The lead pipeline (contacts.pipeline_stage) and the deal pipeline (deals.stage)
share the same ordered stage set. They differ in the field coercions bundled
with a stage change and in the automation action fired after a confirmed move.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from src.crm.entities.schemas import PipelineStage, label_for


@dataclass(frozen=True)
class PipelineDefinition:
    """Static description of one kanban pipeline.

    Attributes:
        name: Pipeline identifier.
        table: Backing table.
        stage_field: Column holding the stage.
        stages: Ordered stages; board columns follow this order.
        coercions: Extra field values written atomically with a stage change.
        webhook_actions: Automation action fired after a confirmed move into a stage.
        webhook_id_key: Payload key carrying the entity id for those actions.
    """

    name: str
    table: str
    stage_field: str
    stages: tuple[PipelineStage, ...] = tuple(PipelineStage)
    coercions: Mapping[PipelineStage, Mapping[str, Any]] = field(default_factory=dict)
    webhook_actions: Mapping[PipelineStage, str] = field(default_factory=dict)
    webhook_id_key: str = "id"

    @property
    def column_ids(self) -> list[str]:
        return [stage.value for stage in self.stages]

    def parse_stage(self, value: Any) -> PipelineStage | None:
        """Stage for a raw value, None if it is not a stage of this pipeline."""
        try:
            stage = PipelineStage(value)
        except ValueError:
            return None
        return stage if stage in self.stages else None

    def stage_patch(self, stage: PipelineStage) -> dict[str, Any]:
        """Field values of a move into ``stage``: the stage plus its coercions."""
        return {self.stage_field: stage.value, **self.coercions.get(stage, {})}

    def label(self, stage: PipelineStage) -> str:
        return label_for(stage)


DEAL_PIPELINE = PipelineDefinition(
    name="deals",
    table="deals",
    stage_field="stage",
    coercions={
        PipelineStage.VENDU: {"probability": 100},
        PipelineStage.PERDU: {"probability": 0},
    },
    webhook_actions={PipelineStage.MANDAT: "generate_mandate"},
    webhook_id_key="dealId",
)

CONTACT_PIPELINE = PipelineDefinition(
    name="contacts",
    table="contacts",
    stage_field="pipeline_stage",
    webhook_actions={PipelineStage.QUALIFICATION: "qualify_lead"},
    webhook_id_key="contactId",
)
