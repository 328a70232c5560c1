"""Board derivation -- group a flat collection into ordered stage columns.

The board is a pure function of (rows, pipeline definition). Every stage
column exists, in stage order, even when empty. Rows keep their fetched order
inside a column. A row whose stage value is not a stage of the pipeline is
placed in the first column, so each entity appears in exactly one column.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from src.crm.data.backend import Row
from src.crm.entities.schemas import PipelineStage
from src.crm.pipeline.definitions import PipelineDefinition


@dataclass
class BoardColumn:
    stage: PipelineStage
    label: str
    rows: list[Row] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.stage.value

    @property
    def count(self) -> int:
        return len(self.rows)


@dataclass
class Board:
    definition: PipelineDefinition
    columns: list[BoardColumn]

    def column(self, stage: PipelineStage | str) -> BoardColumn:
        wanted = PipelineStage(stage)
        for col in self.columns:
            if col.stage == wanted:
                return col
        raise KeyError(wanted.value)

    def column_of(self, entity_id: str) -> BoardColumn | None:
        """Column currently containing the entity, None if it is not on the board."""
        for col in self.columns:
            if any(row.get("id") == entity_id for row in col.rows):
                return col
        return None

    def stage_map(self) -> dict[str, str]:
        """entity id -> column id."""
        return {row["id"]: col.id for col in self.columns for row in col.rows}


def build_board(rows: Iterable[Row], definition: PipelineDefinition) -> Board:
    columns = [
        BoardColumn(stage=stage, label=definition.label(stage))
        for stage in definition.stages
    ]
    by_stage = {col.stage: col for col in columns}
    first = columns[0]
    for row in rows:
        stage = definition.parse_stage(row.get(definition.stage_field))
        by_stage.get(stage, first).rows.append(row)  # type: ignore[arg-type]
    return Board(definition=definition, columns=columns)
