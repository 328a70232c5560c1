"""Pipelines -- stage definitions, board derivation, the kanban engine, analytics.

Exports:
    PipelineDefinition, DEAL_PIPELINE, CONTACT_PIPELINE: Static pipeline descriptions.
    Board, BoardColumn, build_board: Stage-grouped view of a collection.
    KanbanEngine, MoveResult, MoveOutcome: Drag-and-drop stage moves.
    DealStats, ActivityStats, deal_stats, activity_stats: Pipeline totals.
    DealHealth, deal_health: Deal health score and label.
    ContactBadge, BadgeType, contact_badges: Contact smart badges.
"""

from src.crm.pipeline.board import Board, BoardColumn, build_board
from src.crm.pipeline.definitions import (
    CONTACT_PIPELINE,
    DEAL_PIPELINE,
    PipelineDefinition,
)
from src.crm.pipeline.engine import KanbanEngine, MoveOutcome, MoveResult
from src.crm.pipeline.health import (
    BadgeType,
    ContactBadge,
    DealHealth,
    contact_badges,
    deal_health,
)
from src.crm.pipeline.stats import ActivityStats, DealStats, activity_stats, deal_stats

__all__ = [
    "ActivityStats",
    "BadgeType",
    "Board",
    "BoardColumn",
    "CONTACT_PIPELINE",
    "ContactBadge",
    "DEAL_PIPELINE",
    "DealHealth",
    "DealStats",
    "KanbanEngine",
    "MoveOutcome",
    "MoveResult",
    "PipelineDefinition",
    "activity_stats",
    "build_board",
    "contact_badges",
    "deal_health",
    "deal_stats",
]
