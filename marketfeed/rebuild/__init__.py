"""Segment rebuilds: pipeline, trigger, and interval scheduling."""

from marketfeed.rebuild.metrics import RebuildMetrics
from marketfeed.rebuild.models import (
    ItemFailure,
    OutcomeStatus,
    RebuildOutcome,
    RebuildResult,
    TriggerResult,
    TriggerStatus,
)
from marketfeed.rebuild.pipeline import RebuildPipeline, new_rebuild_id
from marketfeed.rebuild.scheduler import RebuildScheduler
from marketfeed.rebuild.state_machine import (
    RebuildState,
    RebuildStateError,
    RebuildStateMachine,
)
from marketfeed.rebuild.trigger import RebuildTrigger


__all__ = [
    "ItemFailure",
    "OutcomeStatus",
    "RebuildMetrics",
    "RebuildOutcome",
    "RebuildPipeline",
    "RebuildResult",
    "RebuildScheduler",
    "RebuildState",
    "RebuildStateError",
    "RebuildStateMachine",
    "RebuildTrigger",
    "TriggerResult",
    "TriggerStatus",
    "new_rebuild_id",
]
