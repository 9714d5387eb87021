# autopm/workflow/gate.py
"""
Stage gating for the seven-stage workflow.

Every function here only reads a WorkflowState; nothing is persisted.
`current_stage` on the state is a cache: `recompute_current_stage` derives the
authoritative value from slot contents alone and is safe to call at any time.
"""
from __future__ import annotations

from typing import List

from autopm.models.stages import COMPLETED_STAGE, Stage
from autopm.models.state import WorkflowState
from autopm.workflow.errors import ReachabilityError


def has_data(stage: int, state: WorkflowState) -> bool:
    """A slot counts only when its primary list is non-empty ("ran but produced nothing" does not)."""
    result = state.slot(stage)
    return result is not None and result.has_data()


def is_reachable(stage: int, state: WorkflowState) -> bool:
    stage = Stage(stage)
    if stage == Stage.IDEA:
        return True
    return (
        has_data(stage, state)
        or stage == state.current_stage
        or has_data(stage - 1, state)
    )


def recompute_current_stage(state: WorkflowState) -> int:
    for stage in Stage:
        if not has_data(stage, state):
            return int(stage)
    return COMPLETED_STAGE


def apply_stage_pointer(state: WorkflowState) -> WorkflowState:
    pointer = recompute_current_stage(state)
    return state.model_copy(update={"current_stage": pointer, "completed": pointer == COMPLETED_STAGE})


def reachable_stages(state: WorkflowState) -> List[int]:
    return [int(s) for s in Stage if is_reachable(s, state)]


def require_reachable(stage: int, state: WorkflowState) -> None:
    if is_reachable(stage, state):
        return
    first_missing = recompute_current_stage(state)
    raise ReachabilityError(
        stage,
        f"stage {int(stage)} ({Stage(stage).label.title()}) is not reachable yet: "
        f"complete stage {first_missing} first",
    )
