import asyncio

import pytest

from autopm.models.stages import COMPLETED_STAGE, IdeaResult, Stage
from autopm.workflow.errors import ReachabilityError
from autopm.workflow.gate import (
    apply_stage_pointer,
    has_data,
    is_reachable,
    reachable_stages,
    recompute_current_stage,
    require_reachable,
)
from tests import factories as f

STATES = [
    f.new_state(),
    f.new_state(idea=f.idea()),
    f.new_state(idea=f.idea(), story=f.story()),
    f.new_state(idea=f.idea(), story=f.story(), current_stage=5),
    f.new_state(idea=f.idea(), rice=f.rice()),
    f.new_state(story=f.story(), okr=f.okr(), current_stage=7),
    f.full_state(),
    f.full_state(email=f.email().model_copy(update={"outcomes": []})),
]


@pytest.mark.parametrize("state", STATES)
def test_recompute_is_idempotent(state):
    once = recompute_current_stage(state)
    assert recompute_current_stage(state) == once
    assert recompute_current_stage(apply_stage_pointer(state)) == once


@pytest.mark.parametrize("state", STATES)
def test_stage_with_data_is_always_reachable(state):
    for stage in Stage:
        if has_data(stage, state):
            assert is_reachable(stage, state)


def test_first_stage_always_reachable_others_follow_data():
    empty = f.new_state()
    assert reachable_stages(empty) == [1]

    after_idea = f.new_state(idea=f.idea())
    assert reachable_stages(after_idea) == [1, 2]


def test_empty_primary_list_is_not_data():
    state = f.new_state(idea=IdeaResult(title="t", summary="s", solutions=[]))
    assert not has_data(Stage.IDEA, state)
    assert recompute_current_stage(state) == 1
    assert not is_reachable(Stage.STORY, state)


def test_pointer_is_first_stage_without_data():
    state = f.new_state(idea=f.idea(), story=f.story(), rice=f.rice())
    assert recompute_current_stage(state) == 3


def test_all_stages_complete():
    state = apply_stage_pointer(f.full_state())
    assert state.current_stage == COMPLETED_STAGE
    assert state.completed is True


def test_current_stage_is_reachable_even_without_previous_data():
    # Stage 5 is the cached pointer here, so it stays viewable
    state = f.new_state(idea=f.idea(), story=f.story(), current_stage=5)
    assert is_reachable(5, state)
    assert not is_reachable(6, state)


def test_require_reachable_message_names_missing_stage():
    state = f.new_state(idea=f.idea())
    with pytest.raises(ReachabilityError) as ei:
        require_reachable(Stage.EMAIL, state)
    assert ei.value.stage == Stage.EMAIL
    assert "complete stage 2 first" in str(ei.value)


def test_repair_corrupted_pointer_returns_first_missing_stage(service, store):
    store.put(f.new_state(id="wf-corrupt", idea=f.idea(), story=f.story(), current_stage=5))

    assert asyncio.run(service.repair_stage_pointer("wf-corrupt")) == 3

    persisted = asyncio.run(store.load("wf-corrupt"))
    assert persisted.current_stage == 3
    assert persisted.completed is False


def test_repair_is_a_noop_when_pointer_is_correct(service, store, telemetry):
    store.put(apply_stage_pointer(f.new_state(id="wf-ok", idea=f.idea())))

    assert asyncio.run(service.repair_stage_pointer("wf-ok")) == 2
    assert store.saves == 0
    assert "pointer.repaired" in telemetry.names()
