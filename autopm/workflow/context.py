# autopm/workflow/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from autopm.models.stages import Stage
from autopm.models.state import WorkflowState
from autopm.workflow.gate import has_data


@dataclass(frozen=True)
class ContextBlock:
    stage: int
    label: str
    lines: List[str]

    def render(self) -> str:
        return "\n".join([f"--- {self.label} (Step {self.stage}) ---", *self.lines])


@dataclass
class AggregatedContext:
    """Stage-ascending blocks; rebuilt per request since a stage can be re-run at any time."""

    header: List[str] = field(default_factory=list)
    blocks: List[ContextBlock] = field(default_factory=list)

    @property
    def stages(self) -> List[int]:
        return [b.stage for b in self.blocks]

    def chunks(self) -> List[str]:
        return [b.render() for b in self.blocks]

    def render(self, include_header: bool = True) -> str:
        parts = []
        if include_header and self.header:
            parts.append("\n".join(self.header))
        parts.extend(self.chunks())
        return "\n\n".join(parts)


def build_context(state: WorkflowState) -> AggregatedContext:
    header = [
        f"Space Name: {state.name}",
        f"Description: {state.problem_statement}",
        f"Current Step: {min(state.current_stage, len(Stage))}/{len(Stage)}",
        f"Completed: {'Yes' if state.completed else 'No'}",
    ]
    blocks = []
    for stage in Stage:
        if not has_data(stage, state):
            continue
        result = state.slot(stage)
        blocks.append(ContextBlock(stage=int(stage), label=stage.label, lines=result.context_lines()))
    return AggregatedContext(header=header, blocks=blocks)
