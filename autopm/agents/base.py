# autopm/agents/base.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel

from autopm.agents.spi import GenerationInput, StageContext
from autopm.llms.base import ChatMessage
from autopm.models.stages import Stage, StageResultBase
from autopm.workflow.errors import ReachabilityError

PROMPTS = Path(__file__).resolve().parents[1] / "prompts"


def load_prompt(name: str) -> str:
    return (PROMPTS / f"{name}.txt").read_text(encoding="utf-8")


def build_messages(system_prompt: str, payload: Dict[str, Any]) -> List[ChatMessage]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": json.dumps(payload, separators=(",", ":"), default=str)},
    ]


def require_selected_solution(ctx: StageContext, stage: Stage) -> str:
    idea = ctx.state.idea
    if idea is None or not idea.selected_solution:
        raise ReachabilityError(
            stage, f"stage {int(stage)} requires stage 1 to have a selected solution"
        )
    return idea.selected_solution


class BaseStageAgent:
    """
    Shared defaults for stage agents: no side effects, and a fallback result
    whose primary list is empty so the stage stays re-runnable.
    """
    id: str = "stage.base"
    stage: Stage
    schema: Type[BaseModel]
    args_model: Type[BaseModel]
    result_cls: Type[StageResultBase]
    prompt_name: str = ""

    def system_prompt(self) -> str:
        return load_prompt(self.prompt_name)

    async def prepare(self, ctx: StageContext) -> None:
        """External lookups the stage needs before assembling; none by default."""
        return None

    def assemble(self, ctx: StageContext) -> GenerationInput:
        raise NotImplementedError

    async def dispatch(self, ctx: StageContext, draft: Any, gen: GenerationInput) -> Any:
        return None

    def finalize(self, ctx: StageContext, draft: Any, gen: GenerationInput, dispatched: Any) -> StageResultBase:
        raise NotImplementedError

    def fallback(self, ctx: StageContext, gen: GenerationInput) -> Optional[StageResultBase]:
        return self.result_cls(
            summary=f"{self.stage.label.title()} could not produce a valid result; run the stage again."
        )
