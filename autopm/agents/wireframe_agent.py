# autopm/agents/wireframe_agent.py
from __future__ import annotations

from typing import List

from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages, require_selected_solution
from autopm.agents.spi import GenerationInput, StageContext
from autopm.models.inputs import WireframeArgs
from autopm.models.stages import Stage, WireframePage, WireframeResult


class WireframeDraft(BaseModel):
    pages: List[WireframePage]


class WireframeAgent(BaseStageAgent):
    id = "stage.wireframe.v1"
    stage = Stage.WIREFRAME
    schema = WireframeDraft
    args_model = WireframeArgs
    result_cls = WireframeResult
    prompt_name = "wireframe"

    def assemble(self, ctx: StageContext) -> GenerationInput:
        solution = require_selected_solution(ctx, self.stage)
        args: WireframeArgs = ctx.args
        story = ctx.state.story
        payload = {
            "solution": solution,
            "stories": story.story_markdown if story else "",
            "max_pages": args.max_pages,
        }
        return GenerationInput(messages=build_messages(self.system_prompt(), payload))

    def finalize(self, ctx: StageContext, draft: WireframeDraft, gen: GenerationInput, dispatched) -> WireframeResult:
        args: WireframeArgs = ctx.args
        pages = draft.pages[: args.max_pages]
        return WireframeResult(pages=pages, summary=f"Generated {len(pages)} wireframe pages.")
