# autopm/agents/idea_agent.py
from __future__ import annotations

from typing import List

import httpx
from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages
from autopm.agents.spi import GenerationInput, StageContext
from autopm.models.inputs import IdeaArgs
from autopm.models.stages import IdeaResult, Stage


class IdeaDraft(BaseModel):
    title: str
    summary: str
    solutions: List[str]


class IdeaAgent(BaseStageAgent):
    id = "stage.idea.v1"
    stage = Stage.IDEA
    schema = IdeaDraft
    args_model = IdeaArgs
    result_cls = IdeaResult
    prompt_name = "idea"

    def query(self, ctx: StageContext) -> str:
        args: IdeaArgs = ctx.args
        return args.query or ctx.state.problem_statement

    async def prepare(self, ctx: StageContext) -> None:
        if ctx.researcher is None:
            return
        try:
            ctx.research = await ctx.researcher.search(self.query(ctx))
        except (httpx.HTTPError, ValueError) as e:
            # Research only enriches the prompt; the stage proceeds without it
            ctx.telemetry.event("research.failed", agent=self.id, stage=int(self.stage), error=str(e))
            ctx.research = []
            return
        ctx.telemetry.event("research.done", agent=self.id, stage=int(self.stage), hits=len(ctx.research))

    def assemble(self, ctx: StageContext) -> GenerationInput:
        payload = {
            "workflow": ctx.state.name,
            "problem_statement": self.query(ctx),
            "research": [hit.text for hit in ctx.research],
        }
        return GenerationInput(messages=build_messages(self.system_prompt(), payload))

    def finalize(self, ctx: StageContext, draft: IdeaDraft, gen: GenerationInput, dispatched) -> IdeaResult:
        # A fresh run invalidates whatever solution was picked before
        return IdeaResult(
            title=draft.title,
            summary=draft.summary,
            solutions=[s.strip() for s in draft.solutions if s.strip()],
            sources=[hit.reference() for hit in ctx.research],
            selected_solution=None,
        )
