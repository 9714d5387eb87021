# autopm/agents/pipeline.py
"""
One stage invocation as a small LangGraph:

    prepare -> assemble -> generate -+-> dispatch -> finalize -> END
                                     |
                                     +-> repair -+-> dispatch
                                                 +-> fallback -> END

`prepare` does any lookups the agent needs up front so `assemble` stays
free of I/O. `generate` is a single structured call. A reply that fails
validation (or a generation timeout) gets exactly one repair call; if that
fails too the agent's fallback result is returned and `dispatch` never runs.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional

from langgraph.graph import END, StateGraph

from autopm.agents.spi import GenerationInput, PipelineState, StageAgent, StageContext
from autopm.llms.base import ChatMessage
from autopm.models.stages import StageResultBase
from autopm.workflow.errors import ExternalTimeoutError, GenerationSchemaError

log = logging.getLogger(__name__)


def repair_messages(messages: List[ChatMessage], raw_response: Optional[str], error: str) -> List[ChatMessage]:
    return [
        *messages,
        {"role": "assistant", "content": raw_response or ""},
        {
            "role": "user",
            "content": (
                f"Your previous reply was rejected: {error}\n"
                "Reply again with one JSON object that matches the schema exactly."
            ),
        },
    ]


class AgentPipeline:
    def __init__(self, agent: StageAgent, *, generation_timeout: Optional[float] = None):
        self.agent = agent
        self.generation_timeout = generation_timeout

    # ---- model call -------------------------------------------------
    async def _generate(self, ctx: StageContext, gen: GenerationInput, messages: List[ChatMessage]) -> Any:
        call = ctx.model.generate(messages, gen.schema or self.agent.schema)
        if self.generation_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, self.generation_timeout)
        except asyncio.TimeoutError as e:
            raise ExternalTimeoutError(f"{self.agent.id} generation", self.generation_timeout) from e

    async def _attempt(
        self, ctx: StageContext, gen: GenerationInput, messages: List[ChatMessage], attempts: int
    ) -> PipelineState:
        try:
            draft = await self._generate(ctx, gen, messages)
        except (GenerationSchemaError, ExternalTimeoutError) as e:
            raw = getattr(e, "raw_response", None)
            ctx.telemetry.event(
                "generation.failed", agent=self.agent.id, stage=int(self.agent.stage), attempt=attempts + 1, error=str(e)
            )
            return {"draft": None, "error": str(e), "raw_response": raw, "attempts": attempts + 1}
        return {"draft": draft, "error": None, "raw_response": None, "attempts": attempts + 1}

    # ---- graph --------------------------------------------------------
    def build_graph(self, ctx: StageContext):
        agent = self.agent

        async def prepare_node(state: PipelineState) -> PipelineState:
            await agent.prepare(ctx)
            return {}

        async def assemble_node(state: PipelineState) -> PipelineState:
            gen = agent.assemble(ctx)
            ctx.telemetry.event("stage.assembled", agent=agent.id, stage=int(agent.stage), messages=len(gen.messages))
            return {"gen": gen, "attempts": 0}

        async def generate_node(state: PipelineState) -> PipelineState:
            return await self._attempt(ctx, state["gen"], state["gen"].messages, state.get("attempts", 0))

        async def repair_node(state: PipelineState) -> PipelineState:
            ctx.telemetry.event("generation.repair", agent=agent.id, stage=int(agent.stage))
            msgs = repair_messages(state["gen"].messages, state.get("raw_response"), state.get("error") or "")
            return await self._attempt(ctx, state["gen"], msgs, state.get("attempts", 0))

        async def dispatch_node(state: PipelineState) -> PipelineState:
            t0 = time.perf_counter()
            dispatched = await agent.dispatch(ctx, state["draft"], state["gen"])
            ctx.telemetry.event(
                "stage.dispatched", agent=agent.id, stage=int(agent.stage), duration_s=round(time.perf_counter() - t0, 3)
            )
            return {"dispatched": dispatched}

        async def finalize_node(state: PipelineState) -> PipelineState:
            result = agent.finalize(ctx, state["draft"], state["gen"], state.get("dispatched"))
            ctx.telemetry.event("stage.finalized", agent=agent.id, stage=int(agent.stage), has_data=result.has_data())
            return {"result": result, "fallback": False}

        async def fallback_node(state: PipelineState) -> PipelineState:
            result = agent.fallback(ctx, state["gen"])
            if result is None:
                raise GenerationSchemaError(
                    f"{agent.id}: no valid output after repair: {state.get('error')}",
                    raw_response=state.get("raw_response"),
                )
            ctx.telemetry.event("stage.fallback", agent=agent.id, stage=int(agent.stage), error=state.get("error"))
            return {"result": result, "fallback": True}

        def after_generate(state: PipelineState) -> str:
            return "dispatch" if state.get("error") is None else "repair"

        def after_repair(state: PipelineState) -> str:
            return "dispatch" if state.get("error") is None else "fallback"

        sg = StateGraph(PipelineState)
        sg.add_node("prepare", prepare_node)
        sg.add_node("assemble", assemble_node)
        sg.add_node("generate", generate_node)
        sg.add_node("repair", repair_node)
        sg.add_node("dispatch", dispatch_node)
        sg.add_node("finalize", finalize_node)
        sg.add_node("fallback", fallback_node)

        sg.set_entry_point("prepare")
        sg.add_edge("prepare", "assemble")
        sg.add_edge("assemble", "generate")
        sg.add_conditional_edges("generate", after_generate, {"dispatch": "dispatch", "repair": "repair"})
        sg.add_conditional_edges("repair", after_repair, {"dispatch": "dispatch", "fallback": "fallback"})
        sg.add_edge("dispatch", "finalize")
        sg.add_edge("finalize", END)
        sg.add_edge("fallback", END)
        return sg.compile()

    async def run(self, ctx: StageContext) -> StageResultBase:
        graph = self.build_graph(ctx)
        out = await graph.ainvoke({"attempts": 0})
        log.info(
            "pipeline.done",
            extra={"agent": self.agent.id, "fallback": out.get("fallback"), "attempts": out.get("attempts")},
        )
        return out["result"]
