# autopm/agents/rice_agent.py
"""
RICE stage. Without caller features the model proposes them; with caller
features those are fixed and the model only writes the analysis.
Scores are always computed here, never taken from the model.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages
from autopm.agents.spi import GenerationInput, StageContext
from autopm.models.inputs import RiceArgs
from autopm.models.stages import Feature, RiceResult, Stage
from autopm.workflow.errors import ReachabilityError


class RiceDraft(BaseModel):
    features: List[Feature]
    analysis: str = ""


class RiceAnalysis(BaseModel):
    analysis: str


def rice_score(f: Feature) -> float:
    return f.reach * f.impact * f.confidence / f.effort


def score_features(features: List[Feature]) -> List[Feature]:
    return [f.model_copy(update={"rice_score": rice_score(f)}) for f in features]


def rank_features(scored: List[Feature]) -> List[Feature]:
    return sorted(scored, key=lambda f: f.rice_score or 0.0, reverse=True)


def scored_result(features: List[Feature], analysis: str, note: Optional[str] = None) -> RiceResult:
    scored = score_features(features)
    ranked = rank_features(scored)
    summary = f"Scored {len(scored)} features."
    if ranked:
        top = ranked[0]
        summary += f" Top priority: {top.name} (RICE {top.rice_score:.2f})."
    if note:
        summary += f" {note}"
    return RiceResult(features=scored, sorted_features=ranked, analysis=analysis, summary=summary)


class RiceAgent(BaseStageAgent):
    id = "stage.rice.v1"
    stage = Stage.RICE
    schema = RiceDraft
    args_model = RiceArgs
    result_cls = RiceResult
    prompt_name = "rice"

    def assemble(self, ctx: StageContext) -> GenerationInput:
        story = ctx.state.story
        if story is None or not story.has_data():
            raise ReachabilityError(self.stage, "stage 4 requires user stories from stage 2")
        args: RiceArgs = ctx.args
        idea = ctx.state.idea
        fixed = bool(args.features)
        payload = {
            "solution": (idea.selected_solution if idea else None) or ctx.state.problem_statement,
            "stories": story.story_markdown,
            "features_fixed": fixed,
            "features": [f.model_dump(exclude={"rice_score"}) for f in args.features] if fixed else None,
        }
        return GenerationInput(
            messages=build_messages(self.system_prompt(), payload),
            schema=RiceAnalysis if fixed else RiceDraft,
        )

    def finalize(self, ctx: StageContext, draft, gen: GenerationInput, dispatched) -> RiceResult:
        args: RiceArgs = ctx.args
        if args.features:
            return scored_result(args.features, draft.analysis)
        return scored_result(draft.features, draft.analysis)

    def fallback(self, ctx: StageContext, gen: GenerationInput) -> RiceResult:
        args: RiceArgs = ctx.args
        if not args.features:
            return super().fallback(ctx, gen)
        # Caller features still get scored; only the written analysis is missing
        return scored_result(args.features, "", note="Analysis unavailable; run the stage again for one.")
