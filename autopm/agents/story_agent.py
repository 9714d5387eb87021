# autopm/agents/story_agent.py
from __future__ import annotations

from typing import List

from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages
from autopm.agents.spi import GenerationInput, StageContext
from autopm.models.inputs import StoryArgs
from autopm.models.stages import Stage, StoryResult, UserStory
from autopm.workflow.errors import ReachabilityError


class StoryDraft(BaseModel):
    summary: str
    stories: List[UserStory]


def render_markdown(stories: List[UserStory]) -> str:
    parts = ["# User Stories"]
    for i, st in enumerate(stories, 1):
        block = [f"## Story {i}", f"**As a** {st.persona}, **I want to** {st.action} **so that** {st.benefit}."]
        if st.acceptance_criteria:
            block.append("**Acceptance Criteria:**")
            block.extend(f"- {c}" for c in st.acceptance_criteria)
        parts.append("\n".join(block))
    return "\n\n".join(parts)


class StoryAgent(BaseStageAgent):
    id = "stage.story.v1"
    stage = Stage.STORY
    schema = StoryDraft
    args_model = StoryArgs
    result_cls = StoryResult
    prompt_name = "story"

    def assemble(self, ctx: StageContext) -> GenerationInput:
        idea = ctx.state.idea
        if idea is None or not idea.has_data():
            raise ReachabilityError(self.stage, "stage 2 requires stage 1 to have generated solutions")
        args: StoryArgs = ctx.args
        payload = {
            "problem_statement": ctx.state.problem_statement,
            "idea": {"title": idea.title, "summary": idea.summary},
            "solution": idea.selected_solution or idea.solutions[0],
            "notes": args.notes,
        }
        return GenerationInput(messages=build_messages(self.system_prompt(), payload))

    def finalize(self, ctx: StageContext, draft: StoryDraft, gen: GenerationInput, dispatched) -> StoryResult:
        return StoryResult(
            summary=draft.summary,
            stories=draft.stories,
            story_markdown=render_markdown(draft.stories),
        )
