from __future__ import annotations

from typing import Dict

from autopm.agents.base import BaseStageAgent
from autopm.agents.email_agent import EmailAgent
from autopm.agents.idea_agent import IdeaAgent
from autopm.agents.jira_agent import JiraAgent
from autopm.agents.okr_agent import OkrAgent
from autopm.agents.rice_agent import RiceAgent
from autopm.agents.story_agent import StoryAgent
from autopm.agents.wireframe_agent import WireframeAgent
from autopm.models.stages import Stage

# Agents are stateless; one instance per stage is enough
_AGENTS: Dict[Stage, BaseStageAgent] = {
    a.stage: a
    for a in (IdeaAgent(), StoryAgent(), EmailAgent(), RiceAgent(), OkrAgent(), WireframeAgent(), JiraAgent())
}


def agent_for_stage(stage: int) -> BaseStageAgent:
    return _AGENTS[Stage(stage)]
