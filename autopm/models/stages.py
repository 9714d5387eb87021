from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stage(IntEnum):
    IDEA = 1
    STORY = 2
    EMAIL = 3
    RICE = 4
    OKR = 5
    WIREFRAME = 6
    JIRA = 7

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    Stage.IDEA: "IDEA AGENT",
    Stage.STORY: "USER STORIES AGENT",
    Stage.EMAIL: "EMAIL AGENT",
    Stage.RICE: "RICE SCORING AGENT",
    Stage.OKR: "OKR AGENT",
    Stage.WIREFRAME: "WIREFRAME AGENT",
    Stage.JIRA: "JIRA AGENT",
}

# Pointer value once every stage holds data.
COMPLETED_STAGE = len(Stage) + 1


# ─────────────────────────────────────────────────────────────
# Fan-out records
# ─────────────────────────────────────────────────────────────
class ItemOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    succeeded: bool
    error_detail: Optional[str] = None


class EmailOutcome(ItemOutcome):
    name: str = ""
    role: str = ""


class TicketOutcome(ItemOutcome):
    ticket_key: Optional[str] = None


class CollectionSummary(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0


# ─────────────────────────────────────────────────────────────
# Stage payload parts
# ─────────────────────────────────────────────────────────────
class UserStory(BaseModel):
    persona: str
    action: str
    benefit: str
    acceptance_criteria: List[str] = []


class Feature(BaseModel):
    name: str
    reach: float = Field(ge=0)
    impact: float = Field(ge=0)
    confidence: float = Field(ge=0)
    effort: float = Field(gt=0)
    rice_score: Optional[float] = None


class Objective(BaseModel):
    objective: str
    key_results: List[str] = []


class WireframePage(BaseModel):
    name: str
    description: str
    html: str


class JiraTicket(BaseModel):
    id: str
    key: str
    summary: str
    description: str
    assignee: Optional[str] = None
    status: str = "To Do"


# ─────────────────────────────────────────────────────────────
# Stage results (discriminated on `stage`)
# ─────────────────────────────────────────────────────────────
class StageResultBase(BaseModel):
    stage: int
    generated_at: datetime = Field(default_factory=_utcnow)

    def has_data(self) -> bool:
        raise NotImplementedError

    def context_lines(self) -> List[str]:
        raise NotImplementedError


class IdeaResult(StageResultBase):
    stage: Literal[1] = 1
    title: str = ""
    summary: str = ""
    solutions: List[str] = []
    sources: List[str] = []
    selected_solution: Optional[str] = None

    def has_data(self) -> bool:
        return len(self.solutions) > 0

    def context_lines(self) -> List[str]:
        lines = []
        if self.title:
            lines.append(f"Title: {self.title}")
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.selected_solution:
            lines.append(f"Selected Solution: {self.selected_solution}")
        if self.solutions:
            lines.append(f"All Solutions ({len(self.solutions)}):")
            lines.extend(f"  {i}. {s}" for i, s in enumerate(self.solutions, 1))
        return lines


class StoryResult(StageResultBase):
    stage: Literal[2] = 2
    summary: str = ""
    stories: List[UserStory] = []
    story_markdown: str = ""

    def has_data(self) -> bool:
        return len(self.stories) > 0

    def context_lines(self) -> List[str]:
        lines = []
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.stories:
            lines.append(f"User Stories ({len(self.stories)}):")
            for i, st in enumerate(self.stories, 1):
                lines.append(f"  {i}. As a {st.persona}, I want to {st.action} so that {st.benefit}")
                if st.acceptance_criteria:
                    lines.append(f"     Acceptance: {'; '.join(st.acceptance_criteria)}")
        return lines


class EmailResult(StageResultBase):
    stage: Literal[3] = 3
    total_members: int = 0
    relevant_members: int = 0
    emails_sent: int = 0
    outcomes: List[EmailOutcome] = []
    collection: CollectionSummary = Field(default_factory=CollectionSummary)
    delivery_skipped: bool = False
    reasoning: str = ""
    summary: str = ""

    def has_data(self) -> bool:
        return len(self.outcomes) > 0

    def team_members(self) -> List[EmailOutcome]:
        """Recipients usable downstream: delivered ones, or everyone when delivery was skipped."""
        if self.delivery_skipped:
            return list(self.outcomes)
        return [o for o in self.outcomes if o.succeeded]

    def context_lines(self) -> List[str]:
        lines = []
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        members = self.team_members()
        if members:
            lines.append(f"Team Members ({len(members)}):")
            lines.extend(f"  {i}. {m.name} ({m.identifier}) - {m.role}" for i, m in enumerate(members, 1))
        return lines


class RiceResult(StageResultBase):
    stage: Literal[4] = 4
    features: List[Feature] = []
    sorted_features: List[Feature] = []
    analysis: str = ""
    summary: str = ""

    def has_data(self) -> bool:
        return len(self.features) > 0

    def context_lines(self) -> List[str]:
        lines = []
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.sorted_features:
            lines.append("RICE Scores:")
            for i, f in enumerate(self.sorted_features, 1):
                lines.append(f"  {i}. {f.name}: RICE Score = {f.rice_score or 0:.2f}")
                lines.append(
                    f"     Reach: {f.reach:g}, Impact: {f.impact:g}, "
                    f"Confidence: {f.confidence:g}, Effort: {f.effort:g}"
                )
        return lines


class OkrResult(StageResultBase):
    stage: Literal[5] = 5
    summary: str = ""
    objectives: List[Objective] = []
    analysis: Optional[str] = None
    question: Optional[str] = None
    file_name: Optional[str] = None
    context_mode: Literal["full", "top_k", "none"] = "none"

    def has_data(self) -> bool:
        return len(self.objectives) > 0

    def context_lines(self) -> List[str]:
        lines = []
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.objectives:
            lines.append(f"Objectives ({len(self.objectives)}):")
            for i, obj in enumerate(self.objectives, 1):
                lines.append(f"  {i}. {obj.objective}")
                if obj.key_results:
                    lines.append("     Key Results:")
                    lines.extend(f"       - {kr}" for kr in obj.key_results)
        return lines


class WireframeResult(StageResultBase):
    stage: Literal[6] = 6
    pages: List[WireframePage] = []
    summary: str = ""

    def has_data(self) -> bool:
        return len(self.pages) > 0

    def context_lines(self) -> List[str]:
        lines = []
        if self.pages:
            lines.append(f"Wireframe Pages ({len(self.pages)}):")
            lines.extend(f"  {i}. {p.name}: {p.description}" for i, p in enumerate(self.pages, 1))
        return lines


class JiraResult(StageResultBase):
    stage: Literal[7] = 7
    mode: Literal["use_existing_project", "create_project"] = "use_existing_project"
    project_key: str = ""
    project_name: str = ""
    project_url: str = ""
    invited_members: int = 0
    tickets: List[JiraTicket] = []
    outcomes: List[TicketOutcome] = []
    lookups: CollectionSummary = Field(default_factory=CollectionSummary)
    collection: CollectionSummary = Field(default_factory=CollectionSummary)
    reasoning: str = ""
    summary: str = ""

    def has_data(self) -> bool:
        return len(self.tickets) > 0

    def context_lines(self) -> List[str]:
        lines = []
        if self.project_name:
            lines.append(f"Jira Project: {self.project_name} ({self.project_key})")
        if self.summary:
            lines.append(f"Summary: {self.summary}")
        if self.tickets:
            lines.append(f"Jira Tickets ({len(self.tickets)}):")
            for i, t in enumerate(self.tickets, 1):
                lines.append(f"  {i}. {t.key}: {t.summary}")
                lines.append(f"     {t.description}")
        return lines


StageResult = Annotated[
    Union[IdeaResult, StoryResult, EmailResult, RiceResult, OkrResult, WireframeResult, JiraResult],
    Field(discriminator="stage"),
]


class StageRunResponse(BaseModel):
    stage: int
    has_data: bool
    result: StageResult
