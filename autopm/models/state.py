# autopm/models/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from autopm.models.stages import (
    COMPLETED_STAGE,
    EmailResult,
    IdeaResult,
    JiraResult,
    OkrResult,
    RiceResult,
    Stage,
    StageResultBase,
    StoryResult,
    WireframeResult,
)

SLOT_FIELDS: Dict[Stage, str] = {
    Stage.IDEA: "idea",
    Stage.STORY: "story",
    Stage.EMAIL: "email",
    Stage.RICE: "rice",
    Stage.OKR: "okr",
    Stage.WIREFRAME: "wireframe",
    Stage.JIRA: "jira",
}


class WorkflowCreate(BaseModel):
    user_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    problem_statement: str = Field(min_length=10, max_length=5000)


class WorkflowState(BaseModel):
    """One per project space; persisted as a single document keyed by `_id`."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., alias="_id")
    user_id: str
    name: str
    problem_statement: str

    # Cached; authoritative value comes from gate.recompute_current_stage
    current_stage: int = Field(default=1, ge=1, le=COMPLETED_STAGE)
    completed: bool = False

    idea: Optional[IdeaResult] = None
    story: Optional[StoryResult] = None
    email: Optional[EmailResult] = None
    rice: Optional[RiceResult] = None
    okr: Optional[OkrResult] = None
    wireframe: Optional[WireframeResult] = None
    jira: Optional[JiraResult] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def slot(self, stage: int) -> Optional[StageResultBase]:
        return getattr(self, SLOT_FIELDS[Stage(stage)])

    def with_result(self, result: StageResultBase) -> "WorkflowState":
        """Copy with the stage's slot replaced (re-runs never append)."""
        field = SLOT_FIELDS[Stage(result.stage)]
        return self.model_copy(update={field: result, "updated_at": datetime.now(timezone.utc)})

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)
