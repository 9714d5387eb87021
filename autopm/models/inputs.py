from pydantic import BaseModel, Field, model_validator
from typing import List, Literal, Optional

from autopm.models.stages import Feature


class IdeaArgs(BaseModel):
    # Overrides the workflow's problem statement for this run
    query: Optional[str] = None


class StoryArgs(BaseModel):
    notes: Optional[str] = None


class TeamMember(BaseModel):
    email: str = Field(min_length=3)
    name: str
    role: str
    description: str = ""


class EmailArgs(BaseModel):
    team_members: List[TeamMember] = []
    sender_name: str = "Product Manager"
    skip_delivery: bool = False


class RiceArgs(BaseModel):
    features: Optional[List[Feature]] = None


class OkrArgs(BaseModel):
    document_text: Optional[str] = None
    pdf_base64: Optional[str] = None
    file_name: Optional[str] = None
    question: Optional[str] = None

    @model_validator(mode="after")
    def _needs_document(self):
        if not (self.document_text or self.pdf_base64):
            raise ValueError("document_text or pdf_base64 is required")
        return self


class WireframeArgs(BaseModel):
    max_pages: int = Field(default=4, ge=1, le=10)


class JiraArgs(BaseModel):
    mode: Literal["use_existing_project", "create_project"] = "use_existing_project"
    project_key: Optional[str] = None
    project_name: str = Field(min_length=1)

    @model_validator(mode="after")
    def _key_for_existing(self):
        if self.mode == "use_existing_project" and not self.project_key:
            raise ValueError("project_key is required when mode is use_existing_project")
        return self


class SelectSolutionRequest(BaseModel):
    index: Optional[int] = Field(default=None, ge=0)
    text: Optional[str] = None

    @model_validator(mode="after")
    def _one_choice(self):
        if (self.index is None) == (self.text is None):
            raise ValueError("exactly one of index or text is required")
        return self
