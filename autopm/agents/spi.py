# autopm/agents/spi.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Type, TypedDict

from pydantic import BaseModel

from autopm.clients.issue_tracker import IssueTracker
from autopm.clients.mailer import Mailer
from autopm.clients.researcher import Researcher, SearchHit
from autopm.llms.base import ChatMessage, GenerativeModel
from autopm.models.stages import Stage, StageResultBase
from autopm.models.state import WorkflowState
from autopm.workflow.telemetry import Telemetry


@dataclass
class StageContext:
    """Everything one stage invocation may touch. Built per request by the service."""
    state: WorkflowState
    args: BaseModel
    model: GenerativeModel
    telemetry: Telemetry
    mailer: Optional[Mailer] = None
    tracker: Optional[IssueTracker] = None
    concurrency: Optional[int] = None
    attempt_timeout: Optional[float] = None
    researcher: Optional[Researcher] = None
    # Filled by the agent's prepare step, before assemble runs
    research: List[SearchHit] = field(default_factory=list)


@dataclass
class GenerationInput:
    messages: List[ChatMessage]
    # Values worked out while assembling that finalize needs again (e.g. OKR context mode)
    meta: Dict[str, Any] = field(default_factory=dict)
    # Reply schema for this invocation when it differs from the agent default
    schema: Optional[Type[BaseModel]] = None


class PipelineState(TypedDict, total=False):
    gen: GenerationInput
    draft: Any                  # validated instance of the agent's schema
    error: Optional[str]
    raw_response: Optional[str]
    attempts: int
    dispatched: Any
    result: StageResultBase
    fallback: bool


class StageAgent(Protocol):
    id: str
    stage: Stage
    schema: Type[BaseModel]
    args_model: Type[BaseModel]

    async def prepare(self, ctx: StageContext) -> None: ...

    def assemble(self, ctx: StageContext) -> GenerationInput: ...

    async def dispatch(self, ctx: StageContext, draft: Any, gen: GenerationInput) -> Any: ...

    def finalize(self, ctx: StageContext, draft: Any, gen: GenerationInput, dispatched: Any) -> StageResultBase: ...

    def fallback(self, ctx: StageContext, gen: GenerationInput) -> Optional[StageResultBase]: ...
