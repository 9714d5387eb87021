# autopm/service.py
"""
Workflow operations used by the HTTP layer.

RunStage: load -> gate -> pipeline -> replace slot -> recompute pointer -> save.
A stage that fails outright (unreachable, nothing to fan out over) persists nothing.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from pydantic import BaseModel

from autopm.agents.chatbot_agent import ChatbotAgent
from autopm.agents.pipeline import AgentPipeline
from autopm.agents.registry import agent_for_stage
from autopm.agents.spi import StageContext
from autopm.clients.issue_tracker import IssueTracker
from autopm.clients.mailer import Mailer
from autopm.clients.researcher import Researcher
from autopm.config import settings
from autopm.db.workflow_store import DocumentStore
from autopm.llms.base import GenerativeModel
from autopm.models.chat import Answer
from autopm.models.inputs import SelectSolutionRequest
from autopm.models.stages import IdeaResult, Stage, StageResultBase
from autopm.models.state import WorkflowCreate, WorkflowState
from autopm.workflow.context import build_context
from autopm.workflow.errors import InvalidArgumentsError, ReachabilityError, WorkflowNotFoundError
from autopm.workflow.gate import apply_stage_pointer, has_data, require_reachable
from autopm.workflow.telemetry import LoggingTelemetry, Telemetry

log = logging.getLogger(__name__)


class WorkflowService:
    def __init__(
        self,
        store: DocumentStore,
        model: GenerativeModel,
        *,
        telemetry: Optional[Telemetry] = None,
        mailer: Optional[Mailer] = None,
        tracker: Optional[IssueTracker] = None,
        researcher: Optional[Researcher] = None,
        generation_timeout: Optional[float] = settings.GENERATION_TIMEOUT_S,
        attempt_timeout: Optional[float] = settings.ATTEMPT_TIMEOUT_S,
        concurrency: Optional[int] = settings.FANOUT_CONCURRENCY,
    ):
        self.store = store
        self.model = model
        self.telemetry = telemetry or LoggingTelemetry()
        self.mailer = mailer
        self.tracker = tracker
        self.researcher = researcher
        self.generation_timeout = generation_timeout
        self.attempt_timeout = attempt_timeout
        self.concurrency = concurrency

    async def _load(self, workflow_id: str) -> WorkflowState:
        state = await self.store.load(workflow_id)
        if state is None:
            raise WorkflowNotFoundError(workflow_id)
        return state

    # ---- CRUD -------------------------------------------------------------
    async def create_workflow(self, req: WorkflowCreate) -> WorkflowState:
        state = WorkflowState(
            _id=str(uuid4()),
            user_id=req.user_id,
            name=req.name,
            problem_statement=req.problem_statement,
        )
        await self.store.save(state)
        log.info("workflow.created", extra={"workflow_id": state.id, "user_id": state.user_id})
        return state

    async def get_workflow(self, workflow_id: str) -> WorkflowState:
        return await self._load(workflow_id)

    async def list_workflows(self, user_id: str, limit: int = 50) -> List[WorkflowState]:
        return await self.store.list_by_user(user_id, limit)

    async def delete_workflow(self, workflow_id: str) -> None:
        if not await self.store.delete(workflow_id):
            raise WorkflowNotFoundError(workflow_id)
        log.info("workflow.deleted", extra={"workflow_id": workflow_id})

    # ---- RunStage ---------------------------------------------------------
    async def run_stage(
        self, workflow_id: str, stage: int, args: Union[BaseModel, Dict[str, Any], None] = None
    ) -> StageResultBase:
        state = await self._load(workflow_id)
        require_reachable(stage, state)

        agent = agent_for_stage(stage)
        parsed = args if isinstance(args, agent.args_model) else agent.args_model.model_validate(args or {})
        ctx = StageContext(
            state=state,
            args=parsed,
            model=self.model,
            telemetry=self.telemetry,
            mailer=self.mailer,
            tracker=self.tracker,
            concurrency=self.concurrency,
            attempt_timeout=self.attempt_timeout,
            researcher=self.researcher,
        )

        t0 = time.perf_counter()
        try:
            result = await AgentPipeline(agent, generation_timeout=self.generation_timeout).run(ctx)
        except Exception as e:
            self.telemetry.event("stage.failed", workflow_id=workflow_id, stage=int(stage), error=str(e))
            await self.telemetry.flush()
            raise

        updated = apply_stage_pointer(state.with_result(result))
        await self.store.save(updated)
        self.telemetry.event(
            "stage.completed",
            workflow_id=workflow_id,
            stage=int(stage),
            has_data=result.has_data(),
            current_stage=updated.current_stage,
            duration_s=round(time.perf_counter() - t0, 3),
        )
        await self.telemetry.flush()
        return result

    async def select_solution(self, workflow_id: str, choice: SelectSolutionRequest) -> IdeaResult:
        state = await self._load(workflow_id)
        if not has_data(Stage.IDEA, state):
            raise ReachabilityError(Stage.IDEA, "run stage 1 before selecting a solution")
        idea: IdeaResult = state.idea
        if choice.index is not None:
            if choice.index >= len(idea.solutions):
                raise InvalidArgumentsError(
                    f"solution index {choice.index} is out of range (0..{len(idea.solutions) - 1})"
                )
            picked = idea.solutions[choice.index]
        else:
            picked = (choice.text or "").strip()
            if not picked:
                raise InvalidArgumentsError("selected solution text is empty")

        idea = idea.model_copy(update={"selected_solution": picked})
        await self.store.save(apply_stage_pointer(state.with_result(idea)))
        log.info("solution.selected", extra={"workflow_id": workflow_id})
        return idea

    # ---- RepairStagePointer ---------------------------------------------------
    async def repair_stage_pointer(self, workflow_id: str) -> int:
        state = await self._load(workflow_id)
        repaired = apply_stage_pointer(state)
        if (repaired.current_stage, repaired.completed) != (state.current_stage, state.completed):
            await self.store.save(repaired)
        self.telemetry.event(
            "pointer.repaired",
            workflow_id=workflow_id,
            previous=state.current_stage,
            current_stage=repaired.current_stage,
        )
        await self.telemetry.flush()
        return repaired.current_stage

    # ---- AnswerQuestion -------------------------------------------------------
    async def answer_question(self, workflow_id: str, question: str) -> Answer:
        state = await self._load(workflow_id)
        context = build_context(state)
        bot = ChatbotAgent(self.model, self.telemetry, timeout=self.generation_timeout)
        try:
            return await bot.answer(context, question)
        finally:
            await self.telemetry.flush()
