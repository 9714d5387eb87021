# autopm/main.py
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import uvicorn
from fastapi import Body, Depends, FastAPI, Path, Query, Request
from fastapi.responses import ORJSONResponse, Response
from pydantic import ValidationError

from autopm.clients.issue_tracker import JiraClient
from autopm.clients.mailer import GmailMailer
from autopm.clients.researcher import DuckDuckGoResearcher
from autopm.config import settings
from autopm.db.workflow_store import MongoWorkflowStore, get_database
from autopm.infra.rabbit import RabbitPublisher
from autopm.llms.registry import get_provider
from autopm.logging import setup_logging
from autopm.models.chat import QuestionRequest
from autopm.models.inputs import SelectSolutionRequest
from autopm.models.stages import StageRunResponse
from autopm.models.state import WorkflowCreate
from autopm.service import WorkflowService
from autopm.workflow.errors import (
    EnumerationError,
    ExternalTimeoutError,
    GenerationSchemaError,
    InvalidArgumentsError,
    ReachabilityError,
    WorkflowError,
    WorkflowNotFoundError,
)
from autopm.workflow.gate import reachable_stages
from autopm.workflow.telemetry import LoggingTelemetry, RabbitTelemetry, safe_extra

logger = setup_logging()
app = FastAPI(default_response_class=ORJSONResponse, title=settings.SERVICE_NAME)

_STATUS = {
    WorkflowNotFoundError: 404,
    ReachabilityError: 409,
    EnumerationError: 422,
    InvalidArgumentsError: 422,
    GenerationSchemaError: 502,
    ExternalTimeoutError: 504,
}

# ---- wiring -------------------------------------------------------------
_store: Optional[MongoWorkflowStore] = None
_publisher: Optional[RabbitPublisher] = None
_model = None


def get_store() -> MongoWorkflowStore:
    global _store
    if _store is None:
        _store = MongoWorkflowStore(get_database())
    return _store


def get_model():
    global _model
    if _model is None:
        _model = get_provider()
    return _model


def get_publisher() -> Optional[RabbitPublisher]:
    global _publisher
    if settings.PUBLISH_EVENTS and _publisher is None:
        _publisher = RabbitPublisher()
    return _publisher


def get_service() -> WorkflowService:
    """One service per request so buffered telemetry never mixes requests."""
    publisher = get_publisher()
    telemetry = RabbitTelemetry(publisher, org=settings.EVENTS_ORG) if publisher else LoggingTelemetry()
    mailer = GmailMailer(settings.GMAIL_ACCESS_TOKEN) if settings.GMAIL_ACCESS_TOKEN else None
    tracker = (
        JiraClient(settings.JIRA_ACCESS_TOKEN, cloud_id=settings.JIRA_CLOUD_ID) if settings.JIRA_ACCESS_TOKEN else None
    )
    researcher = DuckDuckGoResearcher() if settings.RESEARCH_ENABLED else None
    return WorkflowService(
        get_store(), get_model(), telemetry=telemetry, mailer=mailer, tracker=tracker, researcher=researcher
    )


@app.on_event("startup")
async def _startup():
    await get_store().ensure_indexes()
    logger.info("Indexes initialized for workflows", extra=safe_extra({"service": settings.SERVICE_NAME}))


@app.on_event("shutdown")
async def _shutdown():
    if _publisher is not None:
        await _publisher.close()


# ---- error mapping ------------------------------------------------------
@app.exception_handler(WorkflowError)
async def _workflow_error(request: Request, exc: WorkflowError):
    status = next((code for cls, code in _STATUS.items() if isinstance(exc, cls)), 500)
    body: Dict[str, Any] = {"error": exc.__class__.__name__, "detail": str(exc)}
    stage = getattr(exc, "stage", None)
    if stage is not None:
        body["stage"] = int(stage)
    logger.warning("request.failed", extra=safe_extra({"path": request.url.path, "status": status, **body}))
    return ORJSONResponse(status_code=status, content=body)


@app.exception_handler(ValidationError)
async def _args_invalid(request: Request, exc: ValidationError):
    # Stage args are validated inside the service against the stage's own model
    return ORJSONResponse(
        status_code=422,
        content={"error": "ValidationError", "detail": exc.errors(include_url=False, include_context=False)},
    )


@app.exception_handler(httpx.HTTPError)
async def _upstream_failed(request: Request, exc: httpx.HTTPError):
    logger.error("upstream.failed", extra=safe_extra({"path": request.url.path, "error": str(exc)}))
    return ORJSONResponse(status_code=502, content={"error": "UpstreamError", "detail": str(exc)})


# ---- health -------------------------------------------------------------
@app.get("/health")
async def health():
    return {"ok": True, "service": settings.SERVICE_NAME, "env": settings.ENV}


# ---- workflows ----------------------------------------------------------
@app.post("/workflows", status_code=201)
async def create_workflow(req: WorkflowCreate, svc: WorkflowService = Depends(get_service)):
    state = await svc.create_workflow(req)
    return state.to_document()


@app.get("/workflows")
async def list_workflows(
    user_id: str = Query(..., min_length=1),
    limit: int = Query(50, ge=1, le=200),
    svc: WorkflowService = Depends(get_service),
):
    return [s.to_document() for s in await svc.list_workflows(user_id, limit)]


@app.get("/workflows/{workflow_id}")
async def get_workflow(workflow_id: str, svc: WorkflowService = Depends(get_service)):
    state = await svc.get_workflow(workflow_id)
    return {**state.to_document(), "reachable_stages": reachable_stages(state)}


@app.delete("/workflows/{workflow_id}", status_code=204)
async def delete_workflow(workflow_id: str, svc: WorkflowService = Depends(get_service)):
    await svc.delete_workflow(workflow_id)
    return Response(status_code=204)


@app.post("/workflows/{workflow_id}/stages/{stage}", response_model=StageRunResponse)
async def run_stage(
    workflow_id: str,
    stage: int = Path(..., ge=1, le=7),
    args: Optional[Dict[str, Any]] = Body(None),
    svc: WorkflowService = Depends(get_service),
):
    result = await svc.run_stage(workflow_id, stage, args)
    return StageRunResponse(stage=stage, has_data=result.has_data(), result=result)


@app.post("/workflows/{workflow_id}/select-solution")
async def select_solution(
    workflow_id: str, req: SelectSolutionRequest, svc: WorkflowService = Depends(get_service)
):
    idea = await svc.select_solution(workflow_id, req)
    return idea.model_dump()


@app.post("/workflows/{workflow_id}/repair-stage")
async def repair_stage(workflow_id: str, svc: WorkflowService = Depends(get_service)):
    return {"current_stage": await svc.repair_stage_pointer(workflow_id)}


@app.post("/workflows/{workflow_id}/questions")
async def ask(workflow_id: str, req: QuestionRequest, svc: WorkflowService = Depends(get_service)):
    answer = await svc.answer_question(workflow_id, req.question)
    return answer.model_dump()


if __name__ == "__main__":
    uvicorn.run("autopm.main:app", host="0.0.0.0", port=settings.PORT, log_level="info")
