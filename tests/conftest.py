import asyncio
from typing import Any, Dict, List, Optional

import pytest

from autopm.llms.base import parse_structured
from autopm.models.stages import JiraTicket
from autopm.models.state import WorkflowState
from autopm.service import WorkflowService
from autopm.workflow.telemetry import RecordingTelemetry


class FakeModel:
    """
    Scripted GenerativeModel. Replies are queued per schema name; the last queued
    reply repeats. A reply may be a dict, a raw string (parsed like a real reply),
    an exception to raise, or a callable taking the messages.
    """
    model_id = "fake"

    def __init__(self, delay: float = 0.0):
        self.script: Dict[str, List[Any]] = {}
        self.calls: List[tuple] = []
        self.delay = delay

    def queue(self, schema_name: str, *replies: Any) -> "FakeModel":
        self.script.setdefault(schema_name, []).extend(replies)
        return self

    def calls_for(self, schema_name: str) -> List[list]:
        return [m for name, m in self.calls if name == schema_name]

    async def generate(self, messages, schema, **kwargs):
        self.calls.append((schema.__name__, messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        pending = self.script.get(schema.__name__)
        if not pending:
            raise AssertionError(f"no scripted reply for {schema.__name__}")
        reply = pending.pop(0) if len(pending) > 1 else pending[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(messages)
        if isinstance(reply, str):
            return parse_structured(reply, schema)
        return schema.model_validate(reply)


class FakeMailer:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent: List[tuple] = []

    async def send(self, recipient: str, subject: str, body: str) -> None:
        if recipient in self.fail_for:
            raise RuntimeError(f"mailbox unavailable: {recipient}")
        self.sent.append((recipient, subject, body))


class FakeTracker:
    def __init__(self, missing_accounts=(), fail_summaries=()):
        self.missing_accounts = set(missing_accounts)
        self.fail_summaries = set(fail_summaries)
        self.projects: List[tuple] = []
        self.invited: List[tuple] = []
        self.tickets: List[JiraTicket] = []

    async def create_project(self, project_name: str, project_key: str) -> Dict[str, str]:
        self.projects.append((project_name, project_key))
        return {"key": project_key, "id": "10000", "url": f"https://jira.test/project/{project_key}"}

    async def project_url(self, project_key: str) -> str:
        return f"https://jira.test/project/{project_key}"

    async def invite_member(self, project_key: str, account_id: str) -> None:
        self.invited.append((project_key, account_id))

    async def resolve_account_id(self, email: str) -> str:
        if email in self.missing_accounts:
            raise LookupError(f"no Jira account found for {email}")
        return f"acc-{email.split('@')[0]}"

    async def create_ticket(self, project_key, summary, description, assignee_id=None) -> JiraTicket:
        if summary in self.fail_summaries:
            raise RuntimeError("issue type not allowed")
        n = len(self.tickets) + 1
        ticket = JiraTicket(
            id=str(n), key=f"{project_key}-{n}", summary=summary, description=description, assignee=assignee_id
        )
        self.tickets.append(ticket)
        return ticket


class InMemoryStore:
    """Round-trips through plain documents, like the Mongo store does."""

    def __init__(self):
        self.docs: Dict[str, dict] = {}
        self.saves = 0

    async def load(self, workflow_id: str) -> Optional[WorkflowState]:
        doc = self.docs.get(workflow_id)
        return WorkflowState.model_validate(doc) if doc else None

    async def save(self, state: WorkflowState) -> None:
        self.docs[state.id] = state.to_document()
        self.saves += 1

    async def delete(self, workflow_id: str) -> bool:
        return self.docs.pop(workflow_id, None) is not None

    async def list_by_user(self, user_id: str, limit: int = 50) -> List[WorkflowState]:
        rows = [WorkflowState.model_validate(d) for d in self.docs.values() if d["user_id"] == user_id]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)[:limit]

    def put(self, state: WorkflowState) -> WorkflowState:
        self.docs[state.id] = state.to_document()
        return state


@pytest.fixture
def model():
    return FakeModel()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def tracker():
    return FakeTracker()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def telemetry():
    return RecordingTelemetry()


@pytest.fixture
def service(store, model, telemetry, mailer, tracker):
    return WorkflowService(
        store,
        model,
        telemetry=telemetry,
        mailer=mailer,
        tracker=tracker,
        generation_timeout=None,
        attempt_timeout=None,
        concurrency=None,
    )
