# autopm/agents/jira_agent.py
"""
Jira stage: plan tickets from the workflow, then create them.

Both project modes share one flow. `create_project` first creates the project
and invites the team; `use_existing_project` starts from the given key.
"""
from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages, require_selected_solution
from autopm.agents.spi import GenerationInput, StageContext
from autopm.models.inputs import JiraArgs
from autopm.models.stages import CollectionSummary, EmailOutcome, JiraResult, JiraTicket, Stage, TicketOutcome
from autopm.workflow.collector import collect
from autopm.workflow.errors import EnumerationError

log = logging.getLogger(__name__)


class TicketPlan(BaseModel):
    summary: str
    description: str = ""
    assignee_email: Optional[str] = None


class JiraPlan(BaseModel):
    tickets: List[TicketPlan]
    reasoning: str = ""


@dataclass
class JiraDispatch:
    project_key: str
    project_url: str = ""
    invited: int = 0
    tickets: List[JiraTicket] = field(default_factory=list)
    outcomes: List[TicketOutcome] = field(default_factory=list)
    lookups: CollectionSummary = field(default_factory=CollectionSummary)
    collection: CollectionSummary = field(default_factory=CollectionSummary)


def make_project_key(project_name: str, now: Optional[float] = None) -> str:
    """Jira keys: uppercase, start with a letter, at most 10 characters."""
    letters = re.sub(r"[^A-Za-z]", "", project_name).upper()[:6] or "AUTOPM"
    stamp = str(int(now if now is not None else time.time()))[-4:]
    return f"{letters}{stamp}"


class JiraAgent(BaseStageAgent):
    id = "stage.jira.v1"
    stage = Stage.JIRA
    schema = JiraPlan
    args_model = JiraArgs
    result_cls = JiraResult
    prompt_name = "jira"

    def team(self, ctx: StageContext) -> List[EmailOutcome]:
        email = ctx.state.email
        return email.team_members() if email else []

    def assemble(self, ctx: StageContext) -> GenerationInput:
        solution = require_selected_solution(ctx, self.stage)
        members = self.team(ctx)
        if not members:
            raise EnumerationError("stage 7 needs team members from stage 3; none were reached", stage=int(self.stage))
        story, rice = ctx.state.story, ctx.state.rice
        payload = {
            "solution": solution,
            "stories": story.story_markdown if story else "",
            "features": [
                {"name": f.name, "rice_score": f.rice_score} for f in (rice.sorted_features if rice else [])
            ],
            "team": [{"email": m.identifier, "name": m.name, "role": m.role} for m in members],
        }
        return GenerationInput(messages=build_messages(self.system_prompt(), payload))

    def fallback(self, ctx: StageContext, gen: GenerationInput) -> JiraResult:
        args: JiraArgs = ctx.args
        return JiraResult(
            mode=args.mode,
            project_key=args.project_key or "",
            project_name=args.project_name,
            summary="Jira Agent could not plan tickets; run the stage again.",
        )

    async def dispatch(self, ctx: StageContext, draft: JiraPlan, gen: GenerationInput) -> JiraDispatch:
        tracker = ctx.tracker
        if tracker is None:
            raise EnumerationError("no issue tracker configured", stage=int(self.stage))
        args: JiraArgs = ctx.args
        fanout = {"concurrency": ctx.concurrency, "timeout": ctx.attempt_timeout}

        if args.mode == "create_project":
            project = await tracker.create_project(args.project_name, make_project_key(args.project_name))
            project_key, project_url = project["key"], project.get("url", "")
        else:
            project_key = args.project_key or ""
            project_url = await tracker.project_url(project_key)
        log.info("jira.project_ready", extra={"project_key": project_key, "mode": args.mode})

        emails = [m.identifier for m in self.team(ctx)]
        lookups = await collect(emails, tracker.resolve_account_id, identify=str, **fanout)
        accounts: Dict[str, str] = {
            email.lower(): acc for email, o, acc in zip(emails, lookups.outcomes, lookups.values) if o.succeeded
        }

        invited = 0
        if args.mode == "create_project":
            invites = await collect(
                list(accounts.items()),
                lambda pair: tracker.invite_member(project_key, pair[1]),
                identify=lambda pair: pair[0],
                **fanout,
            )
            invited = invites.summary.succeeded

        async def create(plan: TicketPlan) -> JiraTicket:
            assignee = accounts.get((plan.assignee_email or "").lower())
            return await tracker.create_ticket(project_key, plan.summary, plan.description, assignee)

        def outcome(plan: TicketPlan, ok: bool, error: Optional[str], ticket: Optional[JiraTicket]) -> TicketOutcome:
            return TicketOutcome(
                identifier=plan.summary, succeeded=ok, error_detail=error, ticket_key=ticket.key if ticket else None
            )

        created = await collect(draft.tickets, create, identify=lambda p: p.summary, outcome_factory=outcome, **fanout)
        return JiraDispatch(
            project_key=project_key,
            project_url=project_url,
            invited=invited,
            tickets=created.succeeded_values(),
            outcomes=list(created.outcomes),
            lookups=lookups.summary,
            collection=created.summary,
        )

    def finalize(self, ctx: StageContext, draft: JiraPlan, gen: GenerationInput, dispatched: JiraDispatch) -> JiraResult:
        args: JiraArgs = ctx.args
        c = dispatched.collection
        summary = f"Created {c.succeeded} of {c.attempted} tickets in {dispatched.project_key}."
        if dispatched.lookups.failed:
            summary += f" {dispatched.lookups.failed} of {dispatched.lookups.attempted} account lookups failed."
        if args.mode == "create_project":
            summary += f" Invited {dispatched.invited} team members."
        return JiraResult(
            mode=args.mode,
            project_key=dispatched.project_key,
            project_name=args.project_name,
            project_url=dispatched.project_url,
            invited_members=dispatched.invited,
            tickets=dispatched.tickets,
            outcomes=dispatched.outcomes,
            lookups=dispatched.lookups,
            collection=c,
            reasoning=draft.reasoning,
            summary=summary,
        )
