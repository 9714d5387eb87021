# autopm/agents/email_agent.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel

from autopm.agents.base import BaseStageAgent, build_messages, load_prompt, require_selected_solution
from autopm.agents.spi import GenerationInput, StageContext
from autopm.models.inputs import EmailArgs, TeamMember
from autopm.models.stages import CollectionSummary, EmailOutcome, EmailResult, Stage
from autopm.workflow.collector import collect
from autopm.workflow.errors import EnumerationError

SKIPPED = "delivery skipped"


class RelevantMembers(BaseModel):
    relevant_emails: List[str]
    reasoning: str = ""


class EmailDraft(BaseModel):
    subject: str
    body: str


@dataclass
class EmailDispatch:
    relevant: List[TeamMember] = field(default_factory=list)
    outcomes: List[EmailOutcome] = field(default_factory=list)
    summary: CollectionSummary = field(default_factory=CollectionSummary)


def pick_relevant(members: List[TeamMember], emails: List[str]) -> List[TeamMember]:
    """Roster entries named by the model, in roster order; unknown addresses are ignored."""
    wanted = {e.strip().lower() for e in emails}
    return [m for m in members if m.email.lower() in wanted]


class EmailAgent(BaseStageAgent):
    id = "stage.email.v1"
    stage = Stage.EMAIL
    schema = RelevantMembers
    args_model = EmailArgs
    result_cls = EmailResult
    prompt_name = "email_select"

    def assemble(self, ctx: StageContext) -> GenerationInput:
        solution = require_selected_solution(ctx, self.stage)
        args: EmailArgs = ctx.args
        if not args.team_members:
            raise EnumerationError("no team members supplied to notify", stage=int(self.stage))
        story = ctx.state.story
        payload = {
            "solution": solution,
            "stories": story.story_markdown if story else "",
            "team": [m.model_dump() for m in args.team_members],
        }
        return GenerationInput(messages=build_messages(self.system_prompt(), payload), meta={"solution": solution})

    def _draft_messages(self, ctx: StageContext, member: TeamMember, solution: str):
        args: EmailArgs = ctx.args
        payload = {
            "sender_name": args.sender_name,
            "workflow": ctx.state.name,
            "solution": solution,
            "recipient": {"name": member.name, "role": member.role, "description": member.description},
        }
        return build_messages(load_prompt("email_draft"), payload)

    async def dispatch(self, ctx: StageContext, draft: RelevantMembers, gen: GenerationInput) -> EmailDispatch:
        args: EmailArgs = ctx.args
        relevant = pick_relevant(args.team_members, draft.relevant_emails)

        if args.skip_delivery:
            outcomes = [
                EmailOutcome(identifier=m.email, succeeded=False, error_detail=SKIPPED, name=m.name, role=m.role)
                for m in relevant
            ]
            n = len(outcomes)
            return EmailDispatch(relevant, outcomes, CollectionSummary(attempted=n, succeeded=0, failed=n))

        if ctx.mailer is None:
            raise EnumerationError("no mailer configured for email delivery", stage=int(self.stage))
        solution = gen.meta["solution"]

        async def send_one(member: TeamMember) -> EmailDraft:
            mail = await ctx.model.generate(self._draft_messages(ctx, member, solution), EmailDraft)
            await ctx.mailer.send(member.email, mail.subject, mail.body)
            return mail

        def outcome(member: TeamMember, ok: bool, error: Optional[str], value) -> EmailOutcome:
            return EmailOutcome(identifier=member.email, succeeded=ok, error_detail=error, name=member.name, role=member.role)

        res = await collect(
            relevant,
            send_one,
            identify=lambda m: m.email,
            outcome_factory=outcome,
            concurrency=ctx.concurrency,
            timeout=ctx.attempt_timeout,
        )
        return EmailDispatch(relevant, list(res.outcomes), res.summary)

    def finalize(self, ctx: StageContext, draft: RelevantMembers, gen: GenerationInput, dispatched: EmailDispatch) -> EmailResult:
        args: EmailArgs = ctx.args
        total = len(args.team_members)
        relevant = len(dispatched.relevant)
        s = dispatched.summary
        if args.skip_delivery:
            tail = f"Delivery skipped for {relevant} recipients."
        else:
            tail = f"Sent {s.succeeded} of {s.attempted} emails."
        return EmailResult(
            total_members=total,
            relevant_members=relevant,
            emails_sent=s.succeeded,
            outcomes=dispatched.outcomes,
            collection=s,
            delivery_skipped=args.skip_delivery,
            reasoning=draft.reasoning,
            summary=f"Analyzed {total} team members and identified {relevant} relevant stakeholders. {tail}",
        )
