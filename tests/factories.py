from autopm.models.stages import (
    EmailOutcome,
    EmailResult,
    Feature,
    IdeaResult,
    JiraResult,
    JiraTicket,
    Objective,
    OkrResult,
    RiceResult,
    StoryResult,
    UserStory,
    WireframePage,
    WireframeResult,
)
from autopm.models.state import WorkflowState

TEAM = [
    {"email": "ana@acme.io", "name": "Ana", "role": "Engineering Lead", "description": "Owns the backend"},
    {"email": "ben@acme.io", "name": "Ben", "role": "Designer", "description": "Owns the UI"},
    {"email": "cy@acme.io", "name": "Cy", "role": "Sales", "description": "Enterprise accounts"},
]


def new_state(**slots) -> WorkflowState:
    return WorkflowState(
        _id=slots.pop("id", "wf-1"),
        user_id="u-1",
        name="Churn Radar",
        problem_statement="Customers churn without warning and sales learns too late.",
        **slots,
    )


def idea(selected="Churn risk alerts in the CRM"):
    return IdeaResult(
        title="Churn Radar",
        summary="Spot accounts at risk before renewal.",
        solutions=["Churn risk alerts in the CRM", "Weekly health digest"],
        selected_solution=selected,
    )


def story():
    stories = [UserStory(persona="account manager", action="see at-risk accounts", benefit="I can act early")]
    return StoryResult(summary="Alerts for AMs", stories=stories, story_markdown="# User Stories")


def email(delivery_skipped=False):
    outcomes = [
        EmailOutcome(identifier="ana@acme.io", succeeded=True, name="Ana", role="Engineering Lead"),
        EmailOutcome(identifier="ben@acme.io", succeeded=False, error_detail="bounced", name="Ben", role="Designer"),
    ]
    return EmailResult(outcomes=outcomes, delivery_skipped=delivery_skipped, summary="Sent 1 of 2 emails.")


def rice():
    f = Feature(name="Risk score", reach=100, impact=2, confidence=0.5, effort=2, rice_score=50)
    return RiceResult(features=[f], sorted_features=[f], summary="Scored 1 features.")


def okr():
    return OkrResult(summary="Retention OKRs", objectives=[Objective(objective="Cut churn", key_results=["-20% churn"])])


def wireframe():
    return WireframeResult(pages=[WireframePage(name="Dashboard", description="At-risk list", html="<div/>")])


def jira():
    t = JiraTicket(id="1", key="CHURN-1", summary="Build risk score", description="Model v1")
    return JiraResult(project_key="CHURN", project_name="Churn Radar", tickets=[t])


def full_state(**overrides) -> WorkflowState:
    slots = dict(
        idea=idea(), story=story(), email=email(), rice=rice(), okr=okr(), wireframe=wireframe(), jira=jira()
    )
    slots.update(overrides)
    return new_state(**slots)
