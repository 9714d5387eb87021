from autopm.models.stages import (  # noqa: F401
    COMPLETED_STAGE,
    CollectionSummary,
    EmailOutcome,
    EmailResult,
    Feature,
    IdeaResult,
    ItemOutcome,
    JiraResult,
    JiraTicket,
    Objective,
    OkrResult,
    RiceResult,
    Stage,
    StageResult,
    StageResultBase,
    StageRunResponse,
    StoryResult,
    TicketOutcome,
    UserStory,
    WireframePage,
    WireframeResult,
)
from autopm.models.state import SLOT_FIELDS, WorkflowCreate, WorkflowState  # noqa: F401
