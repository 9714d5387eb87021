# autopm/workflow/errors.py
from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for failures surfaced by the workflow core."""


class ReachabilityError(WorkflowError):
    """The requested stage cannot run yet. User-facing, never retried."""

    def __init__(self, stage: int, message: str):
        super().__init__(message)
        self.stage = stage


class EnumerationError(WorkflowError):
    """The list of fan-out items could not be produced; fatal to the stage attempt."""

    def __init__(self, message: str, *, stage: Optional[int] = None):
        super().__init__(message)
        self.stage = stage


class GenerationSchemaError(WorkflowError):
    """Model output did not validate against the declared schema."""

    def __init__(self, message: str, *, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class ExternalTimeoutError(WorkflowError):
    """An external call (generation or a fan-out attempt) exceeded its timeout."""

    def __init__(self, what: str, timeout_s: float):
        super().__init__(f"{what} timed out after {timeout_s:g}s")
        self.timeout_s = timeout_s


class WorkflowNotFoundError(WorkflowError):
    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow '{workflow_id}' not found")
        self.workflow_id = workflow_id


class InvalidArgumentsError(WorkflowError):
    """Caller-supplied stage arguments are well-formed but unusable (bad selection, unreadable document)."""
