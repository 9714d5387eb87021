from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WorkflowEvent(BaseModel):
    """One telemetry event as published to the broker."""
    org: str
    event: str
    workflow_id: Optional[str] = None
    stage: Optional[int] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    payload: Dict[str, Any] = {}

    @classmethod
    def from_fields(cls, org: str, event: str, fields: Dict[str, Any]) -> "WorkflowEvent":
        stage = fields.get("stage")
        return cls(
            org=org,
            event=event,
            workflow_id=fields.get("workflow_id"),
            stage=int(stage) if stage is not None else None,
            payload=dict(fields),
        )

    def headers(self) -> Dict[str, str]:
        h = {"event": self.event}
        if self.workflow_id:
            h["workflow_id"] = self.workflow_id
        if self.stage is not None:
            h["stage"] = str(self.stage)
        return h
