# autopm/workflow/telemetry.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

from autopm.models.events import WorkflowEvent

_RESERVED = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "process", "processName", "message", "asctime",
}


def safe_extra(extra: dict) -> dict:
    out = {}
    for k, v in extra.items():
        out[f"ctx_{k}" if k in _RESERVED else k] = v
    return out


class Telemetry(Protocol):
    def event(self, name: str, **fields: Any) -> None: ...

    async def flush(self) -> None: ...


class LoggingTelemetry:
    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("autopm.telemetry")

    def event(self, name: str, **fields: Any) -> None:
        level = logging.WARNING if name.endswith((".failed", ".fallback")) else logging.INFO
        self.logger.log(level, name, extra=safe_extra(fields))

    async def flush(self) -> None:
        return None


class RecordingTelemetry(LoggingTelemetry):
    """Keeps events in memory; handy for inspecting a single run."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def event(self, name: str, **fields: Any) -> None:
        super().event(name, **fields)
        self.events.append((name, fields))

    def names(self) -> List[str]:
        return [n for n, _ in self.events]


class RabbitTelemetry(RecordingTelemetry):
    """Buffers events during a run and publishes them when the caller flushes."""

    def __init__(self, publisher, *, org: str, logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.publisher = publisher
        self.org = org
        self.pending: List[WorkflowEvent] = []

    def event(self, name: str, **fields: Any) -> None:
        super().event(name, **fields)
        self.pending.append(WorkflowEvent.from_fields(self.org, name, fields))

    async def flush(self) -> None:
        pending, self.pending, self.events = self.pending, [], []
        for ev in pending:
            try:
                await self.publisher.publish(ev)
            except Exception:
                self.logger.exception("telemetry.publish_failed", extra={"event": ev.event})
