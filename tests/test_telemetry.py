import asyncio
import logging

from autopm.infra.rabbit import rk
from autopm.models.events import WorkflowEvent
from autopm.workflow.telemetry import LoggingTelemetry, RabbitTelemetry, safe_extra


class FakePublisher:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.published = []

    async def publish(self, ev: WorkflowEvent, version="v1"):
        if ev.event in self.fail_on:
            raise ConnectionError("broker down")
        self.published.append(ev)


def test_safe_extra_renames_reserved_log_record_keys():
    assert safe_extra({"name": "x", "stage": 3}) == {"ctx_name": "x", "stage": 3}


def test_logging_telemetry_warns_on_failures(caplog):
    tel = LoggingTelemetry(logging.getLogger("autopm.test"))
    with caplog.at_level(logging.INFO, logger="autopm.test"):
        tel.event("stage.finalized", stage=1)
        tel.event("stage.fallback", stage=1)
    levels = {r.getMessage(): r.levelno for r in caplog.records}
    assert levels["stage.finalized"] == logging.INFO
    assert levels["stage.fallback"] == logging.WARNING


def test_rabbit_telemetry_publishes_on_flush_only():
    pub = FakePublisher()
    tel = RabbitTelemetry(pub, org="acme")
    tel.event("stage.completed", workflow_id="wf-1", stage=2, has_data=True)
    assert pub.published == []

    asyncio.run(tel.flush())
    [ev] = pub.published
    assert (ev.org, ev.event, ev.workflow_id, ev.stage) == ("acme", "stage.completed", "wf-1", 2)
    assert ev.payload == {"workflow_id": "wf-1", "stage": 2, "has_data": True}
    assert tel.events == []
    assert tel.pending == []


def test_event_headers_carry_workflow_and_stage():
    ev = WorkflowEvent.from_fields("acme", "stage.failed", {"workflow_id": "wf-9", "stage": 7, "error": "boom"})
    assert ev.headers() == {"event": "stage.failed", "workflow_id": "wf-9", "stage": "7"}

    bare = WorkflowEvent.from_fields("acme", "answer.generated", {"confidence": "high"})
    assert bare.headers() == {"event": "answer.generated"}
    assert bare.stage is None


def test_rabbit_publish_failure_does_not_escape():
    pub = FakePublisher(fail_on={"stage.failed"})
    tel = RabbitTelemetry(pub, org="acme")
    tel.event("stage.failed", stage=3)
    tel.event("stage.completed", stage=3)

    asyncio.run(tel.flush())
    assert [e.event for e in pub.published] == ["stage.completed"]


def test_routing_key():
    assert rk("acme", "stage.completed") == "acme.workflow.stage.completed.v1"
