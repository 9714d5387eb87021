import asyncio

import pytest

from autopm.models.stages import EmailOutcome
from autopm.workflow.collector import collect
from autopm.workflow.errors import EnumerationError


def run(coro):
    return asyncio.run(coro)


def test_empty_input_gives_empty_summary():
    async def attempt(item):
        raise AssertionError("never called")

    res = run(collect([], attempt))
    assert res.outcomes == []
    assert (res.summary.attempted, res.summary.succeeded, res.summary.failed) == (0, 0, 0)


def test_second_recipient_failure_is_recorded_and_siblings_continue():
    sent = []

    async def send(addr):
        if addr == "b@x.io":
            raise RuntimeError("550 mailbox unavailable")
        sent.append(addr)
        return addr

    res = run(collect(["a@x.io", "b@x.io", "c@x.io"], send))

    assert [o.succeeded for o in res.outcomes] == [True, False, True]
    assert res.outcomes[1].error_detail == "550 mailbox unavailable"
    assert res.outcomes[0].error_detail is None
    assert (res.summary.attempted, res.summary.succeeded, res.summary.failed) == (3, 2, 1)
    assert sorted(sent) == ["a@x.io", "c@x.io"]
    assert res.values == ["a@x.io", None, "c@x.io"]
    assert res.succeeded_values() == ["a@x.io", "c@x.io"]


def test_output_order_matches_input_when_attempts_finish_out_of_order():
    items = [5, 1, 4, 2, 3]

    async def slow_first(n):
        await asyncio.sleep(n / 1000)
        if n % 2 == 0:
            raise ValueError(f"even {n}")
        return n * 10

    res = run(collect(items, slow_first))
    assert [o.identifier for o in res.outcomes] == ["5", "1", "4", "2", "3"]
    assert [o.succeeded for o in res.outcomes] == [True, True, False, False, True]
    assert res.summary.succeeded + res.summary.failed == len(items)


def test_concurrency_cap_limits_in_flight_attempts():
    in_flight = 0
    peak = 0

    async def attempt(i):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.005)
        in_flight -= 1
        return i

    res = run(collect(list(range(8)), attempt, concurrency=2))
    assert peak <= 2
    assert res.summary.succeeded == 8


def test_timeout_marks_only_that_item_failed():
    async def attempt(delay):
        await asyncio.sleep(delay)
        return delay

    res = run(collect([0, 1.0, 0], attempt, timeout=0.05))
    assert [o.succeeded for o in res.outcomes] == [True, False, True]
    assert "timed out" in res.outcomes[1].error_detail


def test_exception_without_message_uses_class_name():
    async def attempt(_):
        raise KeyError()

    res = run(collect(["x"], attempt))
    assert res.outcomes[0].error_detail == "KeyError"


def test_failing_item_source_raises_enumeration_error():
    def roster():
        raise ConnectionError("directory service down")

    async def attempt(_):
        return None

    with pytest.raises(EnumerationError, match="directory service down"):
        run(collect(roster, attempt))


def test_async_item_source_is_awaited():
    async def roster():
        return ["a", "b"]

    async def attempt(item):
        return item.upper()

    res = run(collect(roster, attempt))
    assert res.values == ["A", "B"]


def test_outcome_factory_builds_richer_records():
    people = [("ana@acme.io", "Ana"), ("ben@acme.io", "Ben")]

    async def attempt(p):
        if p[1] == "Ben":
            raise RuntimeError("bounced")

    def make(p, ok, err, value):
        return EmailOutcome(identifier=p[0], succeeded=ok, error_detail=err, name=p[1])

    res = run(collect(people, attempt, identify=lambda p: p[0], outcome_factory=make))
    assert [(o.identifier, o.name, o.succeeded) for o in res.outcomes] == [
        ("ana@acme.io", "Ana", True),
        ("ben@acme.io", "Ben", False),
    ]


def test_identify_failure_is_recorded_for_that_item_only():
    async def attempt(item):
        return item["to"]

    def identify(item):
        return item["to"]

    items = [{"to": "a@x.io"}, {"name": "no address"}, {"to": "c@x.io"}]
    res = run(collect(items, attempt, identify=identify))

    assert [o.succeeded for o in res.outcomes] == [True, False, True]
    assert res.outcomes[1].identifier == repr({"name": "no address"})
    assert res.outcomes[1].error_detail == "'to'"
    assert res.values == ["a@x.io", None, "c@x.io"]
