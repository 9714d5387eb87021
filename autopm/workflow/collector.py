# autopm/workflow/collector.py
"""
Fan-out accumulator for stages that make N independent external calls.

A failing attempt never aborts its siblings; every input item gets exactly one
ItemOutcome, in input order, even when attempts complete out of order.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, List, Optional, Sequence, TypeVar, Union

from autopm.models.stages import CollectionSummary, ItemOutcome
from autopm.workflow.errors import EnumerationError, ExternalTimeoutError

log = logging.getLogger(__name__)

T = TypeVar("T")

ItemSource = Union[Iterable[T], Callable[[], Union[Iterable[T], Awaitable[Iterable[T]]]]]
OutcomeFactory = Callable[[T, bool, Optional[str], Any], ItemOutcome]


def _default_outcome(identifier: str) -> OutcomeFactory:
    def make(item: Any, succeeded: bool, error: Optional[str], value: Any) -> ItemOutcome:
        return ItemOutcome(identifier=identifier, succeeded=succeeded, error_detail=error)
    return make


@dataclass
class CollectionResult(Generic[T]):
    outcomes: List[ItemOutcome] = field(default_factory=list)
    # Return value of each attempt (None where the attempt failed); aligned with outcomes
    values: List[Any] = field(default_factory=list)
    summary: CollectionSummary = field(default_factory=CollectionSummary)

    def succeeded_values(self) -> List[Any]:
        return [v for o, v in zip(self.outcomes, self.values) if o.succeeded]


async def _enumerate(items: ItemSource) -> List[Any]:
    try:
        produced = items() if callable(items) else items
        if inspect.isawaitable(produced):
            produced = await produced
        return list(produced)
    except EnumerationError:
        raise
    except Exception as e:
        raise EnumerationError(f"could not enumerate fan-out items: {e}") from e


def _error_text(exc: BaseException) -> str:
    msg = str(exc)
    return msg or exc.__class__.__name__


async def collect(
    items: ItemSource,
    attempt: Callable[[T], Awaitable[Any]],
    *,
    identify: Callable[[T], str] = str,
    outcome_factory: Optional[Callable[[T, bool, Optional[str], Any], ItemOutcome]] = None,
    concurrency: Optional[int] = None,
    timeout: Optional[float] = None,
) -> CollectionResult:
    """
    Attempt every item and record one outcome per item.

    items: a sequence, or a zero-arg (sync or async) callable producing one.
           Failing to produce the list raises EnumerationError.
    attempt: awaited once per item; raising marks that item failed.
    concurrency: cap on in-flight attempts (None = unbounded).
    timeout: per-attempt timeout in seconds; expiry is recorded as a failure.
    """
    listed: Sequence[T] = await _enumerate(items)
    n = len(listed)
    outcomes: List[Optional[ItemOutcome]] = [None] * n
    values: List[Any] = [None] * n
    gate = asyncio.Semaphore(concurrency) if concurrency else None

    async def run_one(idx: int, item: T) -> None:
        ident = repr(item)
        make = outcome_factory or _default_outcome(ident)
        try:
            ident = identify(item)
            make = outcome_factory or _default_outcome(ident)
            if gate is not None:
                async with gate:
                    value = await _bounded(attempt(item), timeout, ident)
            else:
                value = await _bounded(attempt(item), timeout, ident)
        except Exception as e:
            log.warning("fanout.attempt_failed", extra={"identifier": ident, "error": _error_text(e)})
            outcomes[idx] = make(item, False, _error_text(e), None)
            return
        values[idx] = value
        outcomes[idx] = make(item, True, None, value)

    if n:
        await asyncio.gather(*(run_one(i, it) for i, it in enumerate(listed)))

    done: List[ItemOutcome] = [o for o in outcomes if o is not None]
    ok = sum(1 for o in done if o.succeeded)
    summary = CollectionSummary(attempted=n, succeeded=ok, failed=n - ok)
    return CollectionResult(outcomes=done, values=values, summary=summary)


async def _bounded(aw: Awaitable[Any], timeout: Optional[float], ident: str) -> Any:
    if timeout is None:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout)
    except asyncio.TimeoutError as e:
        raise ExternalTimeoutError(f"attempt for '{ident}'", timeout) from e
