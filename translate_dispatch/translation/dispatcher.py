"""
Translation Dispatcher

Drives one dispatch batch: a fixed list of text units and one or more
providers.

- Serial mode (one provider): units in order, stop at the first error.
- Parallel mode (two or more providers): one worker task per provider pulling
  from a shared WorkQueue. A failing worker either retires and hands its unit
  back (reassign_on_failure) or aborts the whole batch.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence

from translate_dispatch.ai.client import TranslationClient
from translate_dispatch.ai.exceptions import TranslationError
from translate_dispatch.ai.providers import Provider
from translate_dispatch.logger import get_logger
from translate_dispatch.translation.progress import ProgressAggregator, ProviderProgress
from translate_dispatch.translation.rate_limiter import RateLimiter

logger = get_logger(__name__)

ALL_PROVIDERS_FAILED = "Remaining units incomplete, all providers failed"
NO_UNITS = "No units to translate"
NO_CONTENT = "No translated content produced"
CANCELLED = "Dispatch cancelled"


class DispatchStatus(str, Enum):
    TRANSLATED = "translated"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"


class UnitStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, eq=False)
class TranslationUnit:
    """Source text plus the caller's opaque back-reference."""
    text: str
    ref: Any = None


@dataclass
class UnitOutcome:
    """
    Final state of one unit in a batch.

    PENDING after a batch means the unit has no attempt of its own to show:
    it was never sent (serial halt, abort, stop) or was handed back by a
    retiring worker and no provider took it again. The batch reason says why.
    """
    unit: TranslationUnit
    status: UnitStatus = UnitStatus.PENDING
    translation: Optional[str] = None
    provider_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ref": self.unit.ref,
            "text": self.unit.text,
            "status": self.status.value,
            "translation": self.translation,
            "provider_id": self.provider_id,
            "error": self.error,
        }


@dataclass
class DispatchResult:
    status: DispatchStatus
    count: int = 0
    reason: Optional[str] = None
    title: str = ""
    first_error: Optional[str] = None
    outcomes: List[UnitOutcome] = field(default_factory=list)

    @property
    def translations(self) -> Dict[Any, str]:
        """Translated text keyed by unit ref."""
        return {
            outcome.unit.ref: outcome.translation
            for outcome in self.outcomes
            if outcome.status == UnitStatus.DONE
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "title": self.title,
            "count": self.count,
            "reason": self.reason,
            "first_error": self.first_error,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def build_result(count: int, reason: Optional[str], title: str = "", **kwargs) -> DispatchResult:
    """Map a translated count and an optional failure reason onto a DispatchResult."""
    if count == 0 and reason:
        return DispatchResult(DispatchStatus.FAILED, 0, reason, title, **kwargs)
    if count == 0:
        return DispatchResult(DispatchStatus.SKIPPED, 0, NO_CONTENT, title, **kwargs)
    if reason:
        return DispatchResult(DispatchStatus.PARTIAL, count, reason, title, **kwargs)
    return DispatchResult(DispatchStatus.TRANSLATED, count, None, title, **kwargs)


class WorkQueue:
    """
    FIFO of pending unit outcomes shared by all workers of a batch.

    Every mutation happens under one asyncio.Condition. A unit popped from the
    queue stays "in flight" until the worker completes it or pushes it back;
    pop() waits instead of reporting an empty queue while units are in flight,
    so a pushed-back unit is always seen by the surviving workers.
    """

    def __init__(self, items: Iterable[UnitOutcome]):
        self._items: Deque[UnitOutcome] = deque(items)
        self._in_flight = 0
        self._aborted = False
        self._condition = asyncio.Condition()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def pop(self) -> Optional[UnitOutcome]:
        """Next unit, or None once the batch is aborted or fully drained."""
        async with self._condition:
            while True:
                if self._aborted:
                    return None
                if self._items:
                    self._in_flight += 1
                    return self._items.popleft()
                if self._in_flight == 0:
                    return None
                await self._condition.wait()

    async def complete(self) -> None:
        async with self._condition:
            self._in_flight -= 1
            self._condition.notify_all()

    async def push_back(self, item: UnitOutcome) -> None:
        async with self._condition:
            self._items.append(item)
            self._in_flight -= 1
            self._condition.notify_all()

    async def abort(self) -> None:
        async with self._condition:
            self._aborted = True
            self._condition.notify_all()


class Dispatcher:
    """
    Runs one dispatch batch against a fixed set of providers.

    The Dispatcher owns the RateLimiter handed to every client call, so two
    dispatchers built with fresh limiters never share throttling state.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        client: TranslationClient,
        system_prompt: str = "",
        reassign_on_failure: bool = False,
        rate_limiter: Optional[RateLimiter] = None,
        progress: Optional[ProgressAggregator] = None,
        on_unit_translated: Optional[Callable[[UnitOutcome], None]] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            providers: Participating providers; two or more selects parallel mode
            client: TranslationClient used for every request
            system_prompt: System message sent with every unit
            reassign_on_failure: Hand a failed unit back to the queue and retire
                the failing worker instead of aborting the batch
            rate_limiter: Per-provider throttle (a fresh one when omitted)
            progress: Aggregator receiving counters and log lines
            on_unit_translated: Sink called once per translated unit
            timeout: Seconds after which the batch is stopped
        """
        self.providers = tuple(providers)
        if not self.providers:
            raise ValueError("Dispatcher needs at least one provider")
        self.client = client
        self.system_prompt = system_prompt
        self.reassign_on_failure = reassign_on_failure
        self.rate_limiter = rate_limiter or RateLimiter()
        self.progress = progress or ProgressAggregator()
        self.on_unit_translated = on_unit_translated
        self.timeout = timeout

        self._tasks: List[asyncio.Task] = []
        self._queue: Optional[WorkQueue] = None
        self._first_error: Optional[str] = None
        self._stop_reason: Optional[str] = None
        self._cancel_requested = False

    @property
    def parallel(self) -> bool:
        return len(self.providers) > 1

    def cancel(self) -> None:
        """Stop the batch; units not yet translated stay pending. Call from the loop's thread."""
        self._cancel_requested = True
        self._stop_reason = CANCELLED
        for task in self._tasks:
            if not task.done():
                task.cancel()

    async def run(self, units: Iterable[TranslationUnit], title: str = "") -> DispatchResult:
        """Translate ``units`` as one batch. A cancel() only affects the current or next run."""
        try:
            return await self._run(units, title)
        finally:
            self._cancel_requested = False

    async def _run(self, units: Iterable[TranslationUnit], title: str) -> DispatchResult:
        outcomes = [UnitOutcome(unit=unit) for unit in units]
        self._first_error = None
        self._queue = None
        if not self._cancel_requested:
            self._stop_reason = None
        self.progress.set_providers(self.providers)

        if not outcomes:
            return DispatchResult(DispatchStatus.SKIPPED, 0, NO_UNITS, title)

        if self._cancel_requested:
            return self._result(outcomes, title)

        if self.parallel:
            logger.info(
                f"Dispatching {len(outcomes)} units to {len(self.providers)} providers "
                f"(reassign_on_failure={self.reassign_on_failure})"
            )
            self._queue = WorkQueue(outcomes)
            workers = [self._parallel_worker(provider, self._queue) for provider in self.providers]
        else:
            logger.info(f"Dispatching {len(outcomes)} units to provider '{self.providers[0].id}' (serial)")
            workers = [self._serial_worker(self.providers[0], outcomes)]

        await self._run_workers(workers)
        return self._result(outcomes, title)

    async def _run_workers(self, workers) -> None:
        self._tasks = [asyncio.ensure_future(worker) for worker in workers]
        try:
            done, pending = await asyncio.wait(
                self._tasks, timeout=self.timeout, return_when=asyncio.FIRST_EXCEPTION
            )
        except asyncio.CancelledError:
            await self._cancel_tasks(self._tasks)
            raise

        error = next(
            (task.exception() for task in done if not task.cancelled() and task.exception() is not None),
            None,
        )
        if pending:
            await self._cancel_tasks(pending)
            if error is None and self._stop_reason is None:
                self._stop_reason = f"Dispatch timed out after {self.timeout}s"
                logger.warning(self._stop_reason)
        self._tasks = []
        if error is not None:
            raise error

    @staticmethod
    async def _cancel_tasks(tasks) -> None:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _serial_worker(self, provider: Provider, outcomes: List[UnitOutcome]) -> None:
        self.progress.record_provider_progress(provider.id, total=len(outcomes))
        for outcome in outcomes:
            if not await self._translate(provider, outcome):
                return

    async def _parallel_worker(self, provider: Provider, queue: WorkQueue) -> None:
        while True:
            outcome = await queue.pop()
            if outcome is None:
                return
            self.progress.record_provider_progress(provider.id, total=1)

            if await self._translate(provider, outcome):
                await queue.complete()
                continue

            if self.reassign_on_failure:
                outcome.status = UnitStatus.PENDING
                await queue.push_back(outcome)
                self._log(f"[{provider.name}] retired after failure, unit returned to the queue")
                return

            await queue.complete()
            await queue.abort()
            self._log(f"[{provider.name}] failed, aborting batch")
            return

    async def _translate(self, provider: Provider, outcome: UnitOutcome) -> bool:
        """Send one unit; record the outcome. True on success."""
        try:
            translation = await self.client.send(
                outcome.unit.text,
                provider,
                self.system_prompt,
                rate_limiter=self.rate_limiter,
            )
        except TranslationError as e:
            reason = str(e)
            logger.warning(f"Provider '{provider.id}' failed ({e.code}): {reason}")
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.exception(f"Unexpected error from provider '{provider.id}'")
        else:
            outcome.status = UnitStatus.DONE
            outcome.translation = translation
            outcome.provider_id = provider.id
            outcome.error = None
            self.progress.record_provider_progress(provider.id, done=1)
            self.progress.record_unit_done()
            self._deliver(provider, outcome)
            return True

        outcome.status = UnitStatus.FAILED
        outcome.provider_id = provider.id
        outcome.error = reason
        if self._first_error is None:
            self._first_error = reason
        self.progress.record_provider_progress(provider.id, failed=1, last_error=reason)
        return False

    def _deliver(self, provider: Provider, outcome: UnitOutcome) -> None:
        """Hand a translated unit to the sink. A failing sink never stops the batch."""
        if not self.on_unit_translated:
            return
        try:
            self.on_unit_translated(outcome)
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"
            logger.exception(f"Translated-unit callback failed for provider '{provider.id}'")
            self.progress.record_provider_progress(provider.id, last_error=reason)
            self.progress.append_log(f"[{provider.name}] callback failed: {reason}")

    def _log(self, message: str) -> None:
        logger.info(message)
        self.progress.append_log(message)

    def _result(self, outcomes: List[UnitOutcome], title: str) -> DispatchResult:
        count = sum(1 for outcome in outcomes if outcome.status == UnitStatus.DONE)

        if self._stop_reason:
            reason = self._stop_reason
        elif self.parallel and self.reassign_on_failure:
            reason = None
            if self._queue is not None and len(self._queue) > 0:
                reason = ALL_PROVIDERS_FAILED
                if self._first_error:
                    reason = f"{ALL_PROVIDERS_FAILED} (first error: {self._first_error})"
        else:
            reason = self._first_error

        result = build_result(count, reason, title, first_error=self._first_error, outcomes=outcomes)
        logger.info(f"Dispatch finished: {result.status.value} ({count}/{len(outcomes)} units){' - ' + reason if reason else ''}")
        return result

def finish_status(results: Iterable[DispatchResult]) -> str:
    """Final status line for a session."""
    if any(result.status in (DispatchStatus.FAILED, DispatchStatus.PARTIAL) for result in results):
        return "Done (partial failures)"
    return "Done"


async def dispatch(
    units: Iterable[TranslationUnit],
    providers: Sequence[Provider],
    client: Optional[TranslationClient] = None,
    system_prompt: str = "",
    reassign_on_failure: bool = False,
    on_unit_translated: Optional[Callable[[UnitOutcome], None]] = None,
    on_provider_progress: Optional[Callable[[List[ProviderProgress]], None]] = None,
    on_log: Optional[Callable[[str], None]] = None,
    rate_limiter: Optional[RateLimiter] = None,
    timeout: Optional[float] = None,
    title: str = "",
) -> DispatchResult:
    """
    Translate one batch of units and report through plain callbacks.

    A TranslationClient is created (and closed) when none is given.
    """
    units = list(units)
    progress = ProgressAggregator(on_provider_progress=on_provider_progress, on_log=on_log)
    progress.start_batch(len(units))

    owns_client = client is None
    client = client or TranslationClient()
    try:
        dispatcher = Dispatcher(
            providers,
            client,
            system_prompt=system_prompt,
            reassign_on_failure=reassign_on_failure,
            rate_limiter=rate_limiter,
            progress=progress,
            on_unit_translated=on_unit_translated,
            timeout=timeout,
        )
        result = await dispatcher.run(units, title=title)
    finally:
        if owns_client:
            await client.aclose()

    progress.finish_batch(finish_status([result]))
    return result
