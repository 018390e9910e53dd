"""
Replay runner - walks the timeline, waits for each entry's moment and hands it
to the dispatcher.

States: IDLE -> RUNNING -> COMPLETED | ABORTED.

One request is in flight at a time unless tie concurrency is switched on, in
which case entries sharing an offset are sent together and joined before the
next offset. A failed request never stops the run; only cancellation does.
"""

import asyncio
import logging
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx

from logreplay import metrics
from logreplay.clock import Clock, SystemClock
from logreplay.dispatcher import Dispatcher, TargetConfig
from logreplay.entry import AccessEntry
from logreplay.errors import ReplayError
from logreplay.outcome import Failed, FailureKind, ReplayOutcome, Skipped, SkipReason
from logreplay.timeline import ScheduledEntry, Timeline

logger = logging.getLogger(__name__)

DispatchFn = Callable[[AccessEntry, int], Awaitable[ReplayOutcome]]
OutcomeCallback = Callable[[int, ReplayOutcome], None]


class RunState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class CancellationToken:
    """Cooperative cancellation shared between the runner and whoever stops it."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class RunnerConfig:
    """
    concurrent_ties: send entries with identical offsets concurrently.
    max_concurrency: cap on requests in flight within one tie group.
    max_retries: extra attempts after a transport error (timeouts are not retried).
    retry_backoff: seconds to wait before each retry.
    """

    concurrent_ties: bool = False
    max_concurrency: int = 8
    max_retries: int = 0
    retry_backoff: float = 0.5

    def __post_init__(self):
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff cannot be negative")


class Runner:
    def __init__(
        self,
        timeline: Timeline,
        dispatch: DispatchFn,
        cancel: Optional[CancellationToken] = None,
        config: Optional[RunnerConfig] = None,
        clock: Optional[Clock] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ):
        self.timeline = timeline
        self.config = config or RunnerConfig()
        self.cancel = cancel or CancellationToken()
        self.clock = clock or SystemClock()
        self.on_outcome = on_outcome
        self.state = RunState.IDLE
        self._dispatch = dispatch
        self._slots: List[Optional[ReplayOutcome]] = [None] * len(timeline)
        self._recorded = 0
        self._start = 0.0

    @property
    def outcomes(self) -> Tuple[ReplayOutcome, ...]:
        """Outcomes recorded so far, in timeline order."""
        return tuple(o for o in self._slots[: self._recorded] if o is not None)

    async def run(self) -> Tuple[ReplayOutcome, ...]:
        """
        Replay the whole timeline.

        Returns:
            One outcome per entry, in timeline order. After cancellation the
            entries that were not sent are Skipped(CANCELLED).
        """
        if self.state is not RunState.IDLE:
            raise ReplayError(f"runner cannot start from state {self.state.value}")

        self.state = RunState.RUNNING
        self._start = self.clock.monotonic()
        logger.info("Replay started: %d entries over %s", len(self.timeline), self.timeline.duration)

        try:
            await self._play()
        except asyncio.CancelledError:
            self._skip_remaining()
            self.state = RunState.ABORTED
            raise
        except Exception:
            self._skip_remaining()
            self.state = RunState.ABORTED
            logger.exception("Replay aborted by an unexpected error")
            raise

        if self.cancel.cancelled:
            self._skip_remaining()
            self.state = RunState.ABORTED
            logger.info("Replay aborted after %d of %d entries", self._sent_count(), len(self.timeline))
        else:
            self.state = RunState.COMPLETED
            logger.info("Replay completed: %d entries", len(self.timeline))
        return self.outcomes

    async def _play(self) -> None:
        for offset, group in self.timeline.groups():
            if not await self._wait_until(offset.total_seconds()):
                return
            if self.config.concurrent_ties and len(group) > 1:
                await self._run_group(group)
            else:
                for position, item in group:
                    if self.cancel.cancelled:
                        return
                    self._observe_lag(item)
                    self._record(position, await self._attempt(item))
            if self.cancel.cancelled:
                return

    async def _wait_until(self, offset_seconds: float) -> bool:
        """Sleep until start + offset. False if cancelled first."""
        if self.cancel.cancelled:
            return False
        delay = self._start + offset_seconds - self.clock.monotonic()
        if delay <= 0:
            return True
        logger.debug("Waiting %.3fs for next entry", delay)
        finished, _ = await self._race(self.clock.sleep(delay))
        return finished

    async def _race(self, awaitable) -> Tuple[bool, object]:
        """Await `awaitable` unless cancellation comes first; then abandon it."""
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return True, task.result()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        return False, None

    async def _attempt(self, item: ScheduledEntry) -> ReplayOutcome:
        dispatched_at = self.clock.now()
        attempts = 0
        while True:
            attempts += 1
            finished, outcome = await self._race(self._dispatch(item.entry, item.index))
            if not finished:
                logger.info("Request for entry %d abandoned on cancellation", item.index)
                return ReplayOutcome(item.index, Skipped(SkipReason.CANCELLED), dispatched_at, None, attempts)
            if not self._should_retry(outcome, attempts):
                break
            logger.info("Retrying entry %d (attempt %d): %s", item.index, attempts + 1, outcome.status.detail)
            if self.config.retry_backoff:
                finished, _ = await self._race(self.clock.sleep(self.config.retry_backoff))
                if not finished:
                    break
        if attempts > 1:
            outcome = ReplayOutcome(outcome.index, outcome.status, outcome.dispatched_at, outcome.latency, attempts)
        return outcome

    def _should_retry(self, outcome: ReplayOutcome, attempts: int) -> bool:
        return (
            isinstance(outcome.status, Failed)
            and outcome.status.kind is FailureKind.TRANSPORT_ERROR
            and attempts <= self.config.max_retries
            and not self.cancel.cancelled
        )

    def _observe_lag(self, item: ScheduledEntry) -> None:
        """Seconds between the entry's scheduled moment and its actual send."""
        due = self._start + item.offset.total_seconds()
        metrics.observe_lag(self.clock.monotonic() - due)

    async def _run_group(self, group: List[Tuple[int, ScheduledEntry]]) -> None:
        semaphore = asyncio.Semaphore(self.config.max_concurrency)

        async def send(item: ScheduledEntry) -> ReplayOutcome:
            async with semaphore:
                if self.cancel.cancelled:
                    return ReplayOutcome(item.index, Skipped(SkipReason.CANCELLED))
                self._observe_lag(item)
                return await self._attempt(item)

        logger.debug("Sending %d tied entries concurrently", len(group))
        tasks = [asyncio.ensure_future(send(item)) for _, item in group]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            # one send failed or we were cancelled; stop the rest of the group
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            for (position, _), task in zip(group, tasks):
                if not task.cancelled() and task.exception() is None:
                    self._record(position, task.result())
            raise
        for (position, _), outcome in zip(group, results):
            self._record(position, outcome)

    def _record(self, position: int, outcome: ReplayOutcome) -> None:
        self._slots[position] = outcome
        self._recorded = max(self._recorded, position + 1)
        metrics.observe_outcome(outcome)
        if self.on_outcome is not None:
            self.on_outcome(position, outcome)

    def _skip_remaining(self) -> None:
        for position, item in enumerate(self.timeline):
            if self._slots[position] is None:
                self._record(position, ReplayOutcome(item.index, Skipped(SkipReason.CANCELLED)))

    def _sent_count(self) -> int:
        return sum(1 for o in self._slots if o is not None and o.dispatched_at is not None)


async def run(
    timeline: Timeline,
    target: TargetConfig,
    cancel: Optional[CancellationToken] = None,
    config: Optional[RunnerConfig] = None,
    clock: Optional[Clock] = None,
    on_outcome: Optional[OutcomeCallback] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Runner:
    """
    Replay `timeline` against `target` and return the finished runner.

    The runner's `state` tells COMPLETED from ABORTED; `outcomes` holds one
    outcome per entry.
    """
    clock = clock or SystemClock()
    async with Dispatcher(target, clock=clock, transport=transport) as dispatcher:
        runner = Runner(
            timeline,
            dispatcher.dispatch,
            cancel=cancel,
            config=config,
            clock=clock,
            on_outcome=on_outcome,
        )
        await runner.run()
    return runner
