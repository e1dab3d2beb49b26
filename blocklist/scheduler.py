"""
scheduler.py - Cron-driven refresh loop with failure backoff

Fires a compilation job on a cron cadence. Policy:

    - The cron expression is validated when the Scheduler is built, never at
      fire time (InvalidSchedule).
    - At most one job runs at a time. A tick arriving while a job is still
      running is skipped and logged.
    - Each failure increments ``consecutive_failures``, each success resets it.
    - Once ``consecutive_failures`` reaches ``max_failures`` every later tick
      is skipped until the process is restarted. A manual run_now() still
      runs, and its success clears the counter.

All mutable bookkeeping lives in SchedulerState so callers can inject and
inspect it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Coroutine

from croniter import croniter

from blocklist.config import DEFAULT_MAX_FAILURES, DEFAULT_SCHEDULE
from blocklist.errors import BlocklistError, InvalidSchedule
from blocklist.log import get_logger

logger = get_logger(__name__)

Job = Callable[[], Awaitable[object]]

#: Seconds shutdown() waits for an in-flight job
DEFAULT_DRAIN_TIMEOUT = 30.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED_BUSY = "skipped_busy"
    SKIPPED_HALTED = "skipped_halted"


@dataclass
class SchedulerState:
    """Bookkeeping of completed runs."""
    consecutive_failures: int = 0
    last_run_at: datetime | None = None
    last_outcome: RunOutcome | None = None
    last_error: str | None = None


def validate_schedule(expression: str) -> str:
    """
    Check a cron expression eagerly.

    Raises:
        InvalidSchedule: The expression cannot be parsed
    """
    try:
        valid = isinstance(expression, str) and croniter.is_valid(expression)
    except (TypeError, ValueError):
        valid = False
    if not valid:
        raise InvalidSchedule(str(expression))
    return expression


class Scheduler:
    """
    Runs ``job`` on each cron tick, one at a time.

    Args:
        job: Coroutine function performing one compilation
        cron_expression: Five-field cron expression
        max_failures: Consecutive failures before ticks are skipped
        state: Pre-existing state to continue from
        clock: Returns the current aware UTC time
    """

    def __init__(
        self,
        job: Job,
        cron_expression: str = DEFAULT_SCHEDULE,
        *,
        max_failures: int = DEFAULT_MAX_FAILURES,
        state: SchedulerState | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.cron_expression = validate_schedule(cron_expression)
        self.job = job
        self.max_failures = max_failures
        self.state = state or SchedulerState()
        self._busy = False
        self._current: asyncio.Task | None = None
        self._loop_task: asyncio.Task | None = None
        self._tasks: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()
        self._clock = clock or _utcnow

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def halted(self) -> bool:
        return self.state.consecutive_failures >= self.max_failures

    def next_fire_time(self, after: datetime | None = None) -> datetime:
        base = after or self._clock()
        return croniter(self.cron_expression, base).get_next(datetime)

    # ------------------------------------------------------------------
    # Running jobs
    # ------------------------------------------------------------------

    async def tick(self) -> RunOutcome:
        """Handle one scheduled fire: skip when busy or halted, otherwise run."""
        if self._busy:
            logger.warning("Previous compilation still running, skipping this tick")
            return RunOutcome.SKIPPED_BUSY
        if self.halted:
            logger.warning(
                "Skipping compilation after %d consecutive failures. "
                "Manual intervention required.",
                self.state.consecutive_failures,
            )
            return RunOutcome.SKIPPED_HALTED
        logger.info("Running scheduled blocklist update...")
        return await self._run()

    async def run_now(self) -> RunOutcome:
        """Run the job immediately (manual refresh), ignoring the failure limit."""
        if self._busy:
            logger.warning("Compilation already running, manual refresh skipped")
            return RunOutcome.SKIPPED_BUSY
        logger.info("Running manual blocklist update...")
        return await self._run()

    async def _run(self) -> RunOutcome:
        self._busy = True
        self.state.last_run_at = self._clock()
        self._current = asyncio.ensure_future(self.job())
        try:
            await self._current
        except BlocklistError as e:
            return self._record_failure(e)
        except Exception as e:
            logger.exception("Unexpected error during compilation")
            return self._record_failure(e)
        finally:
            self._busy = False
            self._current = None

        self.state.consecutive_failures = 0
        self.state.last_outcome = RunOutcome.SUCCESS
        self.state.last_error = None
        logger.info("Blocklist update completed successfully")
        return RunOutcome.SUCCESS

    def _record_failure(self, error: Exception) -> RunOutcome:
        self.state.consecutive_failures += 1
        self.state.last_outcome = RunOutcome.FAILURE
        self.state.last_error = str(error)
        logger.error(
            "Blocklist update failed (%d consecutive): %s",
            self.state.consecutive_failures, error,
        )
        if self.halted:
            logger.error(
                "Reached maximum consecutive failures (%d). "
                "Scheduler will stop attempting compilations.",
                self.max_failures,
            )
        return RunOutcome.FAILURE

    # ------------------------------------------------------------------
    # Loop lifecycle
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[object, object, RunOutcome], name: str) -> asyncio.Task:
        # Held in _tasks so the loop keeps a strong reference until done
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def start(self, *, run_immediately: bool = False) -> asyncio.Task:
        """
        Start the cron loop on the running event loop.

        Args:
            run_immediately: Also fire one out-of-band run right away,
                without waiting for it

        Returns:
            The loop task
        """
        if self._loop_task is not None and not self._loop_task.done():
            raise RuntimeError("Scheduler already started")
        self._stopping.clear()
        logger.info("Starting scheduler with schedule: %s", self.cron_expression)
        if run_immediately:
            self._spawn(self.run_now(), "blocklist-initial-compile")
        self._loop_task = asyncio.create_task(self._loop(), name="blocklist-scheduler")
        return self._loop_task

    async def _loop(self) -> None:
        fire_at = self.next_fire_time()
        while not self._stopping.is_set():
            delay = max(0.0, (fire_at - self._clock()).total_seconds())
            logger.debug("Next compilation at %s", fire_at.isoformat())
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass
            # Fire without awaiting so a slow run does not shift the cadence
            self._spawn(self.tick(), "blocklist-tick")
            # Advance from the slot just fired; an early wakeup must not
            # yield the same slot again, a late one skips missed slots
            fire_at = self.next_fire_time(max(fire_at, self._clock()))

    async def stop(self, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT) -> None:
        """Stop the loop and wait up to ``drain_timeout`` for in-flight runs."""
        self._stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        pending = {task for task in self._tasks if not task.done()}
        if self._current is not None and not self._current.done():
            pending.add(self._current)
        if pending:
            logger.info("Waiting up to %.0fs for in-flight compilation", drain_timeout)
            _, pending = await asyncio.wait(pending, timeout=drain_timeout)
        if pending:
            logger.warning("In-flight compilation did not finish, cancelling it")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Scheduler stopped")
