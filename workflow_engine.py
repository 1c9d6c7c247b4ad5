"""
Workflow Replay Engine: replays recorded click/type workflows.

Steps run strictly in recorded order on one session. The recorded delay
before each step is scaled by the workflow speed, a failing step is
recorded and skipped over, and the session is kept open for a grace
period after a successful run before it is torn down.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

import replay_config
from browser_driver import SurfaceDriver, SurfaceSession
from replay_errors import InvalidWorkflow, NavigationError, ReplayError, StepError, SurfaceError
from workflow_models import ClickStep, RunResult, StepOutcome, TypeTextStep, Workflow

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def effective_delay_ms(delay_ms: float, speed: float) -> float:
    """Recorded delay scaled by the replay speed, never negative."""
    return max(0.0, delay_ms / speed)


async def close_quietly(session: SurfaceSession) -> None:
    try:
        await session.close()
    except Exception as e:
        logger.warning(f"Error while closing session: {e}")


class TeardownScheduler:
    """
    Closes finished sessions after a grace period.

    Each pending close is an asyncio task, so shutdown() can pre-empt the
    timers and release every session immediately.
    """

    def __init__(self, grace_seconds: float | None = None):
        self.grace_seconds = (
            grace_seconds if grace_seconds is not None else replay_config.TEARDOWN_GRACE_SECONDS
        )
        # Timers still sleeping, and timers whose close is already running
        self._pending: dict[asyncio.Task, SurfaceSession] = {}
        self._closing: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending) + len(self._closing)

    async def schedule(self, session: SurfaceSession) -> None:
        if self.grace_seconds <= 0:
            await close_quietly(session)
            return
        task = asyncio.create_task(self._close_later(session))
        self._pending[task] = session
        task.add_done_callback(self._forget)
        logger.info(f"Session will be closed in {self.grace_seconds:g}s")

    def _forget(self, task: asyncio.Task) -> None:
        self._pending.pop(task, None)
        self._closing.discard(task)

    async def _close_later(self, session: SurfaceSession) -> None:
        await asyncio.sleep(self.grace_seconds)
        # From here on shutdown() waits for this close instead of cancelling it
        task = asyncio.current_task()
        self._pending.pop(task, None)
        self._closing.add(task)
        await close_quietly(session)

    async def drain(self) -> None:
        """Wait until every scheduled close has happened."""
        tasks = [*self._pending, *self._closing]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel the sleeping timers, close their sessions now and wait for running closes."""
        sleeping = list(self._pending.items())
        self._pending.clear()
        for task, _ in sleeping:
            task.cancel()
        await asyncio.gather(*(task for task, _ in sleeping), return_exceptions=True)
        for _, session in sleeping:
            await close_quietly(session)
        if self._closing:
            await asyncio.gather(*list(self._closing), return_exceptions=True)
        if sleeping:
            logger.info(f"Closed {len(sleeping)} session(s) on shutdown")


class WorkflowPlayer:
    """Plays the steps of one workflow against an already navigated session."""

    def __init__(
        self,
        workflow: Workflow,
        session: SurfaceSession,
        base_char_delay_ms: float,
        sleep: Sleep = asyncio.sleep,
    ):
        self.workflow = workflow
        self.session = session
        self.base_char_delay_ms = base_char_delay_ms
        self.sleep = sleep
        self.outcomes: list[StepOutcome] = []
        self.log_lines: list[str] = []

    def _log(self, msg: str, level: int = logging.INFO):
        logger.log(level, msg)
        self.log_lines.append(msg)

    async def play(self) -> list[StepOutcome]:
        """
        Execute every step in order.

        Raises:
            SurfaceError: A coordinate click was rejected by the page. The
                remaining steps are recorded as skipped before raising.
        """
        steps = self.workflow.steps
        for index, step in enumerate(steps):
            delay = effective_delay_ms(step.delay, self.workflow.speed)
            if delay > 0:
                await self.sleep(delay / 1000)

            try:
                outcome = await self._execute_step(index, step)
            except SurfaceError as e:
                self._log(f"[Step {index}] {e}, aborting run", logging.ERROR)
                self.outcomes.append(StepOutcome(index=index, type=step.type, status="failed", reason=str(e)))
                self.outcomes.extend(
                    StepOutcome(index=i, type=s.type, status="skipped", reason="run aborted")
                    for i, s in enumerate(steps[index + 1:], start=index + 1)
                )
                raise
            self.outcomes.append(outcome)
        return self.outcomes

    async def _execute_step(self, index: int, step: ClickStep | TypeTextStep) -> StepOutcome:
        if isinstance(step, ClickStep):
            return await self._click(index, step)
        if isinstance(step, TypeTextStep):
            return await self._type(index, step)
        raise TypeError(f"Unsupported step: {step!r}")

    async def _click(self, index: int, step: ClickStep) -> StepOutcome:
        if step.selector:
            self._log(f"[Step {index}] Click {step.selector}")
            try:
                await self.session.click_element(step.selector)
            except Exception as e:
                return self._failed(index, step, StepError(index, f"click {step.selector} failed: {e}"))
        else:
            x, y = step.locator
            self._log(f"[Step {index}] Click at ({x:g}, {y:g})")
            try:
                await self.session.click_at(x, y)
            except Exception as e:
                raise SurfaceError(f"click at ({x:g}, {y:g}) failed: {e}") from e
        return StepOutcome(index=index, type=step.type, status="executed")

    async def _type(self, index: int, step: TypeTextStep) -> StepOutcome:
        if not step.selector or step.value is None:
            reason = "no selector" if not step.selector else "no text"
            self._log(f"[Step {index}] Type skipped: {reason}")
            return StepOutcome(index=index, type=step.type, status="skipped", reason=reason)

        preview = step.value[:40] + ("..." if len(step.value) > 40 else "")
        self._log(f"[Step {index}] Type '{preview}' into {step.selector}")
        try:
            await self.session.focus_element(step.selector)
            await self.session.type_text(step.value, self.base_char_delay_ms / self.workflow.speed)
        except Exception as e:
            return self._failed(index, step, StepError(index, f"type into {step.selector} failed: {e}"))
        return StepOutcome(index=index, type=step.type, status="executed")

    def _failed(self, index: int, step: ClickStep | TypeTextStep, error: StepError) -> StepOutcome:
        self._log(f"  {error}", logging.WARNING)
        return StepOutcome(index=index, type=step.type, status="failed", reason=str(error))


class ReplayEngine:
    """
    Replays workflows against sessions opened from a driver.

    The engine keeps no state between replay() calls apart from the
    teardown timers of finished sessions, so concurrent calls are safe
    as long as the driver hands out independent sessions.
    """

    def __init__(
        self,
        driver: SurfaceDriver,
        teardown: Optional[TeardownScheduler] = None,
        base_char_delay_ms: float | None = None,
        max_failed_ratio: float | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.driver = driver
        self.teardown = teardown or TeardownScheduler()
        self.base_char_delay_ms = (
            base_char_delay_ms if base_char_delay_ms is not None else replay_config.BASE_CHAR_DELAY_MS
        )
        self.max_failed_ratio = (
            max_failed_ratio if max_failed_ratio is not None else replay_config.MAX_FAILED_RATIO
        )
        self.sleep = sleep

    async def replay(self, workflow: Workflow | dict) -> RunResult:
        """Run a workflow to completion. Never raises for run-level failures."""
        started = time.monotonic()

        try:
            workflow = self._check(workflow)
        except InvalidWorkflow as e:
            logger.error(f"Invalid workflow: {e}")
            return self._failure(e, started)

        logger.info(f"Starting replay of {len(workflow.steps)} step(s) on {workflow.url} at speed {workflow.speed:g}")

        try:
            session = await self.driver.open_session()
        except Exception as e:
            logger.error(f"Could not open session: {e}")
            return self._failure(NavigationError(f"could not open session: {e}"), started)

        try:
            await session.navigate(workflow.url)
        except Exception as e:
            logger.error(f"Navigation to {workflow.url} failed: {e}")
            await close_quietly(session)
            return self._failure(NavigationError(f"navigation to {workflow.url} failed: {e}"), started)

        player = WorkflowPlayer(workflow, session, self.base_char_delay_ms, self.sleep)
        completed = False
        try:
            outcomes = await player.play()
            completed = True
        except SurfaceError as e:
            return self._failure(e, started, player)
        finally:
            if completed:
                await self.teardown.schedule(session)
            else:
                await close_quietly(session)

        failed = sum(1 for o in outcomes if o.status == "failed")
        if self.max_failed_ratio is not None and failed / len(outcomes) > self.max_failed_ratio:
            error = StepError(-1, f"{failed} of {len(outcomes)} steps failed")
            return self._failure(error, started, player)

        logger.info(f"Replay finished: {len(outcomes) - failed} of {len(outcomes)} step(s) without error")
        return RunResult(
            status="ok",
            steps=outcomes,
            log=player.log_lines,
            duration_seconds=round(time.monotonic() - started, 3),
        )

    @staticmethod
    def _check(workflow: Workflow | dict) -> Workflow:
        if not isinstance(workflow, Workflow):
            return Workflow.from_payload(workflow)
        # Models can be mutated after validation, so check again
        if not workflow.steps:
            raise InvalidWorkflow("steps array is required")
        if not workflow.speed > 0:
            raise InvalidWorkflow(f"speed must be greater than 0, got {workflow.speed}")
        return workflow

    @staticmethod
    def _failure(
        error: ReplayError, started: float, player: Optional[WorkflowPlayer] = None
    ) -> RunResult:
        return RunResult(
            status="failed",
            error=error.kind,
            reason=str(error),
            steps=player.outcomes if player else [],
            log=player.log_lines if player else [],
            duration_seconds=round(time.monotonic() - started, 3),
        )
