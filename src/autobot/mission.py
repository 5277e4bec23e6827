# mission.py
# The mission state machine. This class owns all control flow, step
# history, spending and event emission. Strategies decide, machines compute;
# neither touches mission state directly.
#
# Control flow:
#   plan() → Strategy.create_plan → on_plan
#   execute() → loop {
#       cancellation + budget checkpoint
#       → Strategy.get_next_step(snapshot)  (None → Complete)
#       → queued → active → Machine.run → complete | failed → on_step
#       → budget checkpoint
#   }
#
#   Queued ──plan()──▶ Queued ──execute()──▶ Active ──▶ Complete | Failed

import asyncio
import logging
import uuid
from collections.abc import Callable, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from autobot.errors import BudgetExceededError, CancelledError, InvalidStateError, PlanningError
from autobot.machine import Machine
from autobot.model import CostLedger, MeteredModel
from autobot.models import Cost, Milestone, MissionOptions, Plan
from autobot.steps import QueuedStep, StepInput, StepState, can_advance
from autobot.strategy import StrategyState

if TYPE_CHECKING:
    from autobot.bot import Brain

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MissionStatus(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Event channels
# ---------------------------------------------------------------------------


class Channel(Generic[T]):
    """
    Synchronous, ordered fan-out for one kind of mission event.

    Listeners run in subscription order. A listener that raises is logged and
    skipped; it cannot stop delivery to the others or alter the mission.
    Once closed, a channel refuses to publish.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Callable[..., Any]] = []
        self._closed = False

    def subscribe(self, listener: Callable[..., Any]) -> Callable[[], None]:
        """Register `listener`; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, *payload: Any) -> None:
        if self._closed:
            raise InvalidStateError(f"Cannot publish on closed {self.name!r} channel.")
        for listener in list(self._listeners):
            try:
                listener(*payload)
            except Exception:
                logger.exception("%s listener %r raised; ignoring.", self.name, listener)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed


# ---------------------------------------------------------------------------
# Mission
# ---------------------------------------------------------------------------


class Mission:
    """
    Drives one objective from planning to a terminal state.

    Missions are single-use: once Complete or Failed they refuse every
    further operation. Subscribe to `on_plan`, `on_step`, `on_complete` and
    `on_fail` before calling plan()/execute() to observe progress.

    Example:
        mission = autobot.mobilize("Write a haiku about the ocean", {"budget_in_dollars": 1.0})
        mission.on_step.subscribe(lambda step: print(step.status))
        await mission.execute()
    """

    def __init__(
        self,
        objective: str,
        brain: "Brain",
        tools: Sequence[Machine] = (),
        options: MissionOptions | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex[:8]
        self.objective = objective
        self.options = options or MissionOptions()

        self._brain = brain
        self._tools = tuple(tools)
        self._ledger = CostLedger()
        self._model = MeteredModel(brain.model, self._ledger)

        self._status = MissionStatus.QUEUED
        self._plan: Plan | None = None
        self._history: list[StepState] = []
        self._milestone_id: str | None = None
        self._error: Exception | None = None
        self._running = False
        self._cancel_reason: str | None = None
        self._done = asyncio.Event()

        self.on_plan: Channel[Plan] = Channel("plan")
        self.on_step: Channel[StepState] = Channel("step")
        self.on_complete: Channel[None] = Channel("complete")
        self.on_fail: Channel[Exception] = Channel("fail")

    def __repr__(self) -> str:
        return f"Mission({self.id}, {self._status.value}, {self.objective!r})"

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def status(self) -> MissionStatus:
        return self._status

    @property
    def current_plan(self) -> Plan | None:
        return self._plan

    @property
    def history(self) -> tuple[StepState, ...]:
        return tuple(self._history)

    @property
    def current_milestone(self) -> Milestone | None:
        if self._plan is None or self._milestone_id is None:
            return None
        return self._plan.find(self._milestone_id)

    @property
    def cost(self) -> Cost:
        return self._ledger.total_cost

    @property
    def spent_in_dollars(self) -> float:
        return self._ledger.total_dollars

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def is_terminal(self) -> bool:
        return self._status in (MissionStatus.COMPLETE, MissionStatus.FAILED)

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def plan(self) -> Plan:
        """
        Ask the strategy for a plan and publish it.

        Valid once, while Queued. Re-planning is not supported. Any planning
        failure fails the mission and is re-raised as PlanningError.
        """
        if self._status is not MissionStatus.QUEUED or self._plan is not None or self._running:
            raise InvalidStateError(f"Mission {self.id} cannot plan while {self._status.value}.")

        self._running = True
        try:
            return await self._make_plan()
        finally:
            self._running = False

    async def _make_plan(self) -> Plan:
        logger.info("[%s] Planning %r.", self.id, self.objective)
        try:
            plan = await self._brain.strategy.create_plan(
                self.objective, self.options.milestones, model=self._model
            )
            if not isinstance(plan, Plan):
                raise PlanningError(f"Strategy returned {type(plan).__name__}, not a Plan.")
            self._check_cancelled()
        except (PlanningError, CancelledError) as exc:
            self._fail(exc)
            raise
        except asyncio.CancelledError:
            self._fail(CancelledError("Mission task was cancelled while planning."))
            raise
        except Exception as exc:
            error = PlanningError(f"Strategy failed to plan: {exc}")
            self._fail(error)
            raise error from exc

        self._plan = plan
        self._milestone_id = plan.actionable()[0].id
        logger.info("[%s] Plan ready with %d milestone(s).", self.id, len(plan.actionable()))
        self.on_plan.publish(plan)
        return plan

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self) -> None:
        """
        Run steps until the strategy runs out of work or a fatal error occurs.

        Plans first if plan() has not been called. Resolves when the mission
        completes; raises the triggering error when it fails.
        """
        if self._status is not MissionStatus.QUEUED or self._running:
            raise InvalidStateError(f"Mission {self.id} cannot execute while {self._status.value}.")

        self._running = True
        try:
            if self._plan is None:
                await self._make_plan()
            await self._run()
        finally:
            self._running = False

    async def _run(self) -> None:
        self._status = MissionStatus.ACTIVE
        logger.info("[%s] Executing (budget: %s).", self.id, _format_budget(self.options.budget_in_dollars))

        try:
            while True:
                self._checkpoint()
                step = await self._next_step()
                if step is None:
                    break
                self._checkpoint()
                await self._run_step(step)
                self._check_budget()
        except asyncio.CancelledError:
            self._fail(CancelledError("Mission task was cancelled."))
            raise
        except Exception as exc:
            self._fail(exc)
            raise

        self._complete()

    def _snapshot(self) -> StrategyState:
        return StrategyState(
            objective=self.objective,
            model=self._model,
            memories=tuple(self._brain.memories),
            tools=self._tools,
            history=tuple(self._history),
            plan=self._plan,
            current_milestone=self.current_milestone,
        )

    async def _next_step(self) -> StepInput | None:
        try:
            step = await self._brain.strategy.get_next_step(self._snapshot())
        except PlanningError:
            raise
        except Exception as exc:
            raise PlanningError(f"Strategy failed to choose a step: {exc}") from exc

        if step is None:
            return None
        if not isinstance(step, StepInput):
            raise PlanningError(f"Strategy returned {type(step).__name__}, not a StepInput.")
        if step.milestone_id is not None:
            if self._plan.find(step.milestone_id) is None:
                raise PlanningError(f"Strategy chose unknown milestone {step.milestone_id!r}.")
            self._milestone_id = step.milestone_id
        return step

    async def _run_step(self, step: StepInput) -> None:
        queued = QueuedStep(step=step)
        self._history.append(queued)
        active = queued.activate()
        self._advance(active)

        number = len(self._history)
        logger.info("[%s] Step %d: %r (milestone %s).", self.id, number, step.machine, step.milestone_id)
        try:
            output = await step.machine.run(step.input)
        except Exception as exc:
            logger.warning("[%s] Step %d failed: %s: %s", self.id, number, type(exc).__name__, exc)
            self._advance(active.fail(exc))
        else:
            self._advance(active.complete(output))

        self.on_step.publish(self._history[-1])

    def _advance(self, successor: StepState) -> None:
        current = self._history[-1]
        if not can_advance(current, successor):
            raise InvalidStateError(f"Illegal step transition {current.status} → {successor.status}.")
        self._history[-1] = successor

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def _checkpoint(self) -> None:
        self._check_cancelled()
        self._check_budget()

    def _check_cancelled(self) -> None:
        if self._cancel_reason is not None:
            raise CancelledError(self._cancel_reason)

    def _check_budget(self) -> None:
        budget = self.options.budget_in_dollars
        spent = self._ledger.total_dollars
        if budget is not None and spent >= budget:
            raise BudgetExceededError(spent=spent, budget=budget)

    # ------------------------------------------------------------------
    # Cancellation and completion
    # ------------------------------------------------------------------

    def cancel(self, reason: str | None = None) -> None:
        """
        Request cooperative cancellation.

        A running mission stops at its next suspension boundary; an in-flight
        machine run is allowed to finish but no further step starts. An idle
        mission fails immediately. Terminal missions are left untouched.
        """
        if self.is_terminal:
            return
        self._cancel_reason = reason or "Mission was cancelled."
        if not self._running:
            self._fail(CancelledError(self._cancel_reason))

    async def completion(self) -> None:
        """
        Wait for a terminal state. Raises the mission's error if it failed.

        This only observes a mission, it never starts one: on a mission that
        nobody executes or cancels it waits forever. Wrap it in
        asyncio.wait_for when the caller needs a deadline.
        """
        await self._done.wait()
        if self._error is not None:
            raise self._error

    def _complete(self) -> None:
        self._status = MissionStatus.COMPLETE
        logger.info(
            "[%s] Complete after %d step(s), $%.4f spent.", self.id, len(self._history), self.spent_in_dollars
        )
        self.on_complete.publish()
        self._close()

    def _fail(self, error: Exception) -> None:
        self._status = MissionStatus.FAILED
        self._error = error
        logger.error("[%s] Failed: %s: %s", self.id, type(error).__name__, error)
        self.on_fail.publish(error)
        self._close()

    def _close(self) -> None:
        for channel in (self.on_plan, self.on_step, self.on_complete, self.on_fail):
            channel.close()
        self._done.set()


def _format_budget(budget: float | None) -> str:
    return "unconstrained" if budget is None else f"${budget:.2f}"
