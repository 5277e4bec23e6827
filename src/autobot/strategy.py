# strategy.py
# Planning capability: objective → Plan, and execution state → next step.
#
# A Strategy holds configuration only. Everything it knows about a running
# mission arrives in the StrategyState snapshot it is handed, so identical
# snapshots lead to equivalent decisions.

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autobot.errors import MachineOutputParseError, MemoryUnavailableError, ModelError, PlanningError
from autobot.machine import Machine, from_manual
from autobot.memory import Memory
from autobot.model import Model
from autobot.models import COMMON_FORMATS, FormatDescription, Manual, Milestone, Plan
from autobot.steps import CompleteStep, FailedStep, StepInput, StepState

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Manuals for the default strategy's own machines
# ---------------------------------------------------------------------------

PLANNING_MANUAL = Manual(
    summary="Breaks an objective down into an ordered list of milestones.",
    instruction=(
        "Decompose the objective into the smallest ordered set of milestones that, "
        "completed in order, accomplish it. Each milestone needs a short name and a "
        "self-contained objective that restates enough of the goal to be worked alone. "
        "Nest sub-milestones only when a milestone is too large to finish in one step."
    ),
    input=FormatDescription(
        format=COMMON_FORMATS["JSON"],
        typedef='{"objective": string}',
        semantics="the top-level objective to plan",
    ),
    output=FormatDescription(
        format=COMMON_FORMATS["JSON"],
        typedef='Array<{"name": string, "objective": string, "milestones"?: Array<...>}>',
        semantics="the milestones in the order they should be worked",
        example='[{"name": "Draft", "objective": "Draft a haiku about the ocean."}]',
    ),
)

WORKER_MANUAL = Manual(
    summary="Accomplishes a single milestone of a larger objective.",
    instruction=(
        "Accomplish the milestone. Use the context and the results of earlier "
        "milestones where they help. Return the finished work, not a description of it."
    ),
    input=FormatDescription(
        format=COMMON_FORMATS["JSON"],
        typedef='{"objective": string, "milestone": string, "context": string, "prior_results": unknown[]}',
        semantics="the overall objective, the milestone to accomplish now, retrieved context, "
        "and the outputs of milestones already completed",
    ),
    output=FormatDescription(
        format=COMMON_FORMATS["JSON"],
        typedef='{"result": string}',
        semantics="the work product for the milestone",
        example='{"result": "Waves fold on the shore"}',
    ),
)

SELECTOR_MANUAL = Manual(
    summary="Chooses which tool, if any, should carry out a milestone.",
    instruction=(
        "Decide whether one of the listed tools can accomplish the milestone directly. "
        "If one can, give its index and the exact input it needs, matching that tool's "
        "input type definition. If none fits, answer with a null tool."
    ),
    input=FormatDescription(
        format=COMMON_FORMATS["JSON"],
        typedef='{"milestone": string, "context": string, "tools": Array<{"index": number, '
        '"summary": string, "input_typedef": string, "input_semantics": string}>}',
        semantics="the milestone to accomplish and the tools available",
    ),
    output=FormatDescription(
        format=COMMON_FORMATS["JSON"],
        typedef='{"tool": number | null, "input": unknown}',
        semantics="the chosen tool index and its input, or a null tool",
        example='{"tool": 0, "input": {"query": "ocean haiku examples"}}',
    ),
)


# ---------------------------------------------------------------------------
# State snapshot
# ---------------------------------------------------------------------------


class StrategyState(BaseModel):
    """Read-only view of a mission handed to Strategy.get_next_step."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    objective: str
    model: Model
    memories: tuple[Memory, ...] = ()
    tools: tuple[Machine, ...] = ()
    history: tuple[StepState, ...] = ()
    plan: Plan
    current_milestone: Milestone | None = None

    def steps_for(self, milestone_id: str) -> list[StepState]:
        return [s for s in self.history if s.step.milestone_id == milestone_id]

    def attempts(self, milestone_id: str) -> int:
        """Number of failed steps recorded against a milestone."""
        return sum(1 for s in self.steps_for(milestone_id) if isinstance(s, FailedStep))


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class Strategy(ABC):
    @abstractmethod
    async def create_plan(
        self,
        objective: str,
        milestones: Sequence[str] | Sequence[Milestone] | None = None,
        *,
        model: Model,
    ) -> Plan:
        """
        Decompose `objective` into a Plan, honouring milestone seeds if given.

        Raises PlanningError if the objective is empty or the planner cannot
        produce a usable plan.
        """

    @abstractmethod
    async def get_next_step(self, state: StrategyState) -> StepInput | None:
        """
        Decide the next step for the mission described by `state`.

        Returns None when no milestone remains actionable. Raising is reserved
        for genuine failures of the strategy itself.
        """


# ---------------------------------------------------------------------------
# Default model-backed strategy
# ---------------------------------------------------------------------------


class _DraftMilestone(BaseModel):
    name: str = Field(..., min_length=1)
    objective: str = Field(..., min_length=1)
    milestones: list["_DraftMilestone"] = Field(default_factory=list)


def _build_milestones(drafts: list[_DraftMilestone], prefix: str = "") -> tuple[Milestone, ...]:
    return tuple(
        Milestone(
            id=f"{prefix}{index}",
            name=draft.name,
            objective=draft.objective,
            milestones=_build_milestones(draft.milestones, prefix=f"{prefix}{index}."),
        )
        for index, draft in enumerate(drafts, start=1)
    )


class ModelStrategy(Strategy):
    """
    Plans with the mission's model and works milestones in depth-first order.

    Each actionable (leaf) milestone is attempted until a step for it
    completes. A failed step is retried as-is until `max_attempts` failures
    have been recorded for the milestone, after which the milestone is
    skipped. When tools with manuals are available, the model is asked to
    pick one per milestone; otherwise a worker machine synthesized from
    `worker_manual` does the work.
    """

    def __init__(self, max_attempts: int = 3, worker_manual: Manual = WORKER_MANUAL) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        self.max_attempts = max_attempts
        self.worker_manual = worker_manual

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    async def create_plan(
        self,
        objective: str,
        milestones: Sequence[str] | Sequence[Milestone] | None = None,
        *,
        model: Model,
    ) -> Plan:
        if not objective or not objective.strip():
            raise PlanningError("Cannot plan an empty objective.")

        if milestones:
            return self._plan_from_seeds(objective, milestones)

        planner = from_manual(PLANNING_MANUAL, model)
        try:
            raw = await planner.run({"objective": objective})
        except MachineOutputParseError as exc:
            raise PlanningError(f"Planner reply was not a milestone list: {exc}") from exc
        except Exception as exc:
            raise PlanningError(f"Planner could not be reached: {exc}") from exc

        # Some models wrap the list in an object.
        if isinstance(raw, dict) and "milestones" in raw:
            raw = raw["milestones"]

        try:
            drafts = [_DraftMilestone.model_validate(item) for item in raw]
        except (TypeError, ValidationError) as exc:
            raise PlanningError(f"Planner returned malformed milestones: {exc}") from exc

        if not drafts:
            raise PlanningError("Planner returned no milestones.")

        plan = Plan(milestones=_build_milestones(drafts))
        logger.info("Planned %d milestone(s) for %r.", len(plan.actionable()), objective)
        return plan

    def _plan_from_seeds(self, objective: str, seeds: Sequence[str] | Sequence[Milestone]) -> Plan:
        if all(isinstance(seed, Milestone) for seed in seeds):
            try:
                return Plan(milestones=tuple(seeds))
            except ValidationError as exc:
                raise PlanningError(f"Seeded milestones do not form a valid plan: {exc}") from exc

        if not all(isinstance(seed, str) and seed.strip() for seed in seeds):
            raise PlanningError("Milestone seeds must be all non-empty names or all Milestones.")

        return Plan(
            milestones=tuple(
                Milestone(id=str(index), name=name, objective=f"{name} (in service of: {objective})")
                for index, name in enumerate(seeds, start=1)
            )
        )

    # ------------------------------------------------------------------
    # Step selection
    # ------------------------------------------------------------------

    async def get_next_step(self, state: StrategyState) -> StepInput | None:
        for milestone in state.plan.actionable():
            steps = state.steps_for(milestone.id)
            if any(isinstance(s, CompleteStep) for s in steps):
                continue

            if state.attempts(milestone.id) >= self.max_attempts:
                logger.debug("Milestone %s exhausted %d attempts; skipping.", milestone.id, self.max_attempts)
                continue

            if steps and isinstance(steps[-1], FailedStep):
                logger.info(
                    "Retrying milestone %s (attempt %d of %d).",
                    milestone.id,
                    state.attempts(milestone.id) + 1,
                    self.max_attempts,
                )
                return steps[-1].step

            return await self._fresh_step(state, milestone)

        return None

    async def _fresh_step(self, state: StrategyState, milestone: Milestone) -> StepInput:
        context = await self._recall(state.memories, milestone.objective)

        tool_step = await self._select_tool(state, milestone, context)
        if tool_step is not None:
            return tool_step

        prior_results = [s.output for s in state.history if isinstance(s, CompleteStep)]
        return StepInput(
            machine=from_manual(self.worker_manual, state.model),
            input={
                "objective": state.objective,
                "milestone": milestone.objective,
                "context": context,
                "prior_results": prior_results,
            },
            milestone_id=milestone.id,
        )

    async def _recall(self, memories: Sequence[Memory], query: str) -> str:
        found: list[str] = []
        for memory in memories:
            try:
                result = await memory.search(query)
            except MemoryUnavailableError as exc:
                logger.warning("Skipping memory %r: %s", memory.get_purpose(), exc)
                continue
            if result:
                found.append(f"[{memory.get_purpose()}]\n{result}")
        return "\n\n".join(found)

    async def _select_tool(self, state: StrategyState, milestone: Milestone, context: str) -> StepInput | None:
        tools = [tool for tool in state.tools if tool.manual is not None]
        if not tools:
            return None

        selector = from_manual(SELECTOR_MANUAL, state.model)
        listing = [
            {
                "index": index,
                "summary": tool.manual.summary,
                "input_typedef": tool.manual.input.typedef,
                "input_semantics": tool.manual.input.semantics,
            }
            for index, tool in enumerate(tools)
        ]
        try:
            choice = await selector.run({"milestone": milestone.objective, "context": context, "tools": listing})
        except (MachineOutputParseError, ModelError) as exc:
            logger.warning("Tool selector unusable, using worker instead: %s", exc)
            return None

        index = _chosen_index(choice, len(tools))
        if index is None:
            return None

        logger.info("Milestone %s routed to tool %r.", milestone.id, tools[index])
        return StepInput(machine=tools[index], input=choice.get("input"), milestone_id=milestone.id)


def _chosen_index(choice: Any, count: int) -> int | None:
    if not isinstance(choice, dict):
        return None
    index = choice.get("tool")
    # bool is an int subclass; reject it explicitly.
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < count:
        return None
    return index
