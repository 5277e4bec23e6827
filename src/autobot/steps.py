# steps.py
# Step lifecycle records.
#
# StepState is a tagged union keyed by `status`. Each variant carries only
# the fields valid in that state, and the only way to reach the next state is
# through the transition method on the current one:
#
#   QueuedStep.activate() → ActiveStep
#   ActiveStep.complete(output) → CompleteStep
#   ActiveStep.fail(error) → FailedStep

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from autobot.machine import Machine


class StepStatus(str, Enum):
    QUEUED = "queued"
    ACTIVE = "active"
    COMPLETE = "complete"
    FAILED = "failed"


class StepInput(BaseModel):
    """One execution attempt: which machine to run, on what, towards which milestone."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    machine: Machine
    input: Any = None
    milestone_id: str | None = None


class _StepRecord(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    step: StepInput


class QueuedStep(_StepRecord):
    status: Literal["queued"] = "queued"

    def activate(self) -> "ActiveStep":
        return ActiveStep(step=self.step)


class ActiveStep(_StepRecord):
    status: Literal["active"] = "active"

    def complete(self, output: Any) -> "CompleteStep":
        return CompleteStep(step=self.step, output=output)

    def fail(self, error: Exception) -> "FailedStep":
        return FailedStep(step=self.step, error=error)


class CompleteStep(_StepRecord):
    status: Literal["complete"] = "complete"
    output: Any = None


class FailedStep(_StepRecord):
    status: Literal["failed"] = "failed"
    error: Exception


StepState = Annotated[
    Union[QueuedStep, ActiveStep, CompleteStep, FailedStep],
    Field(discriminator="status"),
]

TERMINAL_STATUSES = frozenset({StepStatus.COMPLETE.value, StepStatus.FAILED.value})

# Legal successor of each status. Anything else is a bookkeeping bug.
TRANSITIONS: dict[str, frozenset[str]] = {
    StepStatus.QUEUED.value: frozenset({StepStatus.ACTIVE.value}),
    StepStatus.ACTIVE.value: TERMINAL_STATUSES,
    StepStatus.COMPLETE.value: frozenset(),
    StepStatus.FAILED.value: frozenset(),
}


def can_advance(current: QueuedStep | ActiveStep | CompleteStep | FailedStep, successor: Any) -> bool:
    """True if `successor` is a legal next state for the same step as `current`."""
    return successor.status in TRANSITIONS[current.status] and successor.step is current.step
