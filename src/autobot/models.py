# models.py
# Data contracts for mission planning and prompt synthesis.
# No orchestration logic lives here — pure schema and validation.

from collections.abc import Iterator

from pydantic import BaseModel, ConfigDict, Field, NonNegativeFloat, NonNegativeInt, model_validator

COMMON_FORMATS = {
    "NATURAL_LANGUAGE": "Any sentence, paragraph, or article of text in natural language.",
    "CSV": "A comma-separated list of values with each value enclosed in quotation marks.",
    "JSON": "A single well-formed JSON value with no surrounding commentary.",
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Prompt contracts
# ---------------------------------------------------------------------------


class FormatDescription(_Frozen):
    """Shape and meaning of one side (input or output) of a machine."""

    format: str = Field(..., description="How the value is written, e.g. JSON or prose.")
    typedef: str = Field(..., description="Type definition the value must match.")
    semantics: str = Field(..., description="What the value means.")
    example: str = Field(default="", description="A literal example of a valid value.")


class Manual(_Frozen):
    """Declarative contract of a machine, used to synthesize its prompt."""

    summary: str = Field(..., description='Completes the sentence "A machine that..."')
    instruction: str = Field(..., description="Imperative description of the task.")
    input: FormatDescription
    output: FormatDescription


# ---------------------------------------------------------------------------
# Model accounting
# ---------------------------------------------------------------------------


class Cost(_Frozen):
    """Token usage of one or more predictions."""

    input_tokens: NonNegativeInt = 0
    output_tokens: NonNegativeInt = 0

    def __add__(self, other: "Cost") -> "Cost":
        return Cost(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


class Prediction(_Frozen):
    """Generated text plus what it cost to produce."""

    output: str
    cost: Cost = Field(default_factory=Cost)


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


class Milestone(_Frozen):
    """A node in the decomposition of an objective."""

    id: str = Field(..., min_length=1)
    name: str
    objective: str
    milestones: tuple["Milestone", ...] = ()

    def walk(self) -> Iterator["Milestone"]:
        yield self
        for child in self.milestones:
            yield from child.walk()


class Plan(_Frozen):
    """An objective decomposed into a tree of milestones. Never mutated once built."""

    milestones: tuple[Milestone, ...] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _ids_unique_across_tree(self) -> "Plan":
        seen: set[str] = set()
        for milestone in self.walk():
            if milestone.id in seen:
                raise ValueError(f"Duplicate milestone id {milestone.id!r} in plan.")
            seen.add(milestone.id)
        return self

    def walk(self) -> Iterator[Milestone]:
        """Every milestone, depth-first, parents before children."""
        for milestone in self.milestones:
            yield from milestone.walk()

    def actionable(self) -> list[Milestone]:
        """Leaf milestones in execution order. A parent is worked through its children."""
        return [m for m in self.walk() if not m.milestones]

    def find(self, milestone_id: str) -> Milestone | None:
        for milestone in self.walk():
            if milestone.id == milestone_id:
                return milestone
        return None


# ---------------------------------------------------------------------------
# Mission construction
# ---------------------------------------------------------------------------


class MissionOptions(_Frozen):
    """Per-mission knobs handed to Autobot.mobilize."""

    budget_in_dollars: NonNegativeFloat | None = Field(
        default=None, description="Spending ceiling. None means unconstrained."
    )
    milestones: tuple[str, ...] | tuple[Milestone, ...] | None = Field(
        default=None, description="Milestone seeds: plain names or prebuilt milestones."
    )
