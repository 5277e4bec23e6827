# bot.py
# Wiring: the Brain bundles shared capabilities, the Autobot turns objectives
# into Missions. No orchestration logic lives here.

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from autobot.machine import Machine
from autobot.memory import Memory
from autobot.mission import Mission
from autobot.model import Model
from autobot.models import MissionOptions
from autobot.strategy import ModelStrategy, Strategy

logger = logging.getLogger(__name__)


class Brain(BaseModel):
    """The model, memories and strategy available to every mission of an Autobot."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    model: Model
    memories: tuple[Memory, ...] = ()
    strategy: Strategy = Field(default_factory=ModelStrategy)


class Autobot:
    """
    Mission factory.

    Example:
        bot = Autobot(Brain(model=model), tools=builtin_tools("./workspace"))
        mission = bot.mobilize("Write a haiku about the ocean", {"budget_in_dollars": 1.0})
        await mission.execute()
    """

    def __init__(
        self,
        brain: Brain,
        tools: Sequence[Machine] = (),
        default_budget_in_dollars: float | None = None,
    ) -> None:
        self.brain = brain
        self.tools = tuple(tools)
        self.default_budget_in_dollars = default_budget_in_dollars

    def mobilize(self, objective: str, options: MissionOptions | Mapping[str, Any] | None = None) -> Mission:
        """
        Build a fresh, queued Mission for `objective`.

        `options` may be a MissionOptions or a plain mapping of its fields.
        Without a budget (here or as the Autobot default) the mission may
        spend without limit, which is logged as a warning.
        """
        options = MissionOptions.model_validate(options or {})
        if options.budget_in_dollars is None and self.default_budget_in_dollars is not None:
            options = options.model_copy(update={"budget_in_dollars": self.default_budget_in_dollars})

        mission = Mission(objective, brain=self.brain, tools=self.tools, options=options)
        if options.budget_in_dollars is None:
            logger.warning("[%s] Mobilized without a budget; spend is unconstrained.", mission.id)
        else:
            logger.info("[%s] Mobilized with a $%.2f budget.", mission.id, options.budget_in_dollars)
        return mission
