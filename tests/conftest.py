import json
from collections.abc import Callable

import pytest

from autobot.bot import Autobot, Brain
from autobot.machine import DELIMITER
from autobot.model import Model
from autobot.models import Cost, Prediction


class ScriptedModel(Model):
    """
    Deterministic stand-in for a chat model.

    Replies come from `respond(prompt)` when given, otherwise from `replies`
    in order. A reply that is an exception instance is raised instead.
    Every call costs `cost`, billed at `rate` dollars per token.
    """

    def __init__(
        self,
        replies: list[str | Exception] | None = None,
        respond: Callable[[str], str | Exception] | None = None,
        cost: Cost = Cost(input_tokens=100, output_tokens=50),
        rate: float = 0.0001,
    ) -> None:
        self.replies = list(replies or [])
        self.respond = respond
        self.cost = cost
        self.rate = rate
        self.prompts: list[str] = []

    async def predict(self, prompt: str) -> Prediction:
        self.prompts.append(prompt)
        reply = self.respond(prompt) if self.respond else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return Prediction(output=reply, cost=self.cost)

    def cost_in_dollars(self, cost: Cost) -> float:
        return (cost.input_tokens + cost.output_tokens) * self.rate


class EchoModel(Model):
    """Identity predictor: answers with the JSON input embedded in a manual prompt."""

    async def predict(self, prompt: str) -> Prediction:
        payload = prompt.rsplit(DELIMITER, 2)[-2]
        return Prediction(output=payload, cost=Cost())

    def cost_in_dollars(self, cost: Cost) -> float:
        return 0.0


def haiku_responder(prompt: str) -> str:
    """Plans one milestone and completes it with a haiku."""
    if "Decompose the objective" in prompt:
        return json.dumps(
            [{"name": "Compose", "objective": "Write a haiku about the ocean in three lines of 5-7-5."}]
        )
    if "Accomplish the milestone" in prompt:
        return '```json\n{"result": "Salt wind on the tide / waves fold their white hands and bow / the shore keeps no prints"}\n```'
    raise AssertionError(f"Unexpected prompt: {prompt[:80]}")


@pytest.fixture
def haiku_model() -> ScriptedModel:
    return ScriptedModel(respond=haiku_responder)


@pytest.fixture
def autobot(haiku_model) -> Autobot:
    return Autobot(Brain(model=haiku_model))
