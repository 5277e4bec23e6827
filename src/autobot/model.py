# model.py
# Predictor capability and cost accounting.
#
# A Model turns a prompt into text plus a token Cost. The mission never looks
# at a raw model: it wraps the brain's model in a MeteredModel so that every
# prediction made on its behalf lands in that mission's CostLedger.

import logging
from abc import ABC, abstractmethod

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, NonNegativeFloat, PositiveInt

from autobot.errors import ModelError, PromptTooLongError
from autobot.models import Cost, Prediction

logger = logging.getLogger(__name__)

# Rough characters-per-token ratio for English prompts; only used to refuse
# prompts that clearly overflow the context window.
_CHARS_PER_TOKEN = 4


class Pricing(BaseModel):
    """Dollar rates per 1K tokens and the context window of one model."""

    model_config = ConfigDict(frozen=True)

    input_per_1k: NonNegativeFloat
    output_per_1k: NonNegativeFloat
    context_window: PositiveInt


PRICING: dict[str, Pricing] = {
    "gpt-3.5-turbo": Pricing(input_per_1k=0.0015, output_per_1k=0.002, context_window=16_385),
    "gpt-4": Pricing(input_per_1k=0.03, output_per_1k=0.06, context_window=8_192),
    "gpt-4o": Pricing(input_per_1k=0.0025, output_per_1k=0.01, context_window=128_000),
    "gpt-4o-mini": Pricing(input_per_1k=0.00015, output_per_1k=0.0006, context_window=128_000),
    "openai/gpt-4o-mini": Pricing(input_per_1k=0.00015, output_per_1k=0.0006, context_window=128_000),
    "anthropic/claude-3.5-haiku": Pricing(input_per_1k=0.0008, output_per_1k=0.004, context_window=200_000),
}


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class Model(ABC):
    """Text generation with cost reporting. Implementations must be safe to share across missions."""

    @abstractmethod
    async def predict(self, prompt: str) -> Prediction:
        """Generate a completion for `prompt`. Never truncates the prompt silently."""

    @abstractmethod
    def cost_in_dollars(self, cost: Cost) -> float:
        """Convert a token Cost produced by this model into dollars."""


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions
# ---------------------------------------------------------------------------


class OpenAIChatModel(Model):
    """
    Chat-completions predictor for any OpenAI-compatible endpoint.

    The prompt is sent as a single user message. Pass `pricing` for models
    missing from PRICING; `client` lets callers share or stub the
    AsyncOpenAI instance.

    Example:
        model = OpenAIChatModel(
            "anthropic/claude-3.5-haiku",
            api_key=settings.api_key,
            base_url="https://openrouter.ai/api/v1",
        )
        prediction = await model.predict("Name three oceans.")
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        base_url: str | None = None,
        pricing: Pricing | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if pricing is None:
            if model not in PRICING:
                raise ValueError(f"No pricing known for model {model!r}; pass pricing explicitly.")
            pricing = PRICING[model]

        self.name = model
        self.pricing = pricing
        self._client = client or AsyncOpenAI(base_url=base_url, api_key=api_key)

    def __repr__(self) -> str:
        return f"OpenAIChatModel({self.name!r})"

    async def predict(self, prompt: str) -> Prediction:
        estimated = len(prompt) // _CHARS_PER_TOKEN
        if estimated > self.pricing.context_window:
            raise PromptTooLongError(
                f"Prompt of ~{estimated} tokens exceeds the {self.pricing.context_window}-token "
                f"context window of {self.name}."
            )

        try:
            response = await self._client.chat.completions.create(
                model=self.name,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as exc:
            raise ModelError(f"{self.name} request failed: {exc}") from exc

        choice = response.choices[0]
        if choice.finish_reason == "length":
            logger.warning("%s stopped at its output token limit; completion is partial.", self.name)

        usage = response.usage
        cost = Cost(
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
        return Prediction(output=(choice.message.content or "").strip(), cost=cost)

    def cost_in_dollars(self, cost: Cost) -> float:
        return (
            cost.input_tokens / 1000 * self.pricing.input_per_1k
            + cost.output_tokens / 1000 * self.pricing.output_per_1k
        )


# ---------------------------------------------------------------------------
# Metering
# ---------------------------------------------------------------------------


class CostLedger:
    """Append-only record of what a mission has spent."""

    def __init__(self) -> None:
        self._charges: list[tuple[Cost, float]] = []

    def charge(self, cost: Cost, dollars: float) -> None:
        self._charges.append((cost, dollars))

    @property
    def charges(self) -> list[tuple[Cost, float]]:
        """Shallow copy of (cost, dollars) pairs in charge order."""
        return list(self._charges)

    @property
    def total_cost(self) -> Cost:
        total = Cost()
        for cost, _ in self._charges:
            total = total + cost
        return total

    @property
    def total_dollars(self) -> float:
        return sum(dollars for _, dollars in self._charges)


class MeteredModel(Model):
    """Wraps a model so every prediction is charged to a ledger."""

    def __init__(self, model: Model, ledger: CostLedger) -> None:
        self.inner = model
        self.ledger = ledger

    def __repr__(self) -> str:
        return f"MeteredModel({self.inner!r})"

    async def predict(self, prompt: str) -> Prediction:
        prediction = await self.inner.predict(prompt)
        dollars = self.inner.cost_in_dollars(prediction.cost)
        self.ledger.charge(prediction.cost, dollars)
        logger.debug(
            "Charged %d in / %d out tokens ($%.6f).",
            prediction.cost.input_tokens,
            prediction.cost.output_tokens,
            dollars,
        )
        return prediction

    def cost_in_dollars(self, cost: Cost) -> float:
        return self.inner.cost_in_dollars(cost)
