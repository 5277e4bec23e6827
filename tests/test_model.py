from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from openai import OpenAIError

from autobot.errors import ModelError, PromptTooLongError
from autobot.model import PRICING, CostLedger, MeteredModel, OpenAIChatModel, Pricing
from autobot.models import Cost
from conftest import ScriptedModel


def _completion(content: str, prompt_tokens: int = 12, completion_tokens: int = 7, finish_reason: str = "stop"):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _client(**kwargs) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(**kwargs)
    return client


# ---------------------------------------------------------------------------
# OpenAIChatModel
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_openai_model_reports_output_and_token_cost():
    client = _client(return_value=_completion("  Pacific  "))
    model = OpenAIChatModel("gpt-4o-mini", client=client)

    prediction = await model.predict("Name an ocean.")

    assert prediction.output == "Pacific"
    assert prediction.cost == Cost(input_tokens=12, output_tokens=7)
    client.chat.completions.create.assert_awaited_once_with(
        model="gpt-4o-mini", messages=[{"role": "user", "content": "Name an ocean."}]
    )


@pytest.mark.asyncio
async def test_openai_model_wraps_transport_errors():
    model = OpenAIChatModel("gpt-4o-mini", client=_client(side_effect=OpenAIError("connection refused")))

    with pytest.raises(ModelError, match="connection refused"):
        await model.predict("hi")


@pytest.mark.asyncio
async def test_openai_model_refuses_oversized_prompt_instead_of_truncating():
    client = _client(return_value=_completion("never"))
    model = OpenAIChatModel(
        "tiny",
        pricing=Pricing(input_per_1k=0.0, output_per_1k=0.0, context_window=10),
        client=client,
    )

    with pytest.raises(PromptTooLongError):
        await model.predict("x" * 1000)
    client.chat.completions.create.assert_not_awaited()


def test_openai_model_requires_known_pricing():
    with pytest.raises(ValueError, match="No pricing"):
        OpenAIChatModel("mystery-model", client=MagicMock())


def test_openai_model_cost_in_dollars():
    model = OpenAIChatModel("gpt-4", client=MagicMock())
    dollars = model.cost_in_dollars(Cost(input_tokens=1000, output_tokens=500))
    assert dollars == pytest.approx(PRICING["gpt-4"].input_per_1k + PRICING["gpt-4"].output_per_1k / 2)


# ---------------------------------------------------------------------------
# Metering
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_metered_model_charges_every_prediction():
    inner = ScriptedModel(replies=["a", "b"], cost=Cost(input_tokens=10, output_tokens=5), rate=0.01)
    ledger = CostLedger()
    metered = MeteredModel(inner, ledger)

    await metered.predict("one")
    await metered.predict("two")

    assert len(ledger.charges) == 2
    assert ledger.total_cost == Cost(input_tokens=20, output_tokens=10)
    assert ledger.total_dollars == pytest.approx(0.30)


@pytest.mark.asyncio
async def test_metered_model_does_not_charge_failed_predictions():
    ledger = CostLedger()
    metered = MeteredModel(ScriptedModel(replies=[ModelError("down")]), ledger)

    with pytest.raises(ModelError):
        await metered.predict("x")
    assert ledger.total_dollars == 0
