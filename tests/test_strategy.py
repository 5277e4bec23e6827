import json

import pytest

from autobot.bot import Autobot, Brain
from autobot.errors import MemoryUnavailableError, ModelError, PlanningError, PromptTooLongError
from autobot.machine import PromptMachine, SimpleMachine
from autobot.memory import KeywordMemory
from autobot.mission import MissionStatus
from autobot.models import FormatDescription, Manual, Milestone, Plan
from autobot.steps import QueuedStep, StepInput
from autobot.strategy import WORKER_MANUAL, ModelStrategy, StrategyState
from conftest import ScriptedModel, haiku_responder

OBJECTIVE = "Write a haiku about the ocean"

PLAN = Plan(
    milestones=(
        Milestone(id="1", name="Research", objective="Collect ocean imagery"),
        Milestone(id="2", name="Write", objective="Write the haiku"),
    )
)


def _state(model=None, history=(), memories=(), tools=(), plan=PLAN) -> StrategyState:
    return StrategyState(
        objective=OBJECTIVE,
        model=model or ScriptedModel(),
        memories=memories,
        tools=tools,
        history=history,
        plan=plan,
        current_milestone=plan.actionable()[0],
    )


def _complete(step: StepInput, output="done"):
    return QueuedStep(step=step).activate().complete(output)


def _failed(step: StepInput, error=None):
    return QueuedStep(step=step).activate().fail(error or RuntimeError("nope"))


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("objective", ["", "   "])
async def test_create_plan_rejects_empty_objective(objective):
    with pytest.raises(PlanningError, match="empty"):
        await ModelStrategy().create_plan(objective, model=ScriptedModel())


@pytest.mark.asyncio
async def test_create_plan_from_named_seeds_skips_the_model():
    model = ScriptedModel()
    plan = await ModelStrategy().create_plan(OBJECTIVE, ["Research", "Write"], model=model)

    assert [(m.id, m.name) for m in plan.milestones] == [("1", "Research"), ("2", "Write")]
    assert all(OBJECTIVE in m.objective for m in plan.milestones)
    assert model.prompts == []


@pytest.mark.asyncio
async def test_create_plan_uses_prebuilt_milestones_as_given():
    plan = await ModelStrategy().create_plan(OBJECTIVE, PLAN.milestones, model=ScriptedModel())
    assert plan == PLAN


@pytest.mark.asyncio
async def test_create_plan_rejects_duplicate_seed_ids():
    seeds = [Milestone(id="1", name="a", objective="a"), Milestone(id="1", name="b", objective="b")]
    with pytest.raises(PlanningError, match="valid plan"):
        await ModelStrategy().create_plan(OBJECTIVE, seeds, model=ScriptedModel())


@pytest.mark.asyncio
async def test_create_plan_builds_hierarchical_ids_from_model_reply():
    reply = json.dumps(
        {
            "milestones": [
                {
                    "name": "Research",
                    "objective": "Research the ocean for a haiku",
                    "milestones": [
                        {"name": "Sounds", "objective": "List ocean sounds"},
                        {"name": "Colours", "objective": "List ocean colours"},
                    ],
                },
                {"name": "Write", "objective": "Write a haiku about the ocean"},
            ]
        }
    )
    model = ScriptedModel(replies=[reply])

    plan = await ModelStrategy().create_plan(OBJECTIVE, model=model)

    assert [m.id for m in plan.walk()] == ["1", "1.1", "1.2", "2"]
    assert OBJECTIVE in model.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "reply",
    [
        "I would start by researching.",
        "[]",
        '[{"name": "no objective"}]',
        "42",
    ],
)
async def test_create_plan_rejects_unusable_replies(reply):
    with pytest.raises(PlanningError):
        await ModelStrategy().create_plan(OBJECTIVE, model=ScriptedModel(replies=[reply]))


@pytest.mark.asyncio
async def test_create_plan_unreachable_model_is_planning_error():
    with pytest.raises(PlanningError, match="could not be reached") as excinfo:
        await ModelStrategy().create_plan(OBJECTIVE, model=ScriptedModel(replies=[ModelError("down")]))
    assert isinstance(excinfo.value.__cause__, ModelError)


# ---------------------------------------------------------------------------
# Step selection
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_step_targets_first_milestone_with_worker():
    model = ScriptedModel()
    step = await ModelStrategy().get_next_step(_state(model=model))

    assert step.milestone_id == "1"
    assert isinstance(step.machine, PromptMachine)
    assert step.machine.manual is WORKER_MANUAL
    assert step.machine.model is model
    assert step.input == {
        "objective": OBJECTIVE,
        "milestone": "Collect ocean imagery",
        "context": "",
        "prior_results": [],
    }


@pytest.mark.asyncio
async def test_completed_milestone_advances_and_passes_prior_results():
    first = StepInput(machine=SimpleMachine(str), input="x", milestone_id="1")
    step = await ModelStrategy().get_next_step(_state(history=(_complete(first, "imagery"),)))

    assert step.milestone_id == "2"
    assert step.input["prior_results"] == ["imagery"]


@pytest.mark.asyncio
async def test_failed_step_is_retried_as_is():
    first = StepInput(machine=SimpleMachine(str), input="x", milestone_id="1")
    step = await ModelStrategy(max_attempts=2).get_next_step(_state(history=(_failed(first),)))
    assert step is first


@pytest.mark.asyncio
async def test_milestone_is_skipped_after_max_attempts():
    first = StepInput(machine=SimpleMachine(str), input="x", milestone_id="1")
    history = (_failed(first), _failed(first))

    step = await ModelStrategy(max_attempts=2).get_next_step(_state(history=history))
    assert step.milestone_id == "2"


@pytest.mark.asyncio
async def test_no_further_work_is_signalled_with_none():
    done = [StepInput(machine=SimpleMachine(str), input=m.id, milestone_id=m.id) for m in PLAN.actionable()]
    history = (_complete(done[0]), _failed(done[1]))

    assert await ModelStrategy(max_attempts=1).get_next_step(_state(history=history)) is None


@pytest.mark.asyncio
async def test_identical_snapshots_yield_equivalent_steps():
    state = _state()
    strategy = ModelStrategy()
    first, second = await strategy.get_next_step(state), await strategy.get_next_step(state)
    assert first.input == second.input
    assert first.milestone_id == second.milestone_id


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        ModelStrategy(max_attempts=0)


# ---------------------------------------------------------------------------
# Memories
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_unavailable_memory_is_skipped_not_propagated():
    down = KeywordMemory("Broken store", notes=["ocean imagery"])
    down.available = False
    up = KeywordMemory("Ocean facts", notes=["Ocean imagery: foam, salt, gulls."])

    step = await ModelStrategy().get_next_step(_state(memories=(down, up)))

    assert step.input["context"] == "[Ocean facts]\nOcean imagery: foam, salt, gulls."


@pytest.mark.asyncio
async def test_unavailable_memory_error_is_absorbed():
    class Offline(KeywordMemory):
        async def search(self, query):
            raise MemoryUnavailableError("offline")

    step = await ModelStrategy().get_next_step(_state(memories=(Offline("offline"),)))
    assert step.input["context"] == ""


# ---------------------------------------------------------------------------
# Tool routing
# ---------------------------------------------------------------------------

ECHO_MANUAL = Manual(
    summary="Repeats a message verbatim.",
    instruction="Repeat the message.",
    input=FormatDescription(format="JSON", typedef='{"message": string}', semantics="the message"),
    output=FormatDescription(format="text", typedef="string", semantics="the message"),
)


@pytest.mark.asyncio
async def test_selector_routes_milestone_to_tool():
    echo = SimpleMachine(lambda args: args["message"], manual=ECHO_MANUAL)
    model = ScriptedModel(replies=['{"tool": 0, "input": {"message": "foam"}}'])

    step = await ModelStrategy().get_next_step(_state(model=model, tools=(echo,)))

    assert step.machine is echo
    assert step.input == {"message": "foam"}
    assert step.milestone_id == "1"
    assert ECHO_MANUAL.summary in model.prompts[0]


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ['{"tool": null}', '{"tool": 5}', '{"tool": true}', "no idea"])
async def test_selector_decline_or_garbage_falls_back_to_worker(reply):
    echo = SimpleMachine(lambda args: args, manual=ECHO_MANUAL)
    model = ScriptedModel(replies=[reply])

    step = await ModelStrategy().get_next_step(_state(model=model, tools=(echo,)))

    assert step.machine.manual is WORKER_MANUAL


@pytest.mark.asyncio
async def test_tools_without_manuals_are_not_offered():
    model = ScriptedModel()
    step = await ModelStrategy().get_next_step(_state(model=model, tools=(SimpleMachine(str),)))

    assert step.machine.manual is WORKER_MANUAL
    assert model.prompts == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ModelError("selector endpoint down"), PromptTooLongError("selector prompt too long")])
async def test_selector_model_failure_falls_back_to_worker(error):
    echo = SimpleMachine(lambda args: args, manual=ECHO_MANUAL)
    model = ScriptedModel(replies=[error])

    step = await ModelStrategy().get_next_step(_state(model=model, tools=(echo,)))

    assert step.machine.manual is WORKER_MANUAL
    assert len(model.prompts) == 1


@pytest.mark.asyncio
async def test_mission_completes_through_worker_when_selector_is_down():
    def respond(prompt: str):
        if "Decide whether one of the listed tools" in prompt:
            return ModelError("selector endpoint down")
        return haiku_responder(prompt)

    echo = SimpleMachine(lambda args: args["message"], manual=ECHO_MANUAL)
    mission = Autobot(Brain(model=ScriptedModel(respond=respond)), tools=(echo,)).mobilize("Write a haiku about the ocean")

    await mission.execute()

    assert mission.status is MissionStatus.COMPLETE
    assert len(mission.history) == 1
    assert mission.history[0].step.machine.manual is WORKER_MANUAL
