import pytest
from pydantic import ValidationError

from autobot.models import Cost, FormatDescription, Manual, Milestone, MissionOptions, Plan


def _tree() -> Plan:
    return Plan(
        milestones=(
            Milestone(
                id="1",
                name="Research",
                objective="Research oceans",
                milestones=(
                    Milestone(id="1.1", name="Tides", objective="Read about tides"),
                    Milestone(id="1.2", name="Waves", objective="Read about waves"),
                ),
            ),
            Milestone(id="2", name="Write", objective="Write the haiku"),
        )
    )


# ---------------------------------------------------------------------------
# Plan structure
# ---------------------------------------------------------------------------


def test_plan_walk_is_depth_first_preorder():
    assert [m.id for m in _tree().walk()] == ["1", "1.1", "1.2", "2"]


def test_plan_actionable_returns_leaves_in_order():
    assert [m.id for m in _tree().actionable()] == ["1.1", "1.2", "2"]


def test_plan_find():
    plan = _tree()
    assert plan.find("1.2").name == "Waves"
    assert plan.find("9") is None


def test_plan_rejects_duplicate_ids_across_levels():
    with pytest.raises(ValidationError, match="Duplicate milestone id"):
        Plan(
            milestones=(
                Milestone(id="1", name="a", objective="a", milestones=(Milestone(id="2", name="b", objective="b"),)),
                Milestone(id="2", name="c", objective="c"),
            )
        )


def test_plan_requires_at_least_one_milestone():
    with pytest.raises(ValidationError):
        Plan(milestones=())


def test_plan_is_immutable():
    plan = _tree()
    with pytest.raises(ValidationError):
        plan.milestones = ()


# ---------------------------------------------------------------------------
# Cost and options
# ---------------------------------------------------------------------------


def test_cost_addition():
    total = Cost(input_tokens=10, output_tokens=2) + Cost(input_tokens=5, output_tokens=1)
    assert total == Cost(input_tokens=15, output_tokens=3)


def test_cost_rejects_negative_tokens():
    with pytest.raises(ValidationError):
        Cost(input_tokens=-1)


def test_mission_options_accepts_names_or_milestones():
    assert MissionOptions(milestones=["a", "b"]).milestones == ("a", "b")

    seeded = MissionOptions(milestones=[Milestone(id="x", name="x", objective="x")])
    assert isinstance(seeded.milestones[0], Milestone)


def test_mission_options_rejects_negative_budget():
    with pytest.raises(ValidationError):
        MissionOptions(budget_in_dollars=-1)


def test_manual_example_defaults_empty():
    manual = Manual(
        summary="Capitalizes words.",
        instruction="Capitalize each word.",
        input=FormatDescription(format="text", typedef="string", semantics="words"),
        output=FormatDescription(format="text", typedef="string", semantics="capitalized words"),
    )
    assert manual.output.example == ""
