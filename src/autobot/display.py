# display.py
# All terminal output for autobot missions.
#
# This module owns presentation entirely. Mission code never formats
# strings for humans — display functions are subscribed to mission channels
# via attach(). Swap this file to change the entire UI.
#
# Colour language:
#   cyan    — planning and routing
#   magenta — step internals (machine / input / output)
#   green   — success / confirmed
#   red     — failures and halts
#   yellow  — spend and budget

import json
import logging
from typing import Any

from pydantic_core import to_jsonable_python
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from autobot.mission import Mission
from autobot.models import Milestone, Plan
from autobot.steps import CompleteStep, FailedStep, StepState

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _label(tag: str, color: str) -> Text:
    t = Text()
    t.append(f" {tag} ", style=f"bold white on {color}")
    return t


def _mono(value: Any, max_len: int = 120) -> str:
    if not isinstance(value, str):
        value = json.dumps(to_jsonable_python(value, fallback=repr), ensure_ascii=False)
    if len(value) > max_len:
        return value[:max_len] + "…"
    return value


def configure_logging(level: str = "INFO") -> None:
    """Route stdlib logging through rich, sharing the display console."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


# ---------------------------------------------------------------------------
# Mission entry
# ---------------------------------------------------------------------------


def banner(model: str, budget_in_dollars: float | None) -> None:
    budget = "[red]unconstrained[/red]" if budget_in_dollars is None else f"${budget_in_dollars:.2f}"
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]Autobot[/bold cyan]\n"
            "[dim]Objective → Plan → Steps, one machine at a time[/dim]\n\n"
            f"[dim]Model  :[/dim] [white]{model}[/white]\n"
            f"[dim]Budget :[/dim] [white]{budget}[/white]",
            border_style="cyan",
            padding=(1, 4),
        )
    )


def objective_received(objective: str) -> None:
    console.print()
    console.print(Rule("[cyan]NEW MISSION[/cyan]", style="cyan"))
    console.print(
        Panel(
            f"[white]{objective}[/white]",
            title=_label("OBJECTIVE", "cyan"),
            border_style="cyan",
            padding=(0, 2),
        )
    )


# ---------------------------------------------------------------------------
# Plan display
# ---------------------------------------------------------------------------


def _add_milestones(node: Tree, milestones: tuple[Milestone, ...]) -> None:
    for milestone in milestones:
        child = node.add(
            f"[bold white]{milestone.id}[/bold white] [cyan]{milestone.name}[/cyan]  "
            f"[dim]{milestone.objective}[/dim]"
        )
        _add_milestones(child, milestone.milestones)


def plan_created(plan: Plan) -> None:
    tree = Tree("[bold cyan]Plan[/bold cyan]")
    _add_milestones(tree, plan.milestones)
    console.print()
    console.print(
        Panel(
            tree,
            title=_label("PLAN", "cyan"),
            subtitle=f"[dim]{len(plan.actionable())} actionable milestone(s)[/dim]",
            border_style="cyan",
            padding=(0, 1),
        )
    )


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def step_finished(number: int, step: StepState) -> None:
    console.print()
    console.print(
        f"[bold cyan]  STEP {number}[/bold cyan]  [white]{step.step.machine!r}[/white]"
        f"  [dim]milestone {step.step.milestone_id or '-'}[/dim]"
    )
    console.print(f"  [magenta]Input[/magenta]    [dim]{_mono(step.step.input, 140)}[/dim]")
    if isinstance(step, CompleteStep):
        console.print(f"  [bold green]✓ Output[/bold green] [white]{_mono(step.output, 140)}[/white]")
    elif isinstance(step, FailedStep):
        console.print(
            f"  [bold red]✗ Failed[/bold red] [white]{type(step.error).__name__}: {_mono(str(step.error), 140)}[/white]"
        )


# ---------------------------------------------------------------------------
# Terminal states
# ---------------------------------------------------------------------------


def execution_summary(mission: Mission) -> None:
    table = Table(
        box=box.SIMPLE_HEAVY,
        border_style="dim",
        show_header=True,
        header_style="bold dim",
        padding=(0, 1),
    )
    table.add_column("Step", justify="center", width=6)
    table.add_column("Milestone", width=10)
    table.add_column("Status", justify="center", width=10)
    table.add_column("Result", style="dim white")

    for number, step in enumerate(mission.history, start=1):
        if isinstance(step, CompleteStep):
            status, result = "[bold green]✓[/bold green]", _mono(step.output, 60)
        elif isinstance(step, FailedStep):
            status, result = "[bold red]✗[/bold red]", _mono(str(step.error), 60)
        else:
            status, result = step.status, ""
        table.add_row(str(number), step.step.milestone_id or "-", status, result)

    cost = mission.cost
    console.print()
    console.print(
        Panel(
            table,
            title="[dim]EXECUTION SUMMARY[/dim]",
            subtitle=(
                f"[yellow]${mission.spent_in_dollars:.4f}[/yellow] "
                f"[dim]({cost.input_tokens} in / {cost.output_tokens} out tokens)[/dim]"
            ),
            border_style="dim",
            padding=(0, 1),
        )
    )


def mission_complete(mission: Mission) -> None:
    execution_summary(mission)
    console.print(
        Panel(
            f"[bold green]Mission {mission.id} complete.[/bold green]",
            title=_label("COMPLETE", "green"),
            border_style="green",
            padding=(0, 2),
        )
    )
    console.print()


def halt(mission: Mission, error: Exception) -> None:
    execution_summary(mission)
    console.print(
        Panel(
            f"[bold white]{type(error).__name__}: {error}[/bold white]",
            title=_label("HALT", "red"),
            border_style="red",
            padding=(0, 2),
        )
    )
    console.print()


def attach(mission: Mission) -> None:
    """Subscribe the terminal renderer to every channel of `mission`."""
    steps_seen = 0

    def on_step(step: StepState) -> None:
        nonlocal steps_seen
        steps_seen += 1
        step_finished(steps_seen, step)

    mission.on_plan.subscribe(plan_created)
    mission.on_step.subscribe(on_step)
    mission.on_complete.subscribe(lambda: mission_complete(mission))
    mission.on_fail.subscribe(lambda error: halt(mission, error))
