# run.py
# Entry point. Config and wiring only — no logic lives here.
#
# Any OpenAI-compatible endpoint works; the default is OpenRouter.
# https://openrouter.ai/models

import argparse
import asyncio
import sys

from autobot import display
from autobot.bot import Autobot, Brain
from autobot.config import Settings
from autobot.errors import AutobotError
from autobot.model import OpenAIChatModel, Pricing
from autobot.strategy import ModelStrategy
from autobot.tools import builtin_tools


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="autobot", description="Plan and execute an objective.")
    parser.add_argument("objective", help="What the mission should accomplish.")
    parser.add_argument("--budget", type=float, default=None, help="Spending ceiling in dollars.")
    parser.add_argument(
        "--milestone",
        action="append",
        dest="milestones",
        default=None,
        help="Seed a milestone by name (repeatable). Skips model planning.",
    )
    parser.add_argument("--model", default=None, help="Model name, overriding AUTOBOT_MODEL.")
    parser.add_argument("--max-attempts", type=int, default=None, help="Failed attempts allowed per milestone.")
    # Pricing for models missing from the PRICING table.
    parser.add_argument("--input-per-1k", type=float, default=None, help="Input dollars per 1K tokens.")
    parser.add_argument("--output-per-1k", type=float, default=None, help="Output dollars per 1K tokens.")
    parser.add_argument("--context-window", type=int, default=None, help="Context window in tokens.")
    parser.add_argument("--log-level", default=None, help="Logging level, overriding AUTOBOT_LOG_LEVEL.")
    parser.add_argument("--no-tools", action="store_true", help="Do not offer built-in tools to the strategy.")
    return parser


async def _mobilize_and_execute(args: argparse.Namespace, settings: Settings, pricing: Pricing | None) -> int:
    model = OpenAIChatModel(settings.model, api_key=settings.api_key, base_url=settings.base_url, pricing=pricing)
    brain = Brain(model=model, strategy=ModelStrategy(max_attempts=settings.max_attempts))
    tools = () if args.no_tools else tuple(builtin_tools(settings.workspace).values())
    autobot = Autobot(brain, tools=tools, default_budget_in_dollars=settings.budget_in_dollars)

    mission = autobot.mobilize(args.objective, {"budget_in_dollars": args.budget, "milestones": args.milestones})
    display.banner(settings.model, mission.options.budget_in_dollars)
    display.objective_received(args.objective)
    display.attach(mission)

    try:
        await mission.execute()
    except AutobotError:
        # Already rendered by the on_fail listener.
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides = {
        key: value
        for key, value in (
            ("model", args.model),
            ("max_attempts", args.max_attempts),
            ("log_level", args.log_level),
            ("input_per_1k", args.input_per_1k),
            ("output_per_1k", args.output_per_1k),
            ("context_window", args.context_window),
        )
        if value is not None
    }
    try:
        settings = Settings.model_validate({**Settings.from_env().model_dump(), **overrides})
        pricing = settings.pricing()
    except ValueError as exc:  # pydantic ValidationError included
        parser.error(str(exc))

    display.configure_logging(settings.log_level)
    return asyncio.run(_mobilize_and_execute(args, settings, pricing))


if __name__ == "__main__":
    sys.exit(main())
