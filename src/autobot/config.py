# config.py
# Process configuration. Read once at the edge (the CLI) and passed down
# explicitly — nothing else in the package reads the environment.

import os
from collections.abc import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, Field, NonNegativeFloat, PositiveInt, model_validator

from autobot.model import PRICING, Pricing

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Environment variable → Settings field. The first API key variable present wins.
_ENV_FIELDS = {
    "AUTOBOT_BASE_URL": "base_url",
    "AUTOBOT_MODEL": "model",
    "AUTOBOT_BUDGET": "budget_in_dollars",
    "AUTOBOT_MAX_ATTEMPTS": "max_attempts",
    "AUTOBOT_LOG_LEVEL": "log_level",
    "AUTOBOT_WORKSPACE": "workspace",
    "AUTOBOT_INPUT_PER_1K": "input_per_1k",
    "AUTOBOT_OUTPUT_PER_1K": "output_per_1k",
    "AUTOBOT_CONTEXT_WINDOW": "context_window",
}
_API_KEY_VARS = ("AUTOBOT_API_KEY", "OPENROUTER_API_KEY", "OPENAI_API_KEY")


class Settings(BaseModel):
    """Everything needed to wire a model, a brain and an autobot."""

    api_key: str | None = Field(default=None, repr=False)
    base_url: str = OPENROUTER_BASE_URL
    model: str = "anthropic/claude-3.5-haiku"
    budget_in_dollars: NonNegativeFloat | None = None
    max_attempts: PositiveInt = 3
    log_level: str = "INFO"
    workspace: str = "./workspace"
    # Rates for models missing from the PRICING table. All three or none.
    input_per_1k: NonNegativeFloat | None = None
    output_per_1k: NonNegativeFloat | None = None
    context_window: PositiveInt | None = None

    @model_validator(mode="after")
    def _pricing_is_complete(self) -> "Settings":
        rates = (self.input_per_1k, self.output_per_1k, self.context_window)
        if any(rate is None for rate in rates) and not all(rate is None for rate in rates):
            raise ValueError("input_per_1k, output_per_1k and context_window must be set together.")
        return self

    def pricing(self) -> Pricing | None:
        """Configured pricing, or None to use the PRICING table entry for the model."""
        if self.context_window is None:
            if self.model not in PRICING:
                raise ValueError(
                    f"No pricing known for model {self.model!r}; configure input_per_1k, "
                    "output_per_1k and context_window."
                )
            return None
        return Pricing(
            input_per_1k=self.input_per_1k,
            output_per_1k=self.output_per_1k,
            context_window=self.context_window,
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        With no explicit mapping, a .env file in the working directory is
        loaded first and os.environ is used. Empty variables count as unset.
        """
        if env is None:
            load_dotenv()
            env = os.environ

        values: dict[str, str] = {}
        for var, field in _ENV_FIELDS.items():
            if env.get(var):
                values[field] = env[var]

        for var in _API_KEY_VARS:
            if env.get(var):
                values["api_key"] = env[var]
                break

        return cls.model_validate(values)
