# errors.py
# Exception taxonomy for mission orchestration.
#
# Step-level errors (MachineOutputParseError, whatever a machine raises) are
# recorded in the step history and never unwind a mission. PlanningError,
# BudgetExceededError and CancelledError are mission-fatal.


class AutobotError(Exception):
    """Base class for every error raised by autobot itself."""


# ---------------------------------------------------------------------------
# Mission-fatal
# ---------------------------------------------------------------------------


class PlanningError(AutobotError):
    """Raised when an objective cannot be planned or the strategy cannot decide."""


class BudgetExceededError(AutobotError):
    """Raised when cumulative mission spend meets or exceeds the configured budget."""

    def __init__(self, spent: float, budget: float) -> None:
        super().__init__(f"Mission spent ${spent:.4f} against a budget of ${budget:.4f}.")
        self.spent = spent
        self.budget = budget


class CancelledError(AutobotError):
    """Raised when a mission is cancelled before reaching a terminal state."""


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class InvalidStateError(AutobotError):
    """Raised when an operation is not valid for the mission's current state."""


# ---------------------------------------------------------------------------
# Step / capability level
# ---------------------------------------------------------------------------


class MachineOutputParseError(AutobotError):
    """Raised when a model responded but its output did not match the expected shape."""

    def __init__(self, message: str, raw_output: str) -> None:
        super().__init__(message)
        self.raw_output = raw_output


class MemoryUnavailableError(AutobotError):
    """Raised by a memory that cannot answer queries right now."""


class ModelError(AutobotError):
    """Raised when a model could not be reached or refused the request."""


class PromptTooLongError(ModelError):
    """Raised instead of truncating a prompt that exceeds the model's context window."""
