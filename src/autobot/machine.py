# machine.py
# Units of work a mission delegates its steps to.
#
# A Machine only computes: it never retries, never charges, never records
# history. Retry and routing decisions belong to the Strategy; bookkeeping
# belongs to the Mission.

import inspect
import json
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic_core import to_jsonable_python

from autobot.errors import MachineOutputParseError
from autobot.model import Model
from autobot.models import Manual

# JSON encoding escapes every '"' inside strings, so this delimiter can never
# occur within a serialized input value.
DELIMITER = '"""'

MANUAL_PROMPT = """\
Complete the following task using the provided input.

{instruction}

The input will be {input_semantics}, formatted as {input_format}, contained in \
{delimiter} below, and match a type definition of `{input_typedef}`.

The output should be {output_semantics}, formatted as {output_format}, and match \
a type definition of `{output_typedef}`.{example}

Respond with the output only.

Input: {delimiter}{payload}{delimiter}"""


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class Machine(ABC):
    """Asynchronously turns one typed input into one typed output."""

    manual: Manual | None = None

    @abstractmethod
    async def run(self, input: Any) -> Any:
        """Compute the output for `input`. May raise whatever the computation raises."""


class SimpleMachine(Machine):
    """Adapts a plain function (sync or async) into a Machine."""

    def __init__(self, fn: Callable[[Any], Any | Awaitable[Any]], manual: Manual | None = None) -> None:
        self._fn = fn
        self.manual = manual

    def __repr__(self) -> str:
        name = self.manual.summary if self.manual else getattr(self._fn, "__name__", "fn")
        return f"SimpleMachine({name!r})"

    async def run(self, input: Any) -> Any:
        result = self._fn(input)
        if inspect.isawaitable(result):
            result = await result
        return result


class PromptMachine(Machine):
    """
    Renders its input into a prompt, asks a model, and parses the reply.

    Model failures propagate untouched. Anything the parser raises is
    re-raised as MachineOutputParseError so callers can tell a malformed
    reply apart from an unreachable model.
    """

    def __init__(
        self,
        model: Model,
        template: Callable[[Any], str],
        parser: Callable[[str, Any], Any],
        manual: Manual | None = None,
    ) -> None:
        self.model = model
        self.template = template
        self.parser = parser
        self.manual = manual

    def __repr__(self) -> str:
        name = self.manual.summary if self.manual else "prompt"
        return f"PromptMachine({name!r}, model={self.model!r})"

    async def run(self, input: Any) -> Any:
        prompt = self.template(input)
        prediction = await self.model.predict(prompt)
        try:
            return self.parser(prediction.output, input)
        except MachineOutputParseError:
            raise
        except Exception as exc:
            raise MachineOutputParseError(
                f"Parser rejected model output: {exc}", raw_output=prediction.output
            ) from exc


# ---------------------------------------------------------------------------
# Manual-synthesized machines
# ---------------------------------------------------------------------------


def serialize_input(value: Any) -> str:
    return json.dumps(to_jsonable_python(value), ensure_ascii=False)


def render_manual_prompt(manual: Manual, input: Any) -> str:
    """Embed the manual's instruction, both format contracts and the JSON input."""
    example = ""
    if manual.output.example:
        example = f"\n\nExample output: {manual.output.example}"

    return MANUAL_PROMPT.format(
        instruction=manual.instruction,
        input_semantics=manual.input.semantics,
        input_format=manual.input.format,
        input_typedef=manual.input.typedef,
        output_semantics=manual.output.semantics,
        output_format=manual.output.format,
        output_typedef=manual.output.typedef,
        example=example,
        delimiter=DELIMITER,
        payload=serialize_input(input),
    )


def parse_json_output(output: str, input: Any = None) -> Any:
    """
    Deserialize a model reply as a single JSON value.

    Tolerates markdown code fences and an echoed input delimiter around the
    payload. Raises MachineOutputParseError on anything else.
    """
    raw = output.strip()

    # Strip markdown code blocks if the model added them
    if raw.startswith("```"):
        raw = re.sub(r"^```(?:json)?\s*", "", raw)
        raw = re.sub(r"\s*```$", "", raw)

    if raw.startswith(DELIMITER) and raw.endswith(DELIMITER) and len(raw) >= 2 * len(DELIMITER):
        raw = raw[len(DELIMITER) : -len(DELIMITER)].strip()

    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise MachineOutputParseError(f"Model output is not valid JSON: {exc}", raw_output=output) from exc


def from_manual(manual: Manual, model: Model) -> PromptMachine:
    """Build a PromptMachine whose template and parser are derived from `manual`."""
    return PromptMachine(
        model=model,
        template=lambda input: render_manual_prompt(manual, input),
        parser=parse_json_output,
        manual=manual,
    )
