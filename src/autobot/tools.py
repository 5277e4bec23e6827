# tools.py
# Built-in tool machines. Each takes a JSON object input and returns text.
# Strategies only see these through their manuals; a missing or invalid
# argument raises, which the mission records as a failed step.

import asyncio
from pathlib import Path
from typing import Any

from autobot.machine import Machine, SimpleMachine
from autobot.models import COMMON_FORMATS, FormatDescription, Manual

SUMMARY_LIMIT = 4000


def _manual(summary: str, typedef: str, semantics: str, output_semantics: str) -> Manual:
    return Manual(
        summary=summary,
        instruction=summary,
        input=FormatDescription(format=COMMON_FORMATS["JSON"], typedef=typedef, semantics=semantics),
        output=FormatDescription(
            format=COMMON_FORMATS["NATURAL_LANGUAGE"], typedef="string", semantics=output_semantics
        ),
    )


def _require(args: Any, key: str) -> str:
    if not isinstance(args, dict):
        raise ValueError(f"Expected a JSON object input, got {type(args).__name__}.")
    value = args.get(key, "")
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"No {key} provided.")
    return value.strip()


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


async def _tool_echo(args: dict) -> str:
    return _require(args, "message")


async def _tool_summarize(args: dict) -> str:
    text = _require(args, "text")
    return text[:SUMMARY_LIMIT]


async def _tool_search(args: dict) -> str:
    from ddgs import DDGS

    query = _require(args, "query")
    # Coerce the generator to a list so the search actually runs in the thread
    results = await asyncio.to_thread(lambda: list(DDGS().text(query, max_results=4)))
    if not results:
        return "No results found."

    lines = []
    for r in results:
        lines.append(f"[{r.get('title', 'No Title')}]\n{r.get('body', '')}\nSource: {r.get('href', '')}")
    return "\n\n".join(lines)


async def _tool_http_post(args: dict) -> str:
    import httpx

    url = _require(args, "url")
    payload = args.get("payload", {})
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.post(url, json=payload)
    return f"POST {url} → {response.status_code} ({len(response.content)} bytes)"


def _file_writer(workspace: Path):
    root = workspace.resolve()

    async def _tool_file_write(args: dict) -> str:
        path = _require(args, "path")
        content = args.get("content", "")
        if not isinstance(content, str):
            raise ValueError("content must be a string.")

        target = (root / path).resolve()
        if not target.is_relative_to(root):
            raise PermissionError(f"Refusing to write {path!r} outside the workspace {root}.")

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")

        await asyncio.to_thread(_write)
        return f"Wrote {len(content)} characters to {target.relative_to(root)}."

    return _tool_file_write


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def builtin_tools(workspace: str | Path = "./workspace") -> dict[str, Machine]:
    """All built-in tools, keyed by name. File writes are confined to `workspace`."""
    return {
        "echo": SimpleMachine(
            _tool_echo,
            _manual("Repeats a message verbatim.", '{"message": string}', "the message to repeat", "the message"),
        ),
        "summarize": SimpleMachine(
            _tool_summarize,
            _manual(
                f"Trims text to at most {SUMMARY_LIMIT} characters.",
                '{"text": string}',
                "the text to trim",
                "the trimmed text",
            ),
        ),
        "search": SimpleMachine(
            _tool_search,
            _manual(
                "Searches the web and returns the top results.",
                '{"query": string}',
                "the search query",
                "titles, snippets and source URLs of the results",
            ),
        ),
        "file_write": SimpleMachine(
            _file_writer(Path(workspace)),
            _manual(
                "Writes text to a file inside the workspace.",
                '{"path": string, "content": string}',
                "a workspace-relative path and the text to write",
                "a confirmation naming the file written",
            ),
        ),
        "http_post": SimpleMachine(
            _tool_http_post,
            _manual(
                "Posts a JSON payload to a URL.",
                '{"url": string, "payload": object}',
                "the destination URL and the JSON payload",
                "the response status and size",
            ),
        ),
    }
