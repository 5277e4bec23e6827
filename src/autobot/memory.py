# memory.py
# Contextual retrieval capability consulted by strategies.

import asyncio
import logging
import re
from abc import ABC, abstractmethod

from autobot.errors import MemoryUnavailableError

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]+")


class Memory(ABC):
    """Describes what it holds and answers free-text queries about it."""

    @abstractmethod
    def get_purpose(self) -> str:
        """Static description of the category of information held, not its contents."""

    @abstractmethod
    def get_summary_of_contents(self) -> str:
        """High-level summary of what is stored right now. May be expensive."""

    @abstractmethod
    async def search(self, query: str) -> str:
        """Free-text retrieval. Must not mutate contents. May raise MemoryUnavailableError."""


def _terms(text: str) -> set[str]:
    return set(_WORD.findall(text.lower()))


class KeywordMemory(Memory):
    """In-process notes store ranked by keyword overlap with the query."""

    def __init__(self, purpose: str, notes: list[str] | tuple[str, ...] = (), limit: int = 5) -> None:
        self._purpose = purpose
        self._notes: list[str] = list(notes)
        self._limit = limit
        self._lock = asyncio.Lock()
        self.available = True

    def __repr__(self) -> str:
        return f"KeywordMemory({self._purpose!r}, notes={len(self._notes)})"

    async def add(self, note: str) -> None:
        """Store a note for later retrieval."""
        async with self._lock:
            self._notes.append(note)

    def get_purpose(self) -> str:
        return self._purpose

    def get_summary_of_contents(self) -> str:
        if not self._notes:
            return "No notes stored."
        preview = "; ".join(note.splitlines()[0][:60] for note in self._notes[:3])
        more = f" (+{len(self._notes) - 3} more)" if len(self._notes) > 3 else ""
        return f"{len(self._notes)} note(s): {preview}{more}"

    async def search(self, query: str) -> str:
        if not self.available:
            raise MemoryUnavailableError(f"Memory {self._purpose!r} is unavailable.")

        wanted = _terms(query)
        async with self._lock:
            scored = [(len(wanted & _terms(note)), index, note) for index, note in enumerate(self._notes)]

        # Highest overlap first; earlier notes win ties.
        ranked = sorted((s for s in scored if s[0] > 0), key=lambda s: (-s[0], s[1]))
        hits = [note for _, _, note in ranked[: self._limit]]
        logger.debug("Memory %r matched %d note(s) for %r.", self._purpose, len(hits), query)
        return "\n".join(hits)
