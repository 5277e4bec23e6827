import pytest

from autobot.errors import MemoryUnavailableError
from autobot.memory import KeywordMemory


@pytest.fixture
def memory() -> KeywordMemory:
    return KeywordMemory(
        "Facts about the ocean.",
        notes=[
            "The Pacific is the largest ocean.",
            "Tides are driven by the moon.",
            "Ocean waves carry energy, not water, across the ocean.",
        ],
        limit=2,
    )


def test_purpose_is_static(memory):
    assert memory.get_purpose() == "Facts about the ocean."


def test_summary_counts_notes(memory):
    assert memory.get_summary_of_contents().startswith("3 note(s): The Pacific")
    assert KeywordMemory("empty").get_summary_of_contents() == "No notes stored."


@pytest.mark.asyncio
async def test_search_ranks_by_keyword_overlap(memory):
    result = await memory.search("ocean waves")
    assert result.splitlines() == [
        "Ocean waves carry energy, not water, across the ocean.",
        "The Pacific is the largest ocean.",
    ]


@pytest.mark.asyncio
async def test_search_without_matches_returns_empty(memory):
    assert await memory.search("volcanoes") == ""


@pytest.mark.asyncio
async def test_search_does_not_mutate_contents(memory):
    before = memory.get_summary_of_contents()
    await memory.search("moon")
    assert memory.get_summary_of_contents() == before


@pytest.mark.asyncio
async def test_added_notes_become_searchable(memory):
    await memory.add("Coral reefs grow in warm shallow water.")
    assert "Coral" in await memory.search("coral reefs")


@pytest.mark.asyncio
async def test_unavailable_memory_raises(memory):
    memory.available = False
    with pytest.raises(MemoryUnavailableError):
        await memory.search("ocean")
