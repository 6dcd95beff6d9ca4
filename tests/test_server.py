"""GOVKB MCP Server tests — schema registry, handlers and dispatch."""
import json

import pytest

from govkb.server.handlers import HANDLERS
from govkb.server.tool_schemas import TOOL_SCHEMAS

from conftest import MAHARASHTRA, MSME_ANSWER, MSME_QUESTION


# ============================================================================
# Schema / Registry Tests
# ============================================================================

def test_all_tools_have_handlers():
    """Every tool in TOOL_SCHEMAS should have a handler."""
    for schema in TOOL_SCHEMAS:
        assert schema["name"] in HANDLERS, f"Missing handler for {schema['name']}"


def test_tool_schemas_valid():
    """All tool schemas should have required fields."""
    for schema in TOOL_SCHEMAS:
        assert "name" in schema
        assert "description" in schema
        assert schema["inputSchema"]["type"] == "object"
        assert schema["name"].startswith("kb_")


def test_handler_count():
    assert set(HANDLERS) == {s["name"] for s in TOOL_SCHEMAS}
    assert len(TOOL_SCHEMAS) == 8


# ============================================================================
# Fixture: reset bridge singleton and rate limits between tests
# ============================================================================

@pytest.fixture(autouse=True)
def _fresh_state(_reset_bridge):
    from govkb.server.mcp_server import reset_rate_limits

    reset_rate_limits()
    yield
    reset_rate_limits()


async def _learn_msme():
    result = await HANDLERS["kb_learn"]({"question": MSME_QUESTION, "answer": MSME_ANSWER, **MAHARASHTRA})
    assert not result.get("isError"), result
    assert result["content"][0]["text"].startswith("Learned")


def _text(result):
    return result["content"][0]["text"]


# ============================================================================
# Handler: kb_match / kb_learn
# ============================================================================

@pytest.mark.asyncio
async def test_kb_match_hit():
    await _learn_msme()
    result = await HANDLERS["kb_match"]({"question": "msme registration fees maharashtra", **MAHARASHTRA})
    assert not result.get("isError")
    text = _text(result)
    assert "Cached answer (70% match)" in text
    assert MSME_ANSWER in text


@pytest.mark.asyncio
async def test_kb_match_miss_in_other_state():
    await _learn_msme()
    result = await HANDLERS["kb_match"]({
        "question": "msme registration fees maharashtra",
        **{**MAHARASHTRA, "state": "Gujarat"},
    })
    assert not result.get("isError")
    assert "miss" in _text(result)


@pytest.mark.asyncio
async def test_kb_match_requires_question():
    result = await HANDLERS["kb_match"]({"question": "   "})
    assert result.get("isError")


@pytest.mark.asyncio
async def test_kb_learn_rejected():
    result = await HANDLERS["kb_learn"]({
        "question": MSME_QUESTION,
        "answer": "No information available for this question.",
    })
    assert not result.get("isError")
    assert _text(result).startswith("Not learned")


@pytest.mark.asyncio
async def test_kb_learn_requires_both_fields():
    result = await HANDLERS["kb_learn"]({"question": MSME_QUESTION})
    assert result.get("isError")


# ============================================================================
# Handler: admin
# ============================================================================

@pytest.mark.asyncio
async def test_kb_stats():
    await _learn_msme()
    await HANDLERS["kb_match"]({"question": MSME_QUESTION, **MAHARASHTRA})
    text = _text(await HANDLERS["kb_stats"]({}))
    assert "**Entries:** 1" in text
    assert "**Hits:** 1" in text
    assert "**Hit rate:** 100%" in text


@pytest.mark.asyncio
async def test_kb_stats_empty_hit_rate():
    text = _text(await HANDLERS["kb_stats"]({}))
    assert "**Hit rate:** n/a" in text


@pytest.mark.asyncio
async def test_kb_list():
    await _learn_msme()
    text = _text(await HANDLERS["kb_list"]({"limit": "bogus"}))
    assert "India/Maharashtra/Manufacturing" in text
    assert "used 0x" in text


@pytest.mark.asyncio
async def test_kb_list_empty():
    assert _text(await HANDLERS["kb_list"]({})) == "Knowledgebase is empty."


@pytest.mark.asyncio
async def test_kb_remove():
    await _learn_msme()
    from govkb.bridge import list_entries

    entry_id = list_entries()[0]["id"]
    result = await HANDLERS["kb_remove"]({"entry_id": entry_id})
    assert not result.get("isError")
    result = await HANDLERS["kb_remove"]({"entry_id": entry_id})
    assert result.get("isError")


@pytest.mark.asyncio
async def test_kb_clear_requires_confirm():
    await _learn_msme()
    result = await HANDLERS["kb_clear"]({"confirm": "yes"})
    assert result.get("isError")
    result = await HANDLERS["kb_clear"]({"confirm": True})
    assert not result.get("isError")
    assert "**Entries:** 0" in _text(await HANDLERS["kb_stats"]({}))


# ============================================================================
# Handler: export / import
# ============================================================================

@pytest.mark.asyncio
async def test_kb_export_import():
    await _learn_msme()
    exported = _text(await HANDLERS["kb_export"]({}))
    records = json.loads(exported)
    assert records[0]["question"] == MSME_QUESTION

    await HANDLERS["kb_clear"]({"confirm": True})
    assert _text(await HANDLERS["kb_import"]({"entries_json": exported})) == "Imported 1 entries."
    # Already-known ids are skipped
    assert _text(await HANDLERS["kb_import"]({"entries_json": records})) == "Imported 0 entries."


@pytest.mark.asyncio
async def test_kb_import_skips_non_object_context():
    await _learn_msme()
    record = dict(json.loads(_text(await HANDLERS["kb_export"]({})))[0], id="kb-badcontext01", context=["India"])
    result = await HANDLERS["kb_import"]({"entries_json": json.dumps([record])})
    assert not result.get("isError")
    assert _text(result) == "Imported 0 entries."


@pytest.mark.asyncio
async def test_kb_import_invalid_json():
    assert _text(await HANDLERS["kb_import"]({"entries_json": "{nope"})) == "Imported 0 entries."
    assert (await HANDLERS["kb_import"]({}))["isError"] is True


# ============================================================================
# Dispatch
# ============================================================================

@pytest.mark.asyncio
async def test_dispatch_unknown_tool():
    from govkb.server.mcp_server import dispatch

    assert await dispatch("kb_nope", {}) == "Unknown tool: kb_nope"


@pytest.mark.asyncio
async def test_dispatch_returns_text():
    from govkb.server.mcp_server import dispatch

    text = await dispatch("kb_stats", {})
    assert text.startswith("# Knowledgebase Stats")


@pytest.mark.asyncio
async def test_dispatch_write_rate_limit(monkeypatch):
    from govkb.server import mcp_server

    monkeypatch.setattr(mcp_server, "_WRITE_RATE_LIMIT", 1)
    await mcp_server.dispatch("kb_remove", {"entry_id": "kb-x"})
    text = await mcp_server.dispatch("kb_remove", {"entry_id": "kb-x"})
    assert text.startswith("Rate limit exceeded")
    # reads are not write-limited
    assert (await mcp_server.dispatch("kb_stats", {})).startswith("# Knowledgebase Stats")


@pytest.mark.asyncio
async def test_list_tools():
    from govkb.server.mcp_server import list_tools

    tools = await list_tools()
    assert [t.name for t in tools] == [s["name"] for s in TOOL_SCHEMAS]
