"""
GOVKB MCP Handlers -- Maps tool names to async handler functions.

Each handler delegates to govkb.bridge and returns an MCP-compatible
response dict.
"""

import json
from typing import Any, Dict


def _clamp_int(value, default: int, min_val: int = 1, max_val: int = 500) -> int:
    """Clamp a numeric argument to safe bounds."""
    try:
        v = int(value)
        return max(min_val, min(v, max_val))
    except (TypeError, ValueError):
        return default


def _context_from(arguments: dict) -> Dict[str, str]:
    return {key: str(arguments.get(key) or "").strip() for key in ("country", "state", "sector", "intent")}


# ============================================================================
# Response Helpers
# ============================================================================


def mcp_response(text: str) -> dict:
    """Build a successful MCP response."""
    return {"content": [{"type": "text", "text": str(text)}]}


def mcp_error(text: str) -> dict:
    """Build an error MCP response."""
    return {"content": [{"type": "text", "text": f"Error: {text}"}], "isError": True}


# ============================================================================
# Handlers: cache
# ============================================================================


async def handle_kb_match(arguments: dict) -> dict:
    """Look up a cached answer."""
    question = str(arguments.get("question") or "").strip()
    if not question:
        return mcp_error("question is required")

    from govkb.bridge import find_match

    match = find_match(question, _context_from(arguments))
    if match is None:
        return mcp_response("No cached answer (miss). Ask the AI provider, then call kb_learn.")

    output = f"# Cached answer ({match['confidence'] * 100:.0f}% match)\n\n"
    output += f"**Entry:** `{match['id']}`\n"
    output += f"**Learned question:** {match['question']}\n\n"
    output += match["answerText"]
    return mcp_response(output)


async def handle_kb_learn(arguments: dict) -> dict:
    """Offer a question/answer pair to the learning gate."""
    question = str(arguments.get("question") or "")
    answer = str(arguments.get("answer") or "")
    if not question.strip() or not answer.strip():
        return mcp_error("question and answer are required")

    from govkb.bridge import learn

    source = arguments.get("source") or "ai-response"
    if learn(question, answer, _context_from(arguments), source):
        return mcp_response("Learned: the answer will be served for similar questions in this context.")
    return mcp_response("Not learned: too short, error-like, or a near-duplicate of a stored question.")


# ============================================================================
# Handlers: admin
# ============================================================================


async def handle_kb_stats(arguments: dict) -> dict:
    """Knowledgebase statistics."""
    from govkb.bridge import stats

    st = stats()
    lookups = st["hits"] + st["misses"]
    hit_rate = f"{st['hits'] / lookups * 100:.0f}%" if lookups else "n/a"

    output = "# Knowledgebase Stats\n\n"
    output += f"**Entries:** {st['totalEntries']}\n"
    output += f"**Size:** {st['storageSizeKB']:.2f} KB\n"
    output += f"**Hits:** {st['hits']}\n"
    output += f"**Misses:** {st['misses']}\n"
    output += f"**Hit rate:** {hit_rate}\n"
    return mcp_response(output)


async def handle_kb_list(arguments: dict) -> dict:
    """List stored entries, newest first."""
    from govkb.bridge import list_entries

    limit = _clamp_int(arguments.get("limit", 20), default=20)
    entries = list_entries(limit=limit)
    if not entries:
        return mcp_response("Knowledgebase is empty.")

    lines = [f"# Knowledgebase ({len(entries)} shown)\n"]
    for e in entries:
        ctx = e.get("context", {})
        where = "/".join(v for v in (ctx.get("country"), ctx.get("state"), ctx.get("sector")) if v)
        lines.append(f"- `{e['id']}` [{where or 'any'}] used {e['usageCount']}x: {e['question'][:100]}")
    return mcp_response("\n".join(lines))


async def handle_kb_remove(arguments: dict) -> dict:
    """Remove one entry by id."""
    entry_id = str(arguments.get("entry_id") or "").strip()
    if not entry_id:
        return mcp_error("entry_id is required")

    from govkb.bridge import remove_entry

    if remove_entry(entry_id):
        return mcp_response(f"Removed entry `{entry_id}`")
    return mcp_error(f"Entry {entry_id} not found")


async def handle_kb_clear(arguments: dict) -> dict:
    """Delete every entry (explicit confirmation required)."""
    if arguments.get("confirm") is not True:
        return mcp_error("confirm=true is required to clear the knowledgebase")

    from govkb.bridge import clear

    clear()
    return mcp_response("Knowledgebase cleared.")


# ============================================================================
# Handlers: export / import
# ============================================================================


async def handle_kb_export(arguments: dict) -> dict:
    """Export all entries as JSON."""
    from govkb.bridge import export_json

    return mcp_response(export_json(indent=2))


async def handle_kb_import(arguments: dict) -> dict:
    """Merge entries from a JSON array."""
    raw = arguments.get("entries_json")
    if not raw:
        return mcp_error("entries_json is required")
    if not isinstance(raw, str):
        raw = json.dumps(raw)

    from govkb.bridge import import_json

    count = import_json(raw)
    return mcp_response(f"Imported {count} entries.")


# ============================================================================
# Handler Registry
# ============================================================================

HANDLERS: Dict[str, Any] = {
    "kb_match": handle_kb_match,
    "kb_learn": handle_kb_learn,
    "kb_stats": handle_kb_stats,
    "kb_list": handle_kb_list,
    "kb_export": handle_kb_export,
    "kb_import": handle_kb_import,
    "kb_remove": handle_kb_remove,
    "kb_clear": handle_kb_clear,
}
