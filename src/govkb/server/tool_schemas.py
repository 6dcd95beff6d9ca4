"""GOVKB MCP Tool Schemas -- 8 tools over the knowledgebase cache."""

_CONTEXT_PROPERTIES = {
    "country": {"type": "string", "description": "Session country, e.g. 'India'"},
    "state": {"type": "string", "description": "Session state, e.g. 'Maharashtra'"},
    "sector": {"type": "string", "description": "Business sector, e.g. 'Manufacturing'"},
    "intent": {"type": "string", "description": "Session intent, e.g. 'Factory Setup' (stored, not scored)"},
}

TOOL_SCHEMAS = [
    {
        "name": "kb_match",
        "description": "Look up a cached answer for a question in the current jurisdiction/sector context. Returns the answer and its confidence, or reports a miss so the caller can ask the AI provider.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "The user's question"},
                **_CONTEXT_PROPERTIES,
            },
            "required": ["question"],
        },
    },
    {
        "name": "kb_learn",
        "description": "Offer a provider answer to the knowledgebase. Short, error-like or near-duplicate pairs are rejected.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "question": {"type": "string"},
                "answer": {"type": "string"},
                "source": {
                    "type": "string",
                    "enum": ["user-chat", "ai-response"],
                    "description": "Provenance tag (default: ai-response)",
                },
                **_CONTEXT_PROPERTIES,
            },
            "required": ["question", "answer"],
        },
    },
    {
        "name": "kb_stats",
        "description": "Entry count, stored size in KB, and cumulative hit/miss counters.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "kb_list",
        "description": "List stored entries, most recently learned first.",
        "inputSchema": {
            "type": "object",
            "properties": {"limit": {"type": "integer", "default": 20}},
        },
    },
    {
        "name": "kb_export",
        "description": "Export every entry as a JSON array.",
        "inputSchema": {"type": "object", "properties": {}},
    },
    {
        "name": "kb_import",
        "description": "Merge entries from a JSON array. Entries whose id already exists are skipped.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "entries_json": {"type": "string", "description": "JSON array of entry records"},
            },
            "required": ["entries_json"],
        },
    },
    {
        "name": "kb_remove",
        "description": "Remove one entry by id.",
        "inputSchema": {
            "type": "object",
            "properties": {"entry_id": {"type": "string"}},
            "required": ["entry_id"],
        },
    },
    {
        "name": "kb_clear",
        "description": "Delete every entry and reset hit/miss counters. Requires confirm=true.",
        "inputSchema": {
            "type": "object",
            "properties": {"confirm": {"type": "boolean"}},
            "required": ["confirm"],
        },
    },
]
