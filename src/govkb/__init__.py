"""GOVKB -- Local knowledgebase cache for compliance-assistant chat.

Answers repeated questions instantly from previously seen provider
responses, scoped by country/state/sector so a cached answer never leaks
across jurisdictions::

    from govkb import learn, find_match
    ctx = {"country": "India", "state": "Maharashtra", "sector": "Manufacturing"}
    learn("What are the MSME registration fees in Maharashtra?", answer, ctx)
    hit = find_match("msme registration fees maharashtra", ctx)

MCP and HTTP surfaces: ``govkb serve`` / ``govkb serve --http``.
"""

__version__ = "0.3.0"

from govkb.store import EntryStore
from govkb.types import Answer, Entry, EntrySource, Match, ProviderResponse, SessionContext
from govkb.bridge import (
    answer_question,
    clear,
    export_entries,
    export_json,
    find_match,
    import_entries,
    import_json,
    learn,
    list_entries,
    remove_entry,
    reset_store,
    stats,
)

__all__ = [
    "EntryStore",
    # Types
    "Answer",
    "Entry",
    "EntrySource",
    "Match",
    "ProviderResponse",
    "SessionContext",
    # Cache
    "find_match",
    "learn",
    "answer_question",
    # Admin
    "stats",
    "list_entries",
    "remove_entry",
    "clear",
    # Import/export
    "export_entries",
    "import_entries",
    "export_json",
    "import_json",
    # Lifecycle
    "reset_store",
    # Meta
    "__version__",
]
