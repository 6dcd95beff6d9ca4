"""
GOVKB Bridge -- High-level API for the knowledgebase cache.

Provides the public interface used by the chat layer, the MCP handlers,
the HTTP app and the CLI. All functions delegate to one EntryStore per
process, created lazily on first use and closed at exit.

Public API:
    Cache:      find_match, learn, answer_question
    Admin:      stats, list_entries, remove_entry, clear
    Export:     export_entries, import_entries, export_json, import_json
    Lifecycle:  get_store, reset_store
"""

import atexit
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Sequence

from govkb import learning, matcher
from govkb.types import Answer, EntrySource, ProviderResponse, SessionContext

logger = logging.getLogger("govkb.bridge")

# (question, attachments, live_search) -> ProviderResponse
GenerateFn = Callable[[str, Sequence[Any], bool], ProviderResponse]


# ---------------------------------------------------------------------------
# Lazy singleton
# ---------------------------------------------------------------------------

_store_instance = None
_store_lock = threading.Lock()
_atexit_registered = False


def get_store():
    """Get or create the process-wide EntryStore (thread-safe)."""
    global _store_instance, _atexit_registered
    if _store_instance is not None:
        return _store_instance
    with _store_lock:
        if _store_instance is not None:
            return _store_instance

        from govkb.store import EntryStore

        _store_instance = EntryStore()
        if not _atexit_registered:
            atexit.register(_close_store)
            _atexit_registered = True
    return _store_instance


def _close_store():
    global _store_instance
    if _store_instance is not None:
        _store_instance.close()


def reset_store():
    """Close and forget the singleton (used by tests and config reloads)."""
    global _store_instance
    with _store_lock:
        if _store_instance is not None:
            _store_instance.close()
        _store_instance = None


def _as_context(context) -> SessionContext:
    if isinstance(context, SessionContext):
        return context
    return SessionContext.from_dict(context)


# ---------------------------------------------------------------------------
# Public API -- Cache
# ---------------------------------------------------------------------------


def find_match(question: str, context=None) -> Optional[Dict[str, Any]]:
    """Cached answer for question as {answerText, confidence, id, question}, or None."""
    match = matcher.find_match(get_store(), question, _as_context(context))
    return match.to_dict() if match else None


def learn(question: str, answer: str, context=None, source: str = EntrySource.AI_RESPONSE.value) -> bool:
    """Offer a question/answer pair to the learning gate. True if admitted."""
    return learning.learn(get_store(), question, answer, _as_context(context), source)


def answer_question(
    question: str,
    context,
    generate: GenerateFn,
    attachments: Optional[Sequence[Any]] = None,
    live_search: bool = False,
    learn_source: str = EntrySource.AI_RESPONSE.value,
) -> Answer:
    """Answer from the cache when possible, otherwise from the provider.

    The cache is consulted (and later taught) only for plain-text
    questions: no attachments and no live search. Provider errors, raised
    or reported, are returned to the caller and never learned.
    """
    ctx = _as_context(context)
    use_cache = not attachments and not live_search

    if use_cache:
        match = matcher.find_match(get_store(), question, ctx)
        if match is not None:
            return Answer(match.answer, from_knowledgebase=True, confidence=match.confidence)

    try:
        response = generate(question, list(attachments or []), live_search)
    except Exception as e:
        logger.error("Provider call failed: %s", e)
        return Answer("An error occurred while processing your request.", error=str(e))

    if response.error:
        return Answer(response.text, error=response.error)

    if use_cache:
        learning.learn(get_store(), question, response.text, ctx, learn_source)
    return Answer(response.text)


# ---------------------------------------------------------------------------
# Public API -- Admin
# ---------------------------------------------------------------------------


def stats() -> Dict[str, Any]:
    """{totalEntries, storageSizeKB, hits, misses}."""
    return get_store().stats()


def list_entries(limit: Optional[int] = None) -> List[Dict[str, Any]]:
    entries = get_store().export_all()
    return entries[:limit] if limit else entries


def remove_entry(entry_id: str) -> bool:
    return get_store().remove(entry_id)


def clear() -> None:
    get_store().clear()


# ---------------------------------------------------------------------------
# Public API -- Export / Import
# ---------------------------------------------------------------------------


def export_entries() -> List[Dict[str, Any]]:
    return get_store().export_all()


def import_entries(records: Sequence[Dict[str, Any]]) -> int:
    """Merge records by id. Returns the number imported."""
    return get_store().import_merge(records)


def export_json(indent: Optional[int] = 2) -> str:
    return get_store().export_json(indent=indent)


def import_json(text: str) -> int:
    return get_store().import_json(text)
