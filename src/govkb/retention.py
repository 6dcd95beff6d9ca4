"""
GOVKB Retention -- keeps the entry collection within count and size bounds.

Eviction order is ascending (usage_count, last_used): never-used entries
go before used ones, and among equally used entries the one touched
longest ago goes first. Remaining ties evict the entry that sits later in
store order (the older insertion).
"""

import json
import logging
import os
from typing import Callable, List, Optional, Sequence, Set, Tuple

from govkb.types import Entry

logger = logging.getLogger("govkb.retention")

DEFAULT_MAX_ENTRIES = 500
DEFAULT_MAX_STORAGE_SIZE_KB = 500


# Maps a candidate entry collection to the text that would be persisted
Render = Callable[[Sequence[Entry]], str]

# First size-forced eviction warns, later ones log at debug
_size_warning_logged = False


def max_entries() -> int:
    return max(1, int(os.environ.get("GOVKB_MAX_ENTRIES", str(DEFAULT_MAX_ENTRIES))))


def max_storage_size_kb() -> float:
    return max(1.0, float(os.environ.get("GOVKB_MAX_STORAGE_KB", str(DEFAULT_MAX_STORAGE_SIZE_KB))))


def entry_json(entry: Entry) -> str:
    """Compact JSON for one entry, the unit the size budget is estimated in."""
    return json.dumps(entry.to_dict(), separators=(",", ":"), ensure_ascii=False)


def serialize_entries(entries: Sequence[Entry]) -> str:
    return "[" + ",".join(entry_json(e) for e in entries) + "]"


def _array_bytes(count: int, entry_bytes: int) -> int:
    """UTF-8 size of a JSON array holding count entries totalling entry_bytes."""
    return 2 + entry_bytes + max(count - 1, 0)


def serialized_size_kb(entries: Sequence[Entry], render: Optional[Render] = None) -> float:
    """Size in KB (1 KB = 1024 bytes) of entries as rendered for storage.

    Without render this is the bare compact entry array.
    """
    text = render(entries) if render is not None else serialize_entries(entries)
    return len(text.encode("utf-8")) / 1024


def eviction_order(entries: Sequence[Entry]) -> List[int]:
    """Indices into entries, lowest-value first."""
    return sorted(
        range(len(entries)),
        key=lambda i: (entries[i].usage_count, entries[i].last_used, -i),
    )


def reset_warning_state() -> None:
    """Let the next size-forced eviction warn again (used by tests)."""
    global _size_warning_logged
    _size_warning_logged = False


def _evict_to_budget(order, sizes, evict, limit_entries: int, budget_bytes: float) -> None:
    remaining = len(sizes) - len(evict)
    remaining_bytes = sum(s for i, s in enumerate(sizes) if i not in evict)
    for idx in order:
        if idx in evict:
            continue
        if remaining <= limit_entries and _array_bytes(remaining, remaining_bytes) <= budget_bytes:
            break
        evict.add(idx)
        remaining -= 1
        remaining_bytes -= sizes[idx]


def enforce_limits(
    entries: Sequence[Entry],
    limit_entries: int = DEFAULT_MAX_ENTRIES,
    limit_kb: float = DEFAULT_MAX_STORAGE_SIZE_KB,
    render: Optional[Render] = None,
) -> Tuple[List[Entry], List[Entry]]:
    """Trim entries to at most limit_entries and limit_kb serialized.

    render maps a candidate collection to the exact text that will be
    persisted (envelope, encryption). When given, the size bound holds for
    that text; otherwise for the bare entry array.

    Returns (kept, evicted). Kept entries preserve their original order.
    """
    global _size_warning_logged
    if not entries:
        return [], []

    sizes = [len(entry_json(e).encode("utf-8")) for e in entries]
    limit_bytes = limit_kb * 1024
    order = eviction_order(entries)
    evict: Set[int] = set()
    budget = limit_bytes

    while True:
        _evict_to_budget(order, sizes, evict, limit_entries, budget)
        kept = [e for i, e in enumerate(entries) if i not in evict]
        if render is None or not kept:
            break
        rendered = len(render(kept).encode("utf-8"))
        if rendered <= limit_bytes:
            break
        # Scale the array budget by the observed storage overhead, always dropping at least one more
        plain = _array_bytes(len(kept), sum(s for i, s in enumerate(sizes) if i not in evict))
        budget = min(plain - 1, plain * limit_bytes / rendered)

    if not evict:
        return kept, []
    evicted = [e for i, e in enumerate(entries) if i in evict]

    size_forced = len(evicted) - max(0, len(entries) - limit_entries)
    if size_forced > 0:
        log = logger.debug if _size_warning_logged else logger.warning
        log(
            "Storage limit (%.0f KB) forced eviction of %d entries beyond the %d-entry cap; "
            "%d entries remain. Consider raising GOVKB_MAX_STORAGE_KB.",
            limit_kb, size_forced, limit_entries, len(kept),
        )
        _size_warning_logged = True
    if not kept:
        logger.warning("Retention evicted every entry; no single entry fits in %.0f KB", limit_kb)
    logger.debug("Retention evicted %d entries (%d kept)", len(evicted), len(kept))
    return kept, evicted
