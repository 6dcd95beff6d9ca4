"""
GOVKB Match Selector -- finds the single best cached answer for a question.

Every entry is scored (token Jaccard x 0.7 + context score x 0.3). The
strictly highest score at or above MIN_CONFIDENCE wins; equal scores keep
the first entry in store order, i.e. the most recently learned one.
"""

import logging
from typing import List, Optional, Sequence

from govkb.similarity import confidence, context_score, token_similarity
from govkb.tokenizer import tokenize
from govkb.types import Entry, Match, SessionContext

logger = logging.getLogger("govkb.matcher")

MIN_CONFIDENCE = 0.7


def score_entry(query_tokens: Sequence[str], entry: Entry, context: SessionContext) -> float:
    return confidence(
        token_similarity(query_tokens, entry.question_tokens),
        context_score(entry.context, context),
    )


def select_match(
    query_tokens: Sequence[str],
    entries: List[Entry],
    context: SessionContext,
    min_confidence: float = MIN_CONFIDENCE,
) -> Optional[Match]:
    """Best-scoring entry at or above min_confidence, without side effects."""
    if not query_tokens:
        return None
    best: Optional[Match] = None
    for entry in entries:
        score = score_entry(query_tokens, entry, context)
        if score < min_confidence:
            continue
        if best is None or score > best.confidence:
            best = Match(entry, score)
    return best


def find_match(store, question: str, context: Optional[SessionContext] = None) -> Optional[Match]:
    """Look up a cached answer and record the hit or miss on the store.

    On a hit the entry's usage count and last-used time are refreshed and
    persisted. Untokenizable questions and empty stores count as misses.
    """
    context = context or SessionContext()
    with store.lock:
        tokens = tokenize(question)
        if not tokens:
            logger.debug("Untokenizable question, recording miss")
            store.record_miss()
            return None

        match = select_match(tokens, store.get_all_entries(), context)
        if match is None:
            store.record_miss()
            return None

        store.record_hit(match.entry)
        logger.debug("Knowledgebase hit %s (confidence %.3f)", match.entry.id, match.confidence)
        return match
