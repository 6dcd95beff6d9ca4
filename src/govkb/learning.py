"""
GOVKB Learning Gate -- decides whether a question/answer pair becomes an entry.

Checks run in order and stop at the first failure: minimum lengths,
low-value answer markers, tokenizability, then near-duplicate suppression
(token similarity above 0.9 against any stored question). Near-duplicates
are left to the looser 0.7 match threshold to serve from the existing entry.
"""

import logging
from typing import List, Optional, Sequence

from govkb.similarity import token_similarity
from govkb.tokenizer import tokenize
from govkb.types import Entry, EntrySource, SessionContext, new_entry_id, now_ms

logger = logging.getLogger("govkb.learning")

MIN_QUESTION_LENGTH = 10
MIN_ANSWER_LENGTH = 20
DUPLICATE_THRESHOLD = 0.9

# Substrings (case-insensitive) that mark an answer as a non-answer
ERROR_INDICATORS = ("error", "not available", "cannot answer", "no information")


def is_near_duplicate(tokens: Sequence[str], entries: List[Entry]) -> bool:
    return any(token_similarity(tokens, e.question_tokens) > DUPLICATE_THRESHOLD for e in entries)


def validate_candidate(question: str, answer: str, entries: List[Entry]) -> Optional[str]:
    """Return the rejection reason for a candidate pair, or None if it is admissible."""
    clean_question = (question or "").strip()
    clean_answer = (answer or "").strip()

    if len(clean_question) < MIN_QUESTION_LENGTH:
        return "question_too_short"
    if len(clean_answer) < MIN_ANSWER_LENGTH:
        return "answer_too_short"

    answer_lower = clean_answer.lower()
    if any(marker in answer_lower for marker in ERROR_INDICATORS):
        return "error_answer"

    tokens = tokenize(clean_question)
    if not tokens:
        return "untokenizable"
    if is_near_duplicate(tokens, entries):
        return "duplicate"
    return None


def learn(
    store,
    question: str,
    answer: str,
    context: Optional[SessionContext] = None,
    source=EntrySource.AI_RESPONSE,
) -> bool:
    """Admit a question/answer pair into the store.

    Returns True only if the new entry is in the store afterwards; a full
    store of used entries can evict it on insert.
    """
    with store.lock:
        reason = validate_candidate(question, answer, store.get_all_entries())
        if reason is not None:
            logger.debug("Learning rejected (%s): %.60s", reason, (question or "").strip())
            return False

        clean_question = question.strip()
        now = now_ms()
        entry = Entry(
            id=new_entry_id(),
            question=clean_question,
            question_tokens=tokenize(clean_question),
            answer=answer.strip(),
            context=(context or SessionContext()).copy(),
            usage_count=0,
            last_used=now,
            created_at=now,
            source=EntrySource.coerce(source),
        )
        if not store.insert_at_front(entry):
            logger.debug("Entry %s evicted on insert, store is full of used entries", entry.id)
            return False
        logger.debug("Learned entry %s: %.60s", entry.id, clean_question)
        return True
