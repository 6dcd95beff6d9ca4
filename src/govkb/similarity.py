"""
GOVKB Similarity -- lexical overlap and context compatibility scoring.

Lexical overlap is the primary evidence for a cache hit. Context
(country/state/sector) acts as a secondary gate: a Maharashtra-specific
answer loses its state weight for a Gujarat query and usually falls
below the match threshold.
"""

from typing import Iterable

from govkb.types import SessionContext

TOKEN_MATCH_WEIGHT = 0.7
CONTEXT_WEIGHT = 0.3

COUNTRY_WEIGHT = 0.4
STATE_WEIGHT = 0.4
SECTOR_WEIGHT = 0.2

# Entry state that matches any session state
UNIVERSAL_STATE = "All"

# Decimal places kept on combined confidence before threshold comparison
_CONFIDENCE_PRECISION = 6


def token_similarity(tokens_a: Iterable[str], tokens_b: Iterable[str]) -> float:
    """Jaccard index of two token collections. 0.0 if either is empty."""
    set_a = set(tokens_a)
    set_b = set(tokens_b)
    if not set_a or not set_b:
        return 0.0
    union = len(set_a | set_b)
    return len(set_a & set_b) / union if union > 0 else 0.0


def context_score(entry_context: SessionContext, session_context: SessionContext) -> float:
    """Weighted share of comparable context dimensions that agree.

    A dimension is comparable only when both sides carry a non-empty
    value. Intent never participates. Returns 0.0 when nothing is
    comparable.
    """
    matched = 0.0
    considered = 0.0

    if entry_context.country and session_context.country:
        considered += COUNTRY_WEIGHT
        if entry_context.country == session_context.country:
            matched += COUNTRY_WEIGHT

    if entry_context.state and session_context.state:
        considered += STATE_WEIGHT
        if entry_context.state == session_context.state or entry_context.state == UNIVERSAL_STATE:
            matched += STATE_WEIGHT

    if entry_context.sector and session_context.sector:
        considered += SECTOR_WEIGHT
        if entry_context.sector == session_context.sector:
            matched += SECTOR_WEIGHT

    if considered <= 0:
        return 0.0
    return matched / considered


def confidence(token_sim: float, ctx_score: float) -> float:
    """Blend token similarity and context score into one [0, 1] confidence."""
    return round(token_sim * TOKEN_MATCH_WEIGHT + ctx_score * CONTEXT_WEIGHT, _CONFIDENCE_PRECISION)
