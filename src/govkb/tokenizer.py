"""Question tokenizer: lower-case word tokens, punctuation-free, deduplicated."""

import re
from typing import List

TOKENIZE_MIN_LENGTH = 3

# Anything that is not a letter, digit or underscore
_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_COLLAPSE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Lower-case, replace punctuation with spaces and collapse whitespace."""
    text = _NON_WORD_RE.sub(" ", (text or "").lower())
    return _WHITESPACE_COLLAPSE_RE.sub(" ", text).strip()


def tokenize(text: str) -> List[str]:
    """Tokenize text into unique terms of at least three characters.

    Order follows first occurrence. Empty or all-punctuation input yields
    an empty list, which callers treat as untokenizable.
    """
    normalized = normalize(text)
    if not normalized:
        return []
    seen = set()
    tokens = []
    for token in normalized.split(" "):
        if len(token) < TOKENIZE_MIN_LENGTH or token in seen:
            continue
        seen.add(token)
        tokens.append(token)
    return tokens
