"""
GOVKB Types -- Value objects shared by the matching engine and its callers.

Entry records serialize to the camelCase shape used by the browser
application's localStorage blob, so exports from either side round-trip.
"""

import time
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def new_entry_id() -> str:
    return f"kb-{uuid.uuid4().hex[:12]}"


class EntrySource(str, Enum):
    """Provenance tag for an entry. Has no effect on matching."""

    USER_CHAT = "user-chat"
    AI_RESPONSE = "ai-response"

    @classmethod
    def coerce(cls, value) -> "EntrySource":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return cls.AI_RESPONSE


class SessionContext:
    """Jurisdiction/domain of a querying session: country, state, sector, intent."""

    __slots__ = ("country", "state", "sector", "intent")

    def __init__(self, country: str = "", state: str = "", sector: str = "", intent: str = ""):
        self.country = country or ""
        self.state = state or ""
        self.sector = sector or ""
        self.intent = intent or ""

    def copy(self) -> "SessionContext":
        return SessionContext(self.country, self.state, self.sector, self.intent)

    def to_dict(self) -> Dict[str, str]:
        return {
            "country": self.country,
            "state": self.state,
            "sector": self.sector,
            "intent": self.intent,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SessionContext":
        """Build a context from a mapping; None or empty means no context.

        Raises ValueError for anything that is not a mapping.
        """
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"context must be an object, not {type(data).__name__}")
        return cls(
            country=str(data.get("country") or ""),
            state=str(data.get("state") or ""),
            sector=str(data.get("sector") or ""),
            intent=str(data.get("intent") or ""),
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, SessionContext):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return (
            f"SessionContext(country={self.country!r}, state={self.state!r}, "
            f"sector={self.sector!r}, intent={self.intent!r})"
        )


class Entry:
    """One learned question/answer pair with its context snapshot and usage data."""

    __slots__ = (
        "id",
        "question",
        "question_tokens",
        "answer",
        "context",
        "usage_count",
        "last_used",
        "created_at",
        "source",
    )

    def __init__(
        self,
        id: str,
        question: str,
        question_tokens: List[str],
        answer: str,
        context: Optional[SessionContext] = None,
        usage_count: int = 0,
        last_used: Optional[int] = None,
        created_at: Optional[int] = None,
        source: EntrySource = EntrySource.AI_RESPONSE,
    ):
        created = created_at if created_at is not None else now_ms()
        self.id = id
        self.question = question
        self.question_tokens = list(question_tokens)
        self.answer = answer
        self.context = context.copy() if context is not None else SessionContext()
        self.usage_count = usage_count
        self.last_used = last_used if last_used is not None else created
        self.created_at = created
        self.source = EntrySource.coerce(source)

    def touch(self, when: Optional[int] = None) -> None:
        self.usage_count += 1
        self.last_used = when if when is not None else now_ms()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "questionTokens": list(self.question_tokens),
            "answer": self.answer,
            "context": self.context.to_dict(),
            "usageCount": self.usage_count,
            "lastUsed": self.last_used,
            "createdAt": self.created_at,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Entry":
        """Build an Entry from its serialized form.

        Raises KeyError/TypeError/ValueError on records that are not
        entry-shaped; callers decide whether to drop or propagate.
        """
        created = int(data.get("createdAt") or now_ms())
        return cls(
            id=str(data.get("id") or new_entry_id()),
            question=str(data["question"]),
            question_tokens=[str(t) for t in (data.get("questionTokens") or [])],
            answer=str(data["answer"]),
            context=SessionContext.from_dict(data.get("context")),
            usage_count=max(0, int(data.get("usageCount") or 0)),
            last_used=int(data.get("lastUsed") or created),
            created_at=created,
            source=EntrySource.coerce(data.get("source", EntrySource.AI_RESPONSE.value)),
        )

    def __repr__(self) -> str:
        return f"Entry(id={self.id!r}, question={self.question[:40]!r}, usage_count={self.usage_count})"


class Match:
    """Best entry for a query together with its combined confidence."""

    __slots__ = ("entry", "confidence")

    def __init__(self, entry: Entry, confidence: float):
        self.entry = entry
        self.confidence = confidence

    @property
    def answer(self) -> str:
        return self.entry.answer

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.entry.id,
            "question": self.entry.question,
            "answerText": self.entry.answer,
            "confidence": self.confidence,
        }


class ProviderResponse:
    """What the external AI-provider dispatch layer returns."""

    __slots__ = ("text", "error")

    def __init__(self, text: str, error: Optional[str] = None):
        self.text = text
        self.error = error


class Answer:
    """Answer handed back to the chat layer, flagged when served from cache."""

    __slots__ = ("text", "from_knowledgebase", "confidence", "error")

    def __init__(
        self,
        text: str,
        from_knowledgebase: bool = False,
        confidence: Optional[float] = None,
        error: Optional[str] = None,
    ):
        self.text = text
        self.from_knowledgebase = from_knowledgebase
        self.confidence = confidence
        self.error = error

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "fromKnowledgebase": self.from_knowledgebase,
            "knowledgebaseConfidence": self.confidence,
            "error": self.error,
        }
