"""
GOVKB Entry Store -- the persistent collection of learned question/answer pairs.

The collection lives in memory as a plain list, most recently learned first.
Its persisted form is a single named blob (JSON, optionally encrypted) in a
SQLite database, written in one transaction after every mutation so a failed
write leaves the previous state intact.

Usage:
    store = EntryStore()
    store.insert_at_front(entry)
    print(store.stats())
"""

import json
import logging
import os
import sqlite3
import threading
import time as _time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

from govkb import retention
from govkb.crypto import decrypt, encrypt, govkb_home, secure_connect
from govkb.tokenizer import tokenize
from govkb.types import Entry

logger = logging.getLogger("govkb.store")

SCHEMA_VERSION = 1
FORMAT_VERSION = 1

BLOB_NAME = "govinfo_knowledgebase"
STATS_BLOB_NAME = "govinfo_knowledgebase_stats"

# ---------------------------------------------------------------------------
# SQLite retry -- several processes (CLI, MCP server, HTTP server) may share
# one kb.db. busy_timeout handles most contention; this retries the rest.
# ---------------------------------------------------------------------------
_DB_RETRY_ATTEMPTS = 3
_DB_RETRY_BASE_DELAY = 0.5  # seconds


def _retry_on_locked(fn, *args, **kwargs):
    """Call fn with retry on 'database is locked' OperationalError."""
    for attempt in range(_DB_RETRY_ATTEMPTS):
        try:
            return fn(*args, **kwargs)
        except sqlite3.OperationalError as e:
            if "database is locked" in str(e) and attempt < _DB_RETRY_ATTEMPTS - 1:
                delay = _DB_RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning("database is locked (attempt %d/%d), retrying in %.1fs",
                               attempt + 1, _DB_RETRY_ATTEMPTS, delay)
                _time.sleep(delay)
            else:
                raise


def default_db_path() -> Path:
    env_db = os.environ.get("GOVKB_DB")
    if env_db:
        return Path(env_db)
    return govkb_home() / "kb.db"


class EntryStore:
    """Owns the in-memory entry list, the hit/miss counters and their persistence.

    All public methods take ``lock`` (re-entrant), so callers that need a
    read-modify-write sequence (match then learn) can hold it across calls.
    """

    def __init__(
        self,
        db_path=None,
        max_entries: Optional[int] = None,
        max_storage_kb: Optional[float] = None,
        autoload: bool = True,
    ):
        self.db_path = Path(db_path) if db_path else default_db_path()
        self.db_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        self.max_entries = max_entries if max_entries is not None else retention.max_entries()
        self.max_storage_kb = max_storage_kb if max_storage_kb is not None else retention.max_storage_size_kb()

        self.lock = threading.RLock()
        self._entries: List[Entry] = []
        self._hits = 0
        self._misses = 0

        self._conn = self._connect()
        self._init_schema()
        if autoload:
            self.load()

    # ------------------------------------------------------------------
    # SQLite plumbing
    # ------------------------------------------------------------------

    def _connect(self) -> sqlite3.Connection:
        conn = secure_connect(self.db_path, timeout=30, check_same_thread=False)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA busy_timeout=30000")
        return conn

    def _init_schema(self) -> None:
        c = self._conn
        c.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
        row = c.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        if row is None:
            c.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        c.execute("""
            CREATE TABLE IF NOT EXISTS blobs (
                name TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        c.commit()

    def _read_blob(self, name: str) -> Optional[str]:
        row = _retry_on_locked(
            self._conn.execute, "SELECT data FROM blobs WHERE name = ?", (name,)
        ).fetchone()
        return row[0] if row else None

    def _write_blobs_once(self, blobs: Dict[str, str]) -> None:
        now = datetime.now(timezone.utc).isoformat()
        with self._conn:
            for name, data in blobs.items():
                self._conn.execute(
                    "INSERT OR REPLACE INTO blobs (name, data, updated_at) VALUES (?, ?, ?)",
                    (name, data, now),
                )

    def _write_blobs(self, blobs: Dict[str, str]) -> bool:
        """Write all blobs in one transaction. False (and logged) on failure."""
        try:
            _retry_on_locked(self._write_blobs_once, blobs)
            return True
        except sqlite3.Error as e:
            logger.error("Failed to save knowledgebase: %s", e)
            return False

    def _stats_blob(self) -> str:
        return encrypt(json.dumps({"hits": self._hits, "misses": self._misses}))

    # ------------------------------------------------------------------
    # Load / save lifecycle
    # ------------------------------------------------------------------

    def load(self) -> int:
        """Replace the in-memory state with the persisted one.

        A blob that cannot be decrypted or parsed resets the store to empty.
        Returns the number of entries loaded.
        """
        with self.lock:
            self._entries = []
            try:
                raw = self._read_blob(BLOB_NAME)
                if raw is not None:
                    self._entries = self._parse_entries(json.loads(decrypt(raw)))
            except (ValueError, TypeError, AttributeError, sqlite3.Error) as e:
                logger.error("Failed to load knowledgebase, starting empty: %s", e)
                self._entries = []

            self._hits, self._misses = 0, 0
            try:
                raw_stats = self._read_blob(STATS_BLOB_NAME)
                if raw_stats is not None:
                    counters = json.loads(decrypt(raw_stats))
                    self._hits = max(0, int(counters.get("hits", 0)))
                    self._misses = max(0, int(counters.get("misses", 0)))
            except (ValueError, TypeError, AttributeError, sqlite3.Error) as e:
                logger.error("Failed to load knowledgebase stats, resetting counters: %s", e)

            kept, evicted = retention.enforce_limits(self._entries, self.max_entries, self.max_storage_kb, self._render)
            if evicted:
                self._entries = kept
                self.save()

            logger.info("Loaded %d knowledgebase entries from %s", len(self._entries), self.db_path)
            return len(self._entries)

    @staticmethod
    def _parse_entries(payload: Any) -> List[Entry]:
        """Accept a versioned {"version", "entries"} object or a bare array."""
        if isinstance(payload, dict):
            version = payload.get("version")
            if version != FORMAT_VERSION:
                logger.warning("Unknown knowledgebase format version %r, attempting to read", version)
            records = payload.get("entries", [])
        else:
            records = payload
        if not isinstance(records, list):
            raise ValueError("knowledgebase blob does not hold an entry list")

        entries = []
        dropped = 0
        for record in records:
            entry = EntryStore._record_to_entry(record)
            if entry is None:
                dropped += 1
            else:
                entries.append(entry)
        if dropped:
            logger.warning("Dropped %d malformed knowledgebase records", dropped)
        return entries

    @staticmethod
    def _record_to_entry(record: Any) -> Optional[Entry]:
        """Entry for a serialized record, or None when it is not usable."""
        if not isinstance(record, dict):
            return None
        try:
            entry = Entry.from_dict(record)
        except (KeyError, TypeError, ValueError, AttributeError):
            return None
        if not entry.question.strip() or not entry.answer.strip():
            return None
        if not entry.question_tokens:
            entry.question_tokens = tokenize(entry.question)
        if not entry.question_tokens:
            return None
        return entry

    @staticmethod
    def _render(entries: Sequence[Entry]) -> str:
        """The knowledgebase blob exactly as written: versioned envelope, then encryption."""
        payload = json.dumps(
            {"version": FORMAT_VERSION, "entries": [e.to_dict() for e in entries]},
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return encrypt(payload)

    def save(self) -> bool:
        """Enforce retention limits, then persist entries and counters together.

        The size limit applies to the blob as written, so encryption
        overhead counts against it.
        """
        with self.lock:
            kept, evicted = retention.enforce_limits(
                self._entries, self.max_entries, self.max_storage_kb, self._render
            )
            if evicted:
                self._entries = kept
            return self._write_blobs({BLOB_NAME: self._render(self._entries), STATS_BLOB_NAME: self._stats_blob()})

    def _save_stats(self) -> bool:
        return self._write_blobs({STATS_BLOB_NAME: self._stats_blob()})

    def close(self) -> None:
        try:
            self._conn.close()
        except sqlite3.Error as e:
            logger.debug("Database close failed: %s", e)

    # ------------------------------------------------------------------
    # Collection access
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def get_all_entries(self) -> List[Entry]:
        """Entries in store order: most recently learned or imported first."""
        with self.lock:
            return list(self._entries)

    def get_entry(self, entry_id: str) -> Optional[Entry]:
        with self.lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
            return None

    def insert_at_front(self, entry: Entry) -> bool:
        """Prepend an entry and persist. False if retention evicted it immediately."""
        with self.lock:
            self._entries.insert(0, entry)
            self.save()
            return any(e is entry for e in self._entries)

    def remove(self, entry_id: str) -> bool:
        with self.lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.id != entry_id]
            if len(self._entries) == before:
                return False
            self.save()
            return True

    def clear(self) -> None:
        """Drop every entry and reset the cumulative hit/miss counters."""
        with self.lock:
            self._entries = []
            self._hits = 0
            self._misses = 0
            try:
                with self._conn:
                    self._conn.execute(
                        "DELETE FROM blobs WHERE name IN (?, ?)", (BLOB_NAME, STATS_BLOB_NAME)
                    )
            except sqlite3.Error as e:
                logger.error("Failed to clear persisted knowledgebase: %s", e)
            logger.info("Knowledgebase cleared")

    # ------------------------------------------------------------------
    # Usage statistics
    # ------------------------------------------------------------------

    def record_hit(self, entry: Entry) -> None:
        """Count a successful match against entry and persist the update."""
        with self.lock:
            entry.touch()
            self._hits += 1
            self.save()

    def record_miss(self) -> None:
        with self.lock:
            self._misses += 1
            self._save_stats()

    def stats(self) -> Dict[str, Any]:
        """Entry count, persisted blob size and cumulative counters.

        storageSizeKB is 0 for an empty collection (clear() deletes the blob).
        """
        with self.lock:
            size_kb = retention.serialized_size_kb(self._entries, self._render) if self._entries else 0.0
            return {
                "totalEntries": len(self._entries),
                "storageSizeKB": round(size_kb, 2),
                "hits": self._hits,
                "misses": self._misses,
            }

    # ------------------------------------------------------------------
    # Export / Import
    # ------------------------------------------------------------------

    def export_all(self) -> List[Dict[str, Any]]:
        with self.lock:
            return [e.to_dict() for e in self._entries]

    def export_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.export_all(), indent=indent, ensure_ascii=False)

    def import_merge(self, records: Iterable[Any]) -> int:
        """Prepend records whose id is not already present. Returns the count added.

        Only ids are compared; content duplicates are imported as-is.
        """
        with self.lock:
            known = {e.id for e in self._entries}
            new_entries = []
            skipped = 0
            for record in records:
                entry = self._record_to_entry(record)
                if entry is None:
                    skipped += 1
                    continue
                if entry.id in known:
                    continue
                known.add(entry.id)
                new_entries.append(entry)

            if skipped:
                logger.warning("Import skipped %d invalid records", skipped)
            if not new_entries:
                return 0

            self._entries = new_entries + self._entries
            self.save()
            logger.info("Imported %d knowledgebase entries", len(new_entries))
            return len(new_entries)

    def import_json(self, text: str) -> int:
        """import_merge() for a JSON string; invalid JSON imports nothing."""
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as e:
            logger.warning("Import rejected, invalid JSON: %s", e)
            return 0
        if isinstance(payload, dict):
            payload = payload.get("entries", [])
        if not isinstance(payload, list):
            logger.warning("Import rejected, expected a list of entries")
            return 0
        return self.import_merge(payload)
