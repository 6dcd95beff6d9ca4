"""GOVKB test configuration."""
import os
import sys
import pytest
from pathlib import Path

# Ensure govkb package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


MAHARASHTRA = {
    "country": "India",
    "state": "Maharashtra",
    "sector": "Manufacturing",
    "intent": "Factory Setup",
}

MSME_QUESTION = "What are the MSME registration fees in Maharashtra?"
MSME_ANSWER = (
    "The MSME registration under Udyam is free of cost and can be completed "
    "online via the Udyam portal."
)


@pytest.fixture
def tmp_kb_dir(tmp_path, monkeypatch):
    """Create a temporary GOVKB_HOME with encryption disabled."""
    kb_dir = tmp_path / ".govkb"
    kb_dir.mkdir()
    monkeypatch.setenv("GOVKB_HOME", str(kb_dir))
    monkeypatch.setenv("GOVKB_ENCRYPT", "0")
    monkeypatch.delenv("GOVKB_DB", raising=False)
    monkeypatch.delenv("GOVKB_MAX_ENTRIES", raising=False)
    monkeypatch.delenv("GOVKB_MAX_STORAGE_KB", raising=False)
    yield kb_dir
    from govkb.crypto import reset_crypto_state
    reset_crypto_state()


@pytest.fixture
def tmp_kb_dir_encrypted(tmp_kb_dir, monkeypatch):
    """Temporary GOVKB_HOME with encryption enabled."""
    monkeypatch.setenv("GOVKB_ENCRYPT", "1")
    from govkb.crypto import reset_crypto_state
    reset_crypto_state()
    yield tmp_kb_dir
    reset_crypto_state()


@pytest.fixture
def store(tmp_kb_dir):
    """Create a fresh EntryStore for testing."""
    from govkb.store import EntryStore
    s = EntryStore(db_path=tmp_kb_dir / "test.db")
    yield s
    s.close()


@pytest.fixture
def _reset_bridge(tmp_kb_dir):
    """Reset the bridge singleton so each test gets a fresh store."""
    from govkb.bridge import reset_store

    reset_store()
    yield
    reset_store()


@pytest.fixture
def maharashtra():
    from govkb.types import SessionContext
    return SessionContext.from_dict(MAHARASHTRA)
