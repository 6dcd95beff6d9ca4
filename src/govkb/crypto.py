"""
GOVKB Crypto -- Optional encryption at rest for the persisted knowledgebase.

When enabled, the knowledgebase blob and its stats blob are encrypted with
Fernet (AES-128-CBC + HMAC-SHA256) before they reach SQLite. The key lives
at $GOVKB_HOME/.key and is created on first use with 0600 permissions.
Losing it means the stored blob can no longer be read, and the store
starts empty.

Enabled by default. Disable: GOVKB_ENCRYPT=0
"""

import logging
import os
import sqlite3
import stat
from pathlib import Path

logger = logging.getLogger("govkb.crypto")

_ENC_PREFIX = "ENC:"

_fernet_instance = None
_checked = False


def govkb_home() -> Path:
    """Resolve GOVKB_HOME lazily so tests can override via env var."""
    return Path(os.environ.get("GOVKB_HOME", str(Path.home() / ".govkb")))


def _key_path() -> Path:
    return govkb_home() / ".key"


def is_enabled() -> bool:
    """Encryption at rest is on unless GOVKB_ENCRYPT is 0/false/no."""
    val = os.environ.get("GOVKB_ENCRYPT", "").strip().lower()
    if val in ("0", "false", "no"):
        return False
    return True


def reset_crypto_state() -> None:
    """Reset module state for test isolation."""
    global _fernet_instance, _checked
    _fernet_instance = None
    _checked = False


def _get_or_create_key() -> bytes:
    """Read the Fernet key from $GOVKB_HOME/.key, generating it on first use."""
    from cryptography.fernet import Fernet

    key_file = _key_path()
    if key_file.exists():
        return key_file.read_bytes().strip()

    key_file.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
    key = Fernet.generate_key()
    try:
        fd = os.open(str(key_file), os.O_CREAT | os.O_WRONLY | os.O_EXCL, 0o600)
    except FileExistsError:
        # another process created it first
        return key_file.read_bytes().strip()
    with os.fdopen(fd, "wb") as fh:
        fh.write(key)
    logger.info("Created encryption key at %s", key_file)
    return key


def _get_fernet():
    """Lazy-load the Fernet instance. None when encryption cannot be set up."""
    global _fernet_instance, _checked
    if _fernet_instance is not None:
        return _fernet_instance
    if _checked:
        return None
    _checked = True

    from cryptography.fernet import Fernet

    try:
        _fernet_instance = Fernet(_get_or_create_key())
        return _fernet_instance
    except (OSError, ValueError) as e:
        logger.error("Failed to initialize encryption: %s", e)
        return None


def encrypt(plaintext: str) -> str:
    """Encrypt a string. Returns plaintext unchanged when encryption is off."""
    if not is_enabled():
        return plaintext

    f = _get_fernet()
    if f is None:
        return plaintext

    token = f.encrypt(plaintext.encode("utf-8"))
    return _ENC_PREFIX + token.decode("ascii")


def decrypt(data: str) -> str:
    """Decrypt a string produced by encrypt(); plaintext passes through.

    Raises ValueError when an encrypted payload cannot be decrypted
    (missing or wrong key, corrupted data).
    """
    if not data.startswith(_ENC_PREFIX):
        return data

    f = _get_fernet()
    if f is None:
        raise ValueError("Cannot decrypt: encryption key unavailable")

    from cryptography.fernet import InvalidToken

    try:
        return f.decrypt(data[len(_ENC_PREFIX):].encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError) as e:
        raise ValueError(f"Decryption failed: {e!r}") from e


def _restrict(path: Path) -> None:
    if path.exists() and path.stat().st_mode & (stat.S_IRWXG | stat.S_IRWXO):
        path.chmod(0o600)


def secure_connect(db_path, **kwargs) -> sqlite3.Connection:
    """Open a SQLite connection on a database file readable only by its owner.

    The WAL and shared-memory sidecars left by an earlier run are
    tightened as well, since they hold recent blob writes.
    """
    path = Path(db_path)
    if not path.exists():
        os.close(os.open(str(path), os.O_CREAT | os.O_WRONLY, 0o600))
    for candidate in (path, path.with_name(path.name + "-wal"), path.with_name(path.name + "-shm")):
        _restrict(candidate)
    return sqlite3.connect(str(path), **kwargs)
