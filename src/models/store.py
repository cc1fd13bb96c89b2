"""
Shared Store - Key/value state shared by every execution context.

Persistent keys live in one JSON file that is rewritten atomically on each
write. Session keys (the decrypted wallet list) live only in process memory
and are gone when the process exits.

There is no cross-key transaction. Callers that need several keys to agree
read them all at once with snapshot().
"""

import os
import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

from PyQt6.QtCore import QObject, QFileSystemWatcher, pyqtSignal

logger = logging.getLogger(__name__)

# Store keys
KEY_PASSWORD_HASH = "walletPasswordHash"
KEY_PASSWORD_SALT = "walletPasswordSalt"
KEY_KDF_PARAMS = "walletKdfParams"
KEY_ENCRYPTED_WALLETS = "encryptedWallets"
KEY_WALLETS = "wallets"
KEY_ACTIVE_WALLET = "activeWalletId"
KEY_IS_LOCKED = "isWalletLocked"
KEY_PENDING_CONNECTION = "pendingConnectionRequest"
KEY_PENDING_CONTRACT = "pendingContractRequest"
KEY_CONNECTED_ORIGINS = "connectedOrigins"

# Never written to disk
SESSION_KEYS = frozenset([KEY_WALLETS])

# Wildcard key emitted when another process rewrote the file
ANY_KEY = "*"

# Secure file permissions (Unix only)
SECURE_FILE_MODE = 0o600  # Owner read/write only


def _set_secure_permissions(filepath: Path) -> None:
    """Set restrictive file permissions on Unix systems."""
    if os.name == 'posix':
        try:
            os.chmod(filepath, SECURE_FILE_MODE)
        except OSError:
            pass


class SharedStore(QObject):
    """Durable key/value store with an in-memory session area."""

    changed = pyqtSignal(str)  # key, or "*" for an external rewrite

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._session: dict[str, Any] = {}
        self._lock = threading.RLock()
        self._watcher: Optional[QFileSystemWatcher] = None

    def _read_file(self) -> dict:
        """Read the persistent area; unreadable content counts as empty."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Store {self.path} is not an object, ignoring contents")
            return {}
        return data

    def _write_file(self, data: dict) -> None:
        temp_path = self.path.with_suffix('.tmp')
        with open(temp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        temp_path.replace(self.path)
        _set_secure_permissions(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        """Read one key (fresh from disk for persistent keys)."""
        with self._lock:
            if key in SESSION_KEYS:
                return self._session.get(key, default)
            return self._read_file().get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Write one key; durable when this returns."""
        with self._lock:
            if key in SESSION_KEYS:
                self._session[key] = value
            else:
                data = self._read_file()
                data[key] = value
                self._write_file(data)
        self.changed.emit(key)

    def remove(self, key: str) -> None:
        """Delete one key. Removing an absent key is a no-op."""
        with self._lock:
            if key in SESSION_KEYS:
                existed = self._session.pop(key, None) is not None
            else:
                data = self._read_file()
                existed = key in data
                if existed:
                    del data[key]
                    self._write_file(data)
        if existed:
            self.changed.emit(key)

    def snapshot(self) -> dict:
        """One consistent read of every key, persistent and session."""
        with self._lock:
            data = self._read_file()
            data.update(self._session)
            return data

    def watch(self) -> None:
        """Emit changed("*") when another process rewrites the store file."""
        if self._watcher is not None:
            return
        if not self.path.exists():
            self._write_file({})
        self._watcher = QFileSystemWatcher([str(self.path.parent)], self)
        self._watcher.directoryChanged.connect(self._on_external_change)

    def _on_external_change(self, _path: str) -> None:
        self.changed.emit(ANY_KEY)
