"""Durable client-side key-value storage.

Holds the display-currency preference, the cached exchange rate, the
local history list and a backup of the holdings list. Values are stored
JSON-serialized in a single file so they survive restarts even when the
remote store is unreachable.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

CURRENCY_KEY = "fold-currency"
EXCHANGE_RATE_KEY = "fold-exchange-rate"
HISTORY_KEY = "fold-history-v2"
ASSETS_BACKUP_KEY = "fold-assets-backup"

Listener = Callable[[str, Any], None]


class ClientStorage:
    """Process-wide key-value store with subscribe/notify semantics.

    Lifecycle: ``open()`` loads the file (a missing or corrupt file starts
    empty), ``close()`` drops listeners. Every ``set``/``remove`` is
    written through to disk immediately. Pass ``path=None`` for a purely
    in-memory store.
    """

    def __init__(self, path: Optional[str | Path] = None):
        self._path = Path(path) if path else None
        self._data: dict[str, Any] = {}
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = threading.RLock()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "ClientStorage":
        with self._lock:
            self._data = self._read_file()
            self._open = True
        logger.info("Client storage opened (%d keys)", len(self._data))
        return self

    def close(self) -> None:
        with self._lock:
            self._listeners.clear()
            self._open = False
        logger.info("Client storage closed")

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value and notify listeners of ``key``."""
        serialized = json.dumps(value)
        with self._lock:
            self._data[key] = json.loads(serialized)
            self._write_file()
            listeners = list(self._listeners.get(key, []))
        for listener in listeners:
            listener(key, value)

    def remove(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        with self._lock:
            if key not in self._data:
                return False
            del self._data[key]
            self._write_file()
            listeners = list(self._listeners.get(key, []))
        for listener in listeners:
            listener(key, None)
        return True

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Register a callback for changes to ``key``. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.setdefault(key, []).append(listener)

        def unsubscribe() -> None:
            with self._lock:
                bucket = self._listeners.get(key, [])
                if listener in bucket:
                    bucket.remove(listener)

        return unsubscribe

    def _read_file(self) -> dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Client storage at %s unreadable, starting empty", self._path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            logger.warning("Client storage at %s is not an object, starting empty", self._path)
            return {}
        return data

    def _write_file(self) -> None:
        if self._path is None:
            return
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._data, indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except OSError:
            logger.warning("Failed to persist client storage to %s", self._path, exc_info=True)
