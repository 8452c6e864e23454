"""
Key-value settings store.

The detection core only needs read-with-default and write semantics, so it
depends on the KeyValueStore interface; JsonFileStore persists to disk and
MemoryStore backs tests and ephemeral sessions.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_STORE_PATH = Path.home() / ".gesture_presenter" / "settings.json"


class KeyValueStore:
    """Interface: get/set by key."""

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process dict store."""

    def __init__(self, initial: Optional[dict] = None):
        self._data = dict(initial or {})

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)

    def __contains__(self, key):
        return key in self._data


class JsonFileStore(KeyValueStore):
    """Whole-file JSON store, rewritten atomically on every set().

    A missing or unreadable file behaves as an empty store; the broken file
    is left in place until the next successful write replaces it.
    """

    def __init__(self, path=None):
        self._path = Path(path).expanduser() if path else DEFAULT_STORE_PATH
        self._lock = threading.Lock()
        self._data = None

    def _load(self) -> dict:
        if self._data is not None:
            return self._data
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                logger.warning("Settings file %s is not a JSON object, ignoring", self._path)
                data = {}
        except FileNotFoundError:
            data = {}
        except (OSError, ValueError) as e:
            logger.warning("Could not read settings file %s: %s", self._path, e)
            data = {}
        self._data = data
        return data

    def get(self, key, default=None):
        with self._lock:
            return self._load().get(key, default)

    def set(self, key, value):
        with self._lock:
            data = self._load()
            data[key] = value
            self._flush(data)

    def delete(self, key):
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._flush(data)

    def _flush(self, data: dict):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)
        logger.debug("Settings written to %s", self._path)

    @property
    def path(self) -> Path:
        return self._path
