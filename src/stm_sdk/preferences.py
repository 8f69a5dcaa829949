"""
Flat key-value preference stores for persisted SDK state.

Keys: installation id, channel id, server URL, user id, auth token (see
``PREFERENCE_KEYS`` in :mod:`stm_sdk.config`).  There is no schema
versioning; an absent key means "not yet set", and setting a key to
``None`` removes it.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from .config import DEFAULT_PREFERENCES_PATH

logger = logging.getLogger(__name__)


class PreferenceStore(Protocol):
    def get(self, key: str) -> str | None:
        ...

    def set(self, key: str, value: str | None) -> None:
        ...


class InMemoryPreferenceStore:
    """Volatile store; state lives only as long as the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str | None) -> None:
        with self._lock:
            if value is None:
                self._values.pop(key, None)
            else:
                self._values[key] = value


class JsonFilePreferenceStore:
    """
    Store persisted as one JSON object on disk.

    Every ``set`` rewrites the file through a temporary sibling and an atomic
    rename, so a crash mid-write leaves the previous contents intact.

    Args:
        path: JSON file location; parent directories are created on write.
    """

    def __init__(self, path: Path = DEFAULT_PREFERENCES_PATH) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                values = json.load(fh)
        except json.JSONDecodeError:
            logger.error("Preferences file %s is not valid JSON; treating it as empty", self.path)
            return {}
        if not isinstance(values, dict):
            logger.error("Preferences file %s does not hold an object; treating it as empty", self.path)
            return {}
        return values

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: str | None) -> None:
        with self._lock:
            values = self._load()
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value

            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with tmp_path.open("w", encoding="utf-8") as fh:
                json.dump(values, fh, indent=2, sort_keys=True)
            tmp_path.replace(self.path)
