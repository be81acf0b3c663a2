"""
Local durable key-value storage.

The action queue and the local cache persist themselves through this narrow
boundary: ``get(key) -> str | None``, ``set(key, value)``, ``remove(key)``.
Values are opaque strings (callers store JSON). Writes are synchronous so an
``enqueue`` is durable the moment it returns.

Two included implementations:
1. InMemoryStorage - dict-based, lost on exit (tests, prototyping)
2. JsonFileStorage - one JSON document on disk, survives process restart

Single-writer: no cross-process locking is attempted.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from .logging_utils import log_error


class KeyValueStorage(ABC):
    """Abstract base class for local durable storage."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``. Removing a missing key is a no-op."""


class InMemoryStorage(KeyValueStorage):
    """Dict-backed storage. Data is lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def remove(self, key: str) -> None:
        self.values.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """File-backed storage keeping every key in a single JSON object.

    The whole document is rewritten on each ``set``/``remove`` through a
    temporary file and ``os.replace`` so a crash mid-write leaves the previous
    document intact. A file that is not a JSON object of strings is logged and
    treated as empty; the next write replaces it.

    File layout:
    ```
    {
      "cleanspace_action_queue": "[...]",
      "cleanspace_offline_data": "{...}"
    }
    ```
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._values: Dict[str, str] = self._load()

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if self._values.pop(key, None) is not None:
            self._flush()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text("utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            log_error(f"Discarding unreadable storage file {self.path}: {exc}")
            return {}
        if not isinstance(payload, dict) or not all(
            isinstance(value, str) for value in payload.values()
        ):
            log_error(f"Discarding malformed storage file {self.path}")
            return {}
        return payload

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".storage-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._values, handle, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
