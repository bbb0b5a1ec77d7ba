from __future__ import annotations

import copy
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol


class KeyValueStore(Protocol):
    """Opaque get/set store shared by sessions, imports and settings."""

    def get(self, key: str) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Any:
        with self._lock:
            return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


@dataclass
class JsonFileStore:
    """Persist the whole key space as one JSON object on disk.

    File shape:
        {
          "sessions": {...},
          "pendingImport": {...},
          ...
        }

    Every operation re-reads the file so several processes can share it;
    writes go through a temp file and an atomic replace. An unreadable file
    raises instead of being silently reset.
    """

    path: Path
    logger: Optional[logging.Logger] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        self.logger = self.logger or logging.getLogger("parcel_pulse.io.storage")

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            text = fh.read()
        if not text.strip():
            return {}
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Store {self.path} does not contain a JSON object")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            tmp.replace(self.path)
        finally:
            tmp.unlink(missing_ok=True)

    def get(self, key: str) -> Any:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)
            self.logger.debug("Store %s: wrote key %s", self.path, key)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)
