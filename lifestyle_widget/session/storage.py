#===========================================================================
# lifestyle_widget/session/storage.py
# Key/value storage backends with localStorage semantics (string keys → string values).
#===========================================================================
from __future__ import annotations

import json
import logging
import os
from typing import Dict, Optional, Protocol

logger = logging.getLogger("uvicorn.error")


class StorageUnavailable(Exception):
    """The backing store cannot be read or written (no persistent context)."""


class Storage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage; survives for the lifetime of the object."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Durable storage in a single JSON object file.
    Writes go through a temp file + os.replace so a crash never leaves half a file.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError:
            logger.warning("[SESSION] storage file %s is not valid JSON; treating as empty", self.path)
            return {}
        except OSError as e:
            raise StorageUnavailable(str(e)) from e
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _save(self, data: Dict[str, str]) -> None:
        tmp_file = self.path + ".tmp"
        try:
            parent = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(parent, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_file, self.path)
        except OSError as e:
            raise StorageUnavailable(str(e)) from e

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = str(value)
        self._save(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            data.pop(key)
            self._save(data)
