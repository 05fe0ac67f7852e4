"""
Key/value stores for retained location candidates.

The arbitration engine keeps the best sample seen so far per target under
"location_<target>". Two implementations:
- InMemoryCandidateStore: process-local, for tests and short-lived runs
- JsonFileCandidateStore: one JSON object on disk, survives restarts so an
  interrupted arbitration can resume
"""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

KEY_PREFIX = "location_"


def candidate_key(target: str) -> str:
    """Store key for a target's retained candidate."""
    return KEY_PREFIX + target


class StoreUnavailable(Exception):
    """Candidate store read or write failed."""


class CandidateStore:
    """
    Interface for durable string key/value storage.

    Implementations raise StoreUnavailable on any backend failure.
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, text: str):
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError


class InMemoryCandidateStore(CandidateStore):
    """Thread-safe dict-backed store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, text: str):
        with self._lock:
            self._data[key] = text

    def remove(self, key: str):
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list:
        with self._lock:
            return sorted(self._data)


class JsonFileCandidateStore(CandidateStore):
    """
    Store persisted as a single JSON object file.

    Every write rewrites the file through a temporary file and os.replace,
    so a crash mid-write leaves either the old or the new content.

    Usage:
        store = JsonFileCandidateStore("state/candidates.json")
        store.put(candidate_key("IMG_0001.jpg"), text)
    """

    def __init__(self, path: Union[str, Path]):
        """
        Args:
            path: File holding the store (created on first write)
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read().get(key)

    def put(self, key: str, text: str):
        with self._lock:
            data = self._read()
            data[key] = text
            self._write(data)

    def remove(self, key: str):
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    def keys(self) -> list:
        with self._lock:
            return sorted(self._read())

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailable(f"Cannot read candidate store {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreUnavailable(f"Candidate store {self.path} is not a JSON object")
        return data

    def _write(self, data: Dict[str, str]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=self.path.name, suffix='.tmp'
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, sort_keys=True)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreUnavailable(f"Cannot write candidate store {self.path}: {e}") from e

        logger.debug(f"Candidate store written ({len(data)} entries)")
