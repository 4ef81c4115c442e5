"""In-memory implementation of the metadata store."""

import copy
from threading import Lock
from typing import Any, Dict, List, Optional, Tuple

from . import Updater


class InMemoryMetadataStore:
    """Keeps metadata in a dict for the lifetime of the process."""

    def __init__(self) -> None:
        self._data: Dict[Tuple[int, str], Any] = {}
        self._lock = Lock()

    def get(self, user_id: int, key: str) -> Optional[Any]:
        with self._lock:
            return copy.deepcopy(self._data.get((user_id, key)))

    def set(self, user_id: int, key: str, value: Any) -> None:
        with self._lock:
            self._data[(user_id, key)] = copy.deepcopy(value)

    def delete(self, user_id: int, key: str) -> None:
        with self._lock:
            self._data.pop((user_id, key), None)

    def update(self, user_id: int, key: str, fn: Updater) -> Optional[Any]:
        with self._lock:
            value = fn(copy.deepcopy(self._data.get((user_id, key))))
            if value is None:
                self._data.pop((user_id, key), None)
            else:
                self._data[(user_id, key)] = copy.deepcopy(value)
            return value

    def users_with(self, key: str) -> List[int]:
        """User ids that have a value stored under ``key``."""
        with self._lock:
            return sorted(uid for uid, k in self._data if k == key)
