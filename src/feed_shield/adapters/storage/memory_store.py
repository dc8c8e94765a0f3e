"""In-process key-value store."""

import copy
from typing import Any

from feed_shield.core.interfaces import KeyValueStore


class MemoryStore(KeyValueStore):
    """Dict-backed store. Values are deep-copied so callers never share state."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self.writes = 0

    async def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self.writes += 1

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)
