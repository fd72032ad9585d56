"""
In-memory backend. Nothing survives the process; selected with `storage.backend: memory` and used by tests.
"""

import copy

from .base import KeyValueBackend


class MemoryBackend(KeyValueBackend):

    def __init__(self, initial: dict | None = None):
        self._data: dict = copy.deepcopy(initial) if initial else {}
        self.writes = 0

    async def get(self, keys: list[str]) -> dict:
        return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    async def set(self, items: dict) -> None:
        # Deep copy so later in-memory mutation can't leak into "persisted" state
        for key, value in items.items():
            self._data[key] = copy.deepcopy(value)
        self.writes += 1
