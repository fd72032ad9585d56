"""
KeyValueBackend: abstract base for conversation persistence.

Two async primitives, mirroring a browser-style storage area:
  get: fetch a set of keys, returning only those that exist
  set: write a mapping of keys to JSON-serializable values

The conversation store treats the backend as the sole source of truth at
startup and the sole durable sink afterwards. Backends don't interpret values.
"""

from abc import ABC, abstractmethod


class KeyValueBackend(ABC):
    """Abstract key-value storage backend."""

    @abstractmethod
    async def get(self, keys: list[str]) -> dict:
        """Return {key: value} for every requested key that is stored."""
        ...

    @abstractmethod
    async def set(self, items: dict) -> None:
        """Insert or replace every key in items."""
        ...

    async def close(self) -> None:
        return None
