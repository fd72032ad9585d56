"""
Key-value persistence backend factory.

Usage:
    from switchboard.storage.backends import make_backend
    backend = make_backend("sqlite", path="./data/switchboard.db")

Adding a new backend:
    1. Create switchboard/storage/backends/<name>.py implementing KeyValueBackend.
    2. Add an entry to _REGISTRY below.
    3. Set  storage.backend: <name>  in config.yaml.
"""

from .base import KeyValueBackend

_REGISTRY: dict[str, type[KeyValueBackend]] = {}


def _register():
    global _REGISTRY
    if _REGISTRY:
        return
    from .memory import MemoryBackend
    from .sqlite import SQLiteBackend
    _REGISTRY["memory"] = MemoryBackend
    _REGISTRY["sqlite"] = SQLiteBackend


def make_backend(backend_type: str, **kwargs) -> KeyValueBackend:
    """
    Instantiate a key-value backend by name.

    Raises:
        ValueError: If the backend type is not registered.
    """
    _register()
    cls = _REGISTRY.get(backend_type)
    if cls is None:
        available = ", ".join(_REGISTRY.keys())
        raise ValueError(
            f"Unknown storage backend: '{backend_type}'. "
            f"Available: {available}"
        )
    return cls(**kwargs)


__all__ = ["KeyValueBackend", "make_backend"]
