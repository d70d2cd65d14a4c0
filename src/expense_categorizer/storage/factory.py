import os

from .base import KeyValueStore
from .file import JsonFileStore
from .memory import MemoryStore
from .sqlite import SqliteStore


def build_store(backend: str, data_dir: str = ".") -> KeyValueStore:
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqliteStore(os.path.join(data_dir, "categorizer.db"))
    if backend == "file":
        return JsonFileStore(os.path.join(data_dir, "categorizer.json"))
    raise ValueError(f"Unknown storage backend: {backend}")
