from abc import ABC, abstractmethod


class StorageError(RuntimeError):
    """Raised when a backing store cannot be read or written."""


class KeyValueStore(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store the value, replacing any previous one."""
        pass

    @abstractmethod
    def clear(self, key: str | None = None) -> None:
        """Remove one key, or everything when no key is given."""
        pass
