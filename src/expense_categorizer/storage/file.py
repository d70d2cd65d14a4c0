import json
import os

from expense_categorizer.logger import get_logger

from .base import KeyValueStore, StorageError

logger = get_logger(__name__)


class JsonFileStore(KeyValueStore):
    """All keys live in one JSON object; writes go through a temp file and a rename."""

    def __init__(self, data_path: str = "categorizer.json") -> None:
        self.data_path = data_path

    def _read(self) -> dict[str, str]:
        if not os.path.exists(self.data_path):
            return {}
        try:
            with open(self.data_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as exc:
            raise StorageError(f"Cannot read {self.data_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self.data_path}")
        return data

    def _write(self, data: dict[str, str]) -> None:
        directory = os.path.dirname(self.data_path)
        tmp_path = f"{self.data_path}.tmp"
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.data_path)
        except OSError as exc:
            raise StorageError(f"Cannot write {self.data_path}: {exc}") from exc

    def get(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        try:
            data = self._read()
        except StorageError:
            logger.warning("[STORE] %s is unreadable and will be overwritten.", self.data_path)
            data = {}
        data[key] = value
        self._write(data)

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._write({})
            return
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)
