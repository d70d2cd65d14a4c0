import sqlite3

from .base import KeyValueStore, StorageError

_SCHEMA = "CREATE TABLE IF NOT EXISTS kv_store (key TEXT PRIMARY KEY, value TEXT NOT NULL)"


class SqliteStore(KeyValueStore):
    def __init__(self, database: str = "categorizer.db") -> None:
        self.database = database
        try:
            with self._connect() as conn:
                conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot initialize {database}: {exc}") from exc

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.database)

    def _run(self, sql: str, params: tuple = ()) -> list[tuple]:
        conn = None
        try:
            conn = self._connect()
            with conn:
                rows = conn.execute(sql, params).fetchall()
            return rows
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite error on {self.database}: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def get(self, key: str) -> str | None:
        rows = self._run("SELECT value FROM kv_store WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self._run(
            "INSERT INTO kv_store (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def clear(self, key: str | None = None) -> None:
        if key is None:
            self._run("DELETE FROM kv_store")
        else:
            self._run("DELETE FROM kv_store WHERE key = ?", (key,))
