"""Per-user key/value settings persisted in SQLite."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from dockscan.discovery.types import BackendPreference
from dockscan.infrastructure.config import SETTINGS_DB_PATH
from dockscan.infrastructure.logger import logger

BACKEND_PREFERENCE_KEY = "backend_preference"
CUSTOM_SOCKET_PATH_KEY = "custom_socket_path"


class SettingsStore:
    """Key/value store for the handful of persisted user choices.

    Only the backend preference and the custom socket path are stored.
    """

    def __init__(self, path: Path | str | None = SETTINGS_DB_PATH) -> None:
        if path is None or str(path) == ":memory:":
            self._db = sqlite3.connect(":memory:")
        else:
            db_path = Path(path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = sqlite3.connect(str(db_path))
        self._db.execute("CREATE TABLE IF NOT EXISTS settings (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        self._db.commit()

    @classmethod
    def in_memory(cls) -> SettingsStore:
        return cls(None)

    def get(self, key: str) -> str | None:
        row = self._db.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._db.execute("INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)", (key, value))
        self._db.commit()

    def delete(self, key: str) -> None:
        self._db.execute("DELETE FROM settings WHERE key = ?", (key,))
        self._db.commit()

    @property
    def backend_preference(self) -> BackendPreference:
        raw = self.get(BACKEND_PREFERENCE_KEY)
        if raw is None:
            return BackendPreference.AUTOMATIC
        try:
            return BackendPreference(raw)
        except ValueError:
            logger.warning("Ignoring unknown backend preference", value=raw)
            return BackendPreference.AUTOMATIC

    @backend_preference.setter
    def backend_preference(self, preference: BackendPreference) -> None:
        self.set(BACKEND_PREFERENCE_KEY, preference.value)

    @property
    def custom_socket_path(self) -> str | None:
        return self.get(CUSTOM_SOCKET_PATH_KEY) or None

    @custom_socket_path.setter
    def custom_socket_path(self, path: str | None) -> None:
        if path:
            self.set(CUSTOM_SOCKET_PATH_KEY, path)
        else:
            self.delete(CUSTOM_SOCKET_PATH_KEY)

    def close(self) -> None:
        self._db.close()
