"""Durable string-keyed storage backends used by the progress and score stores.

Architecture note:
    The stores above this layer only ever read and write JSON strings, which
    mirrors the shared-preferences storage a mobile client has available. The
    desktop/server build keeps those strings in an INI file through
    ``QSettings`` so that progress survives a process restart; tests and
    throwaway runs use the in-memory backend.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from PySide6.QtCore import QSettings


class StoreError(Exception):
    """Raised when the durable store cannot be read or written."""


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class InMemoryKeyValueStore:
    """Process-local store; contents are lost on exit."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._values)


class QSettingsKeyValueStore:
    """INI-file backed store that flushes every write to disk."""

    def __init__(self, file_path: Path) -> None:
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        self._file_path = file_path
        self._settings = QSettings(str(file_path), QSettings.Format.IniFormat)

    @property
    def file_path(self) -> Path:
        return self._file_path

    def get(self, key: str) -> str | None:
        value = self._settings.value(key)
        if value is None:
            return None
        return str(value)

    def set(self, key: str, value: str) -> None:
        self._settings.setValue(key, value)
        self._sync()

    def remove(self, key: str) -> None:
        self._settings.remove(key)
        self._sync()

    def keys(self) -> list[str]:
        return list(self._settings.allKeys())

    def _sync(self) -> None:
        self._settings.sync()
        status = self._settings.status()
        if status != QSettings.Status.NoError:
            raise StoreError(f"Could not write {self._file_path}: {status.name}")
