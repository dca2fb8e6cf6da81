"""Key-value persistence backends for the project store."""

import os
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import PersistenceWarning

SAVED_IDEAS_KEY = "ai_story_crafter_saved_ideas"
PROJECTS_KEY = "ai_story_crafter_projects"


class KeyValueStorage(ABC):
    """Get/set access to serialized collections."""

    @abstractmethod
    def load(self, key: str) -> str | None:
        """Return the stored value for ``key`` or None if absent."""

    @abstractmethod
    def save(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""


class MemoryStorage(KeyValueStorage):
    """Storage kept in a dict for the lifetime of the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data = dict(initial or {})

    def load(self, key: str) -> str | None:
        return self.data.get(key)

    def save(self, key: str, value: str) -> None:
        self.data[key] = value


class JsonFileStorage(KeyValueStorage):
    """Storage writing one ``<key>.json`` file per key into a directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            msg = f"Failed to read {path}: {e}"
            raise PersistenceWarning(msg, key=key) from e

    def save(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            msg = f"Failed to write {path}: {e}"
            raise PersistenceWarning(msg, key=key) from e
