"""Local JSON file store for the durable cache tier."""

import hashlib
import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from nutrition_lookup.services.cache import CacheStore


@dataclass
class JsonFileCacheStore(CacheStore):
    """Stores each cache key as one JSON document under a directory."""

    directory: Path

    @classmethod
    def create(cls, directory: str | Path) -> "JsonFileCacheStore":
        """Create a store, making the directory if needed."""
        path = Path(directory).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return cls(directory=path)

    def get(self, key: str) -> dict[str, object] | None:
        """Read a stored document."""
        path = self._path(key)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as handle:
            document = json.load(handle)
        if document.get("key") != key:
            return None
        return {"value": document["value"], "expires_at": document["expires_at"]}

    def set(self, key: str, payload: dict[str, object], expires_at: datetime) -> None:
        """Write a document atomically via a temp file and rename."""
        path = self._path(key)
        tmp_path = path.with_suffix(".tmp")
        document = {
            "key": key,
            "value": payload,
            "expires_at": expires_at.isoformat(),
        }
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(document, handle, ensure_ascii=False)
        os.replace(tmp_path, path)

    def delete(self, key: str) -> None:
        """Remove a stored document."""
        self._path(key).unlink(missing_ok=True)

    def clear(self) -> None:
        """Remove every stored document."""
        for path in self.directory.glob("*.json"):
            path.unlink(missing_ok=True)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / f"{digest}.json"
