from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

from video_translation.services.base import ObjectStore, StorageError
from video_translation.utils.log import logger


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    backend: str
    size_bytes: int


class StorageFacade:
    """
    Primary/secondary object storage.

    Writes go to the primary and fall back to the secondary on any failure.
    Reads try the backend the key was written to first, then the others, so a
    key written during a primary outage stays readable after it recovers.
    """

    def __init__(self, secondary: ObjectStore, primary: ObjectStore | None = None) -> None:
        self.primary = primary
        self.secondary = secondary
        self._placement: dict[str, str] = {}
        self._lock = threading.Lock()

    def _stores(self) -> list[ObjectStore]:
        return [s for s in (self.primary, self.secondary) if s is not None]

    def _chain(self, key: str) -> list[ObjectStore]:
        stores = self._stores()
        with self._lock:
            placed = self._placement.get(key)
        if placed:
            stores.sort(key=lambda s: 0 if s.name == placed else 1)
        return stores

    def backend_of(self, key: str) -> str | None:
        with self._lock:
            return self._placement.get(key)

    def put(self, key: str, path: Path) -> StoredObject:
        errors: list[str] = []
        for store in self._stores():
            try:
                size = store.put(key, Path(path))
            except Exception as ex:
                errors.append(f"{store.name}: {ex}")
                logger.warning("storage_put_failed", key=key, backend=store.name, error=str(ex))
                continue
            with self._lock:
                self._placement[key] = store.name
            if store is not self._stores()[0]:
                logger.warning("storage_fallback_used", key=key, backend=store.name)
            return StoredObject(key=key, backend=store.name, size_bytes=int(size))
        raise StorageError(f"put failed on every backend for {key}: {'; '.join(errors)}")

    def get(self, key: str, dest: Path) -> Path:
        errors: list[str] = []
        for store in self._chain(key):
            try:
                return store.get(key, Path(dest))
            except Exception as ex:
                errors.append(f"{store.name}: {ex}")
        raise StorageError(f"get failed for {key}: {'; '.join(errors)}")

    def exists(self, key: str) -> bool:
        for store in self._chain(key):
            try:
                if store.exists(key):
                    return True
            except Exception as ex:
                logger.warning("storage_exists_failed", key=key, backend=store.name, error=str(ex))
        return False

    def url(self, key: str, expires_s: int = 3600) -> str:
        errors: list[str] = []
        for store in self._chain(key):
            try:
                if store.exists(key):
                    return store.url(key, expires_s)
            except Exception as ex:
                errors.append(f"{store.name}: {ex}")
        raise StorageError(f"no backend can serve {key}: {'; '.join(errors) or 'not found'}")

    def delete(self, key: str) -> None:
        for store in self._stores():
            try:
                store.delete(key)
            except Exception as ex:
                logger.warning("storage_delete_failed", key=key, backend=store.name, error=str(ex))
        with self._lock:
            self._placement.pop(key, None)

    def remote_uri(self, key: str) -> str | None:
        """URI a cloud service can read directly, when the key lives on the primary."""
        if self.primary is None or self.backend_of(key) != self.primary.name:
            return None
        uri = getattr(self.primary, "uri", None)
        return uri(key) if callable(uri) else None
