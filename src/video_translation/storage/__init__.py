from __future__ import annotations

from pathlib import Path
from typing import Any

from .facade import StorageFacade, StoredObject
from .local import LocalObjectStore

__all__ = ["LocalObjectStore", "StorageFacade", "StoredObject", "build_storage"]


def build_storage(settings: Any = None, *, local_only: bool = False) -> StorageFacade:
    if settings is None:
        from video_translation.config import get_settings

        settings = get_settings()
    secondary = LocalObjectStore(Path(settings.local_storage_dir))
    backend = str(settings.storage_backend or "local").strip().lower()
    if local_only or backend != "gcs":
        return StorageFacade(secondary=secondary)

    from .gcs import GcsObjectStore

    primary = GcsObjectStore(str(settings.gcs_bucket), prefix=str(settings.gcs_prefix or ""))
    return StorageFacade(secondary=secondary, primary=primary)
