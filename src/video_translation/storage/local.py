from __future__ import annotations

import shutil
from pathlib import Path, PurePosixPath

from video_translation.services.base import StorageError
from video_translation.utils.io import atomic_copy, ensure_dir, file_size


def _safe_key(key: str) -> PurePosixPath:
    k = PurePosixPath(str(key or "").strip().lstrip("/"))
    if not k.parts or any(p in {"..", ""} for p in k.parts):
        raise StorageError(f"invalid storage key: {key!r}")
    return k


class LocalObjectStore:
    """Objects as plain files under one root directory."""

    name = "local"

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = ensure_dir(Path(base_dir).resolve())

    def path_for(self, key: str) -> Path:
        p = (self.base_dir / _safe_key(key)).resolve()
        if self.base_dir not in p.parents:
            raise StorageError(f"storage key escapes the storage root: {key!r}")
        return p

    def put(self, key: str, path: Path) -> int:
        src = Path(path)
        if not src.is_file():
            raise StorageError(f"source file missing: {src}")
        dst = self.path_for(key)
        try:
            atomic_copy(src, dst)
        except OSError as ex:
            raise StorageError(f"local put failed for {key}: {ex}") from ex
        return file_size(dst)

    def get(self, key: str, dest: Path) -> Path:
        src = self.path_for(key)
        if not src.is_file():
            raise StorageError(f"object not found: {key}")
        dest = Path(dest)
        ensure_dir(dest.parent)
        shutil.copyfile(src, dest)
        return dest

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def url(self, key: str, expires_s: int = 3600) -> str:
        p = self.path_for(key)
        if not p.is_file():
            raise StorageError(f"object not found: {key}")
        return p.as_uri()

    def delete(self, key: str) -> None:
        self.path_for(key).unlink(missing_ok=True)
