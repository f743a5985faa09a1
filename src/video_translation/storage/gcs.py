from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Any

from google.api_core import exceptions as gexc
from google.cloud import storage as gcs

from video_translation.services.base import StorageError
from video_translation.utils.io import ensure_dir, file_size


class GcsObjectStore:
    """Google Cloud Storage bucket (optionally under a key prefix)."""

    name = "gcs"

    def __init__(self, bucket: str, *, prefix: str = "", client: Any = None) -> None:
        if not bucket:
            raise StorageError("GCS bucket name is required")
        self.bucket_name = bucket
        self.prefix = str(prefix or "").strip("/")
        self._client = client

    def _bucket(self) -> Any:
        if self._client is None:
            self._client = gcs.Client()
        return self._client.bucket(self.bucket_name)

    def object_name(self, key: str) -> str:
        k = str(key).lstrip("/")
        return f"{self.prefix}/{k}" if self.prefix else k

    def uri(self, key: str) -> str:
        return f"gs://{self.bucket_name}/{self.object_name(key)}"

    def put(self, key: str, path: Path) -> int:
        try:
            self._bucket().blob(self.object_name(key)).upload_from_filename(str(path))
        except (gexc.GoogleAPIError, OSError) as ex:
            raise StorageError(f"gcs upload failed for {key}: {ex}") from ex
        return file_size(Path(path))

    def get(self, key: str, dest: Path) -> Path:
        dest = Path(dest)
        ensure_dir(dest.parent)
        try:
            self._bucket().blob(self.object_name(key)).download_to_filename(str(dest))
        except gexc.NotFound as ex:
            raise StorageError(f"object not found: {key}") from ex
        except (gexc.GoogleAPIError, OSError) as ex:
            raise StorageError(f"gcs download failed for {key}: {ex}") from ex
        return dest

    def exists(self, key: str) -> bool:
        try:
            return bool(self._bucket().blob(self.object_name(key)).exists())
        except gexc.GoogleAPIError as ex:
            raise StorageError(f"gcs exists check failed for {key}: {ex}") from ex

    def url(self, key: str, expires_s: int = 3600) -> str:
        try:
            return self._bucket().blob(self.object_name(key)).generate_signed_url(
                version="v4", expiration=timedelta(seconds=int(expires_s)), method="GET"
            )
        except (gexc.GoogleAPIError, AttributeError, ValueError) as ex:
            raise StorageError(f"gcs signed url failed for {key}: {ex}") from ex

    def delete(self, key: str) -> None:
        try:
            self._bucket().blob(self.object_name(key)).delete()
        except gexc.NotFound:
            return
        except gexc.GoogleAPIError as ex:
            raise StorageError(f"gcs delete failed for {key}: {ex}") from ex
