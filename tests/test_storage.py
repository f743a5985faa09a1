from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from google.api_core import exceptions as gexc

from video_translation.services.base import StorageError
from video_translation.storage import LocalObjectStore, StorageFacade, build_storage, keys
from video_translation.storage.gcs import GcsObjectStore


class FlakyStore:
    """In-memory backend that can be switched off."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.up = True
        self.objects: dict[str, bytes] = {}

    def _check(self) -> None:
        if not self.up:
            raise StorageError(f"{self.name} is down")

    def put(self, key: str, path: Path) -> int:
        self._check()
        self.objects[key] = Path(path).read_bytes()
        return len(self.objects[key])

    def get(self, key: str, dest: Path) -> Path:
        self._check()
        if key not in self.objects:
            raise StorageError("missing")
        Path(dest).write_bytes(self.objects[key])
        return Path(dest)

    def exists(self, key: str) -> bool:
        self._check()
        return key in self.objects

    def url(self, key: str, expires_s: int = 3600) -> str:
        self._check()
        return f"mem://{self.name}/{key}"

    def delete(self, key: str) -> None:
        self._check()
        self.objects.pop(key, None)

    def uri(self, key: str) -> str:
        return f"gs://bucket/{key}"


def _src(tmp_path: Path, data: bytes = b"payload") -> Path:
    p = tmp_path / "src.bin"
    p.write_bytes(data)
    return p


def test_local_store_round_trip(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path / "root")
    size = store.put("translated/job/a.mp4", _src(tmp_path))
    assert size == len(b"payload")
    assert store.exists("translated/job/a.mp4")
    got = store.get("translated/job/a.mp4", tmp_path / "out" / "a.mp4")
    assert got.read_bytes() == b"payload"
    assert store.url("translated/job/a.mp4").startswith("file://")
    store.delete("translated/job/a.mp4")
    assert not store.exists("translated/job/a.mp4")
    store.delete("translated/job/a.mp4")


@pytest.mark.parametrize("key", ["../escape.txt", "a/../../b", "", "/"])
def test_local_store_rejects_unsafe_keys(tmp_path: Path, key: str) -> None:
    store = LocalObjectStore(tmp_path / "root")
    with pytest.raises(StorageError):
        store.path_for(key)


def test_local_store_missing_object(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path / "root")
    with pytest.raises(StorageError):
        store.get("nope.bin", tmp_path / "x")
    with pytest.raises(StorageError):
        store.url("nope.bin")


def test_facade_writes_to_primary_when_up(tmp_path: Path) -> None:
    primary, secondary = FlakyStore("gcs"), FlakyStore("local")
    facade = StorageFacade(secondary=secondary, primary=primary)
    stored = facade.put("k1", _src(tmp_path))
    assert stored.backend == "gcs"
    assert "k1" in primary.objects
    assert "k1" not in secondary.objects
    assert facade.remote_uri("k1") == "gs://bucket/k1"


def test_facade_falls_back_and_reads_from_where_written(tmp_path: Path) -> None:
    primary, secondary = FlakyStore("gcs"), FlakyStore("local")
    facade = StorageFacade(secondary=secondary, primary=primary)

    primary.up = False
    stored = facade.put("k2", _src(tmp_path, b"fallback"))
    assert stored.backend == "local"
    assert facade.backend_of("k2") == "local"
    assert facade.remote_uri("k2") is None

    # primary recovers; the object is still served from the secondary
    primary.up = True
    assert facade.exists("k2")
    assert facade.get("k2", tmp_path / "k2.out").read_bytes() == b"fallback"
    assert facade.url("k2") == "mem://local/k2"


def test_facade_put_fails_only_when_every_backend_fails(tmp_path: Path) -> None:
    primary, secondary = FlakyStore("gcs"), FlakyStore("local")
    primary.up = secondary.up = False
    facade = StorageFacade(secondary=secondary, primary=primary)
    with pytest.raises(StorageError, match="every backend"):
        facade.put("k3", _src(tmp_path))


def test_facade_url_for_unknown_key(tmp_path: Path) -> None:
    facade = StorageFacade(secondary=FlakyStore("local"))
    assert not facade.exists("ghost")
    with pytest.raises(StorageError):
        facade.url("ghost")


def test_facade_delete_clears_all_backends(tmp_path: Path) -> None:
    primary, secondary = FlakyStore("gcs"), FlakyStore("local")
    facade = StorageFacade(secondary=secondary, primary=primary)
    facade.put("k4", _src(tmp_path))
    secondary.objects["k4"] = b"stale"
    facade.delete("k4")
    assert "k4" not in primary.objects
    assert "k4" not in secondary.objects
    assert facade.backend_of("k4") is None


def test_build_storage_local_only_has_no_primary() -> None:
    facade = build_storage(local_only=True)
    assert facade.primary is None
    assert isinstance(facade.secondary, LocalObjectStore)


def test_keys_layout() -> None:
    assert keys.output_suffix("talk.MKV") == ".mkv"
    assert keys.output_suffix("talk.avi") == ".mkv"
    assert keys.output_suffix("talk.mov") == ".mp4"
    assert keys.output_key("j1", "My Talk.mp4", "hi") == "translated/j1/My_Talk_hi.mp4"
    assert keys.audio_key("j1", "My Talk.mp4", "hi") == "translated/j1/My_Talk_hi_audio.mp3"
    assert keys.transcription_key("j1", "ta", 7, ".flac") == "transcription/j1/ta/chunk_007.flac"
    up = keys.upload_key("Clip.MP4")
    assert up.startswith("uploads/")
    assert up.endswith(".mp4")


class _Blob:
    def __init__(self, bucket: _Bucket, name: str) -> None:
        self.bucket = bucket
        self.name = name

    def upload_from_filename(self, filename: str) -> None:
        if self.bucket.fail:
            raise gexc.ServiceUnavailable("down")
        self.bucket.objects[self.name] = Path(filename).read_bytes()

    def download_to_filename(self, filename: str) -> None:
        if self.name not in self.bucket.objects:
            raise gexc.NotFound("no such object")
        Path(filename).write_bytes(self.bucket.objects[self.name])

    def exists(self) -> bool:
        return self.name in self.bucket.objects

    def generate_signed_url(self, **kw) -> str:
        self.bucket.signed.append(kw)
        return f"https://storage.googleapis.com/{self.name}?X-Goog-Signature=abc"

    def delete(self) -> None:
        if self.name not in self.bucket.objects:
            raise gexc.NotFound("no such object")
        del self.bucket.objects[self.name]


class _Bucket:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.signed: list[dict] = []
        self.fail = False

    def blob(self, name: str) -> _Blob:
        return _Blob(self, name)


def test_gcs_store_with_prefix(tmp_path: Path) -> None:
    bucket = _Bucket()
    client = SimpleNamespace(bucket=lambda name: bucket)
    store = GcsObjectStore("media", prefix="/vt/", client=client)

    assert store.put("uploads/a.mp4", _src(tmp_path)) == len(b"payload")
    assert "vt/uploads/a.mp4" in bucket.objects
    assert store.uri("uploads/a.mp4") == "gs://media/vt/uploads/a.mp4"
    assert store.exists("uploads/a.mp4")
    assert store.get("uploads/a.mp4", tmp_path / "dl.mp4").read_bytes() == b"payload"

    url = store.url("uploads/a.mp4", 600)
    assert "X-Goog-Signature" in url
    assert bucket.signed[0]["version"] == "v4"
    assert bucket.signed[0]["expiration"].total_seconds() == 600

    store.delete("uploads/a.mp4")
    store.delete("uploads/a.mp4")
    assert not store.exists("uploads/a.mp4")


def test_gcs_store_wraps_api_errors(tmp_path: Path) -> None:
    bucket = _Bucket()
    bucket.fail = True
    store = GcsObjectStore("media", client=SimpleNamespace(bucket=lambda name: bucket))
    with pytest.raises(StorageError):
        store.put("k", _src(tmp_path))
    with pytest.raises(StorageError):
        store.get("missing", tmp_path / "x")
    with pytest.raises(StorageError):
        GcsObjectStore("")
