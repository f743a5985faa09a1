from __future__ import annotations

import pytest

from video_translation.config import get_settings


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path_factory.mktemp("vt_test")
    for sub in ("work", "logs", "_state", "storage"):
        (root / sub).mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("VT_WORK_DIR", str(root / "work"))
    monkeypatch.setenv("VT_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("VT_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("VT_LOCAL_STORAGE_DIR", str(root / "storage"))
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("NTFY_ENABLED", "0")
    get_settings.cache_clear()
