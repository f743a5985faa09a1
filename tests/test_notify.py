from __future__ import annotations

import base64
import urllib.error

import pytest

from video_translation.config import get_settings
from video_translation.notify import ntfy
from video_translation.notify.base import Notification

NOTE = Notification(event="job.failed", title="Translation failed", message="job x failed", tags=["warning"])


def test_parse_auth_formats() -> None:
    assert ntfy._parse_auth("") == {}
    assert ntfy._parse_auth("Bearer abc") == {"Authorization": "Bearer abc"}
    assert ntfy._parse_auth("token:abc") == {"Authorization": "Bearer abc"}
    basic = base64.b64encode(b"user:pw").decode("ascii")
    assert ntfy._parse_auth("userpass:user:pw") == {"Authorization": f"Basic {basic}"}
    assert ntfy._parse_auth("user:pw") == {"Authorization": f"Basic {basic}"}
    assert ntfy._parse_auth("opaque") == {"Authorization": "Bearer opaque"}


def test_notify_disabled_is_a_no_op(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(**kw):
        raise AssertionError("should not post")

    monkeypatch.setattr(ntfy, "_post_ntfy", boom)
    assert ntfy.notify(NOTE) is False


def _enable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("NTFY_ENABLED", "1")
    monkeypatch.setenv("NTFY_BASE_URL", "https://ntfy.example.org")
    monkeypatch.setenv("NTFY_TOPIC", "video-jobs")
    monkeypatch.setenv("NTFY_AUTH", "token:s3cr3t-token")
    monkeypatch.setenv("NTFY_RETRIES", "2")
    get_settings.cache_clear()
    monkeypatch.setattr(ntfy, "_sleep_backoff", lambda attempt: None)


def test_notify_posts_with_auth(monkeypatch: pytest.MonkeyPatch) -> None:
    _enable(monkeypatch)
    seen: list[dict] = []

    def fake_post(**kw) -> int:
        seen.append(kw)
        return 200

    monkeypatch.setattr(ntfy, "_post_ntfy", fake_post)
    assert ntfy.notify(NOTE) is True
    assert seen[0]["base_url"] == "https://ntfy.example.org"
    assert seen[0]["topic"] == "video-jobs"
    assert seen[0]["auth_headers"] == {"Authorization": "Bearer s3cr3t-token"}


def test_notify_retries_server_errors_then_gives_up(monkeypatch: pytest.MonkeyPatch) -> None:
    _enable(monkeypatch)
    calls = {"n": 0}

    def fake_post(**kw) -> int:
        calls["n"] += 1
        raise urllib.error.HTTPError("https://ntfy.example.org/video-jobs", 503, "busy", None, None)

    monkeypatch.setattr(ntfy, "_post_ntfy", fake_post)
    assert ntfy.notify(NOTE) is False
    assert calls["n"] == 3


def test_notify_swallows_network_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    _enable(monkeypatch)

    def fake_post(**kw) -> int:
        raise OSError("connection refused")

    monkeypatch.setattr(ntfy, "_post_ntfy", fake_post)
    assert ntfy.notify(NOTE) is False
