from __future__ import annotations

import base64
import random
import ssl
import time
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any

from video_translation.config import get_settings
from video_translation.utils.log import logger

from .base import Notification

# Statuses worth another attempt; anything else non-2xx is final.
_TRANSIENT = frozenset({408, 425, 429})


@dataclass(frozen=True, slots=True)
class _Target:
    base_url: str
    topic: str
    auth_headers: dict[str, str] = field(default_factory=dict)
    timeout_sec: float = 5.0
    retries: int = 3
    tls_insecure: bool = False


def _basic(user: str, pw: str) -> dict[str, str]:
    token = base64.b64encode(f"{user}:{pw}".encode()).decode("ascii")
    return {"Authorization": f"Basic {token}"}


def _parse_auth(raw: str) -> dict[str, str]:
    """
    NTFY_AUTH accepts "Bearer <token>", "token:<token>",
    "userpass:<user>:<pass>" or "<user>:<pass>"; anything else is sent as a
    bearer token.
    """
    v = (raw or "").strip()
    if not v:
        return {}
    lowered = v.lower()
    if lowered.startswith("bearer "):
        return {"Authorization": v}
    if lowered.startswith("token:"):
        return {"Authorization": f"Bearer {v[len('token:'):].strip()}"}
    if lowered.startswith("userpass:"):
        user, sep, pw = v[len("userpass:"):].partition(":")
        return _basic(user, pw) if sep else {}
    if ":" in v and not lowered.startswith("http"):
        user, _, pw = v.partition(":")
        return _basic(user, pw)
    return {"Authorization": f"Bearer {v}"}


def _target_from_settings(s: Any) -> _Target | None:
    if not bool(getattr(s, "ntfy_enabled", False)):
        return None
    base = str(getattr(s, "ntfy_base_url", "") or "").strip()
    topic = str(getattr(s, "ntfy_topic", "") or "").strip()
    if not base or not topic:
        logger.debug("ntfy_not_configured")
        return None
    secret = getattr(s, "ntfy_auth", None)
    raw = secret.get_secret_value() if secret is not None else ""
    return _Target(
        base_url=base,
        topic=topic,
        auth_headers=_parse_auth(raw),
        timeout_sec=float(getattr(s, "ntfy_timeout_sec", 5.0) or 5.0),
        retries=max(0, int(getattr(s, "ntfy_retries", 3) or 0)),
        tls_insecure=bool(getattr(s, "ntfy_tls_insecure", False)),
    )


def _sleep_backoff(attempt: int) -> None:
    time.sleep(min(6.0, 0.5 * (2 ** max(0, attempt))) + random.random() * 0.25)


def _post_ntfy(
    *,
    base_url: str,
    topic: str,
    payload: Notification,
    auth_headers: dict[str, str],
    timeout_sec: float,
    tls_insecure: bool,
) -> int:
    headers = {
        "Content-Type": "text/plain; charset=utf-8",
        "Title": payload.title or "Video translation",
    }
    tags = [str(t).strip() for t in (payload.tags or ()) if str(t).strip()]
    if tags:
        headers["Tags"] = ",".join(tags)
    if payload.priority is not None:
        headers["Priority"] = str(max(1, min(5, int(payload.priority))))
    if payload.url:
        headers["Click"] = str(payload.url)
    headers.update({k: v for k, v in auth_headers.items() if k and v})

    req = urllib.request.Request(
        f"{base_url.rstrip('/')}/{topic}",
        data=(payload.message or "").encode("utf-8"),
        headers=headers,
        method="POST",
    )
    ctx = ssl._create_unverified_context() if tls_insecure else None
    with urllib.request.urlopen(req, timeout=timeout_sec, context=ctx) as resp:
        return int(getattr(resp, "status", 200) or 200)


def _should_retry(status: int | None) -> bool:
    # None means the request never got a response.
    return status is None or status in _TRANSIENT or status >= 500


def notify(payload: Notification, *, settings: Any = None) -> bool:
    """
    Publish `payload` to the configured ntfy topic.

    Returns True on a 2xx. Delivery problems are logged and reported as
    False; this never raises.
    """
    target = _target_from_settings(settings or get_settings())
    if target is None:
        return False

    status: int | None = None
    for attempt in range(target.retries + 1):
        status = None
        try:
            status = _post_ntfy(
                base_url=target.base_url,
                topic=target.topic,
                payload=payload,
                auth_headers=target.auth_headers,
                timeout_sec=target.timeout_sec,
                tls_insecure=target.tls_insecure,
            )
        except urllib.error.HTTPError as ex:
            status = int(ex.code)
        except Exception as ex:
            logger.warning("ntfy_post_failed", attempt=attempt + 1, error=str(ex)[:200])
        if status is not None and 200 <= status < 300:
            break
        if not _should_retry(status) or attempt >= target.retries:
            break
        _sleep_backoff(attempt)

    ok = status is not None and 200 <= status < 300
    # topic and auth stay out of the log
    logger.info("ntfy_notify", ok=ok, notify_event=payload.event, job_id=payload.job_id, status=status)
    return ok
