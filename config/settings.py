from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig

_STORAGE_BACKENDS = ("gcs", "local")


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Dot-access view over both config sources.

    A name defined on SecretConfig shadows the same name on PublicConfig.
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if hasattr(self.secret, name):
            return getattr(self.secret, name)
        return getattr(self.public, name)


def _is_set(value: Any) -> bool:
    if isinstance(value, SecretStr):
        return bool(value.get_secret_value())
    return value is not None and bool(str(value).strip())


def _validate(s: Settings) -> None:
    """
    Cross-field checks; raise ConfigError for contradictions.

    Missing cloud credentials only warn: local-only runs need none of them.
    """
    pub = s.public
    backend = str(pub.storage_backend or "local").strip().lower()
    problems: list[str] = []
    if backend not in _STORAGE_BACKENDS:
        problems.append(f"STORAGE_BACKEND must be one of {', '.join(_STORAGE_BACKENDS)} (got {backend!r})")
    elif backend == "gcs" and not str(pub.gcs_bucket or "").strip():
        problems.append("STORAGE_BACKEND=gcs requires GCS_BUCKET")
    if not pub.video_format_list():
        problems.append("SUPPORTED_VIDEO_FORMATS is empty")
    if any(t <= 0 for t in pub.mux_timeout_list()):
        problems.append("MUX_TIMEOUTS_S entries must be positive")
    if problems:
        raise ConfigError("; ".join(problems))

    missing = [] if _is_set(s.secret.google_api_key) else ["GOOGLE_API_KEY"]
    if backend == "gcs" and not str(pub.gcp_project or "").strip():
        missing.append("GCP_PROJECT")
    if missing:
        logging.getLogger("video_translation").warning(
            "cloud_credentials_incomplete",
            extra={"missing": missing, "storage_backend": backend},
        )


def get_safe_config_report() -> dict[str, Any]:
    """
    Effective configuration for `video-translate config`.

    Public values verbatim (paths as strings); secrets only as SET/UNSET.
    """
    s = get_settings()
    public = {
        k: (str(v) if isinstance(v, Path) else v) for k, v in s.public.model_dump().items()
    }
    secrets = {
        k: ("SET" if _is_set(getattr(s.secret, k, None)) else "UNSET")
        for k in sorted(type(s.secret).model_fields)
    }
    return {"public": public, "secrets": secrets}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, merge and validate both config sources once per process."""
    try:
        s = Settings(public=PublicConfig(), secret=SecretConfig())
    except ValueError as ex:
        raise ConfigError(f"Invalid configuration: {ex}") from ex
    _validate(s)
    return s
