from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    """
    Default application root.

      - Docker: /app
      - Local/dev: current working directory
    """
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    if Path("/app").exists():
        return Path("/app").resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- core paths ---
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")
    work_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "work").resolve(), alias="VT_WORK_DIR"
    )
    log_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="VT_LOG_DIR"
    )
    # Runtime-only state (job DB). If unset, defaults to "<VT_WORK_DIR>/_state".
    state_dir: Path | None = Field(default=None, alias="VT_STATE_DIR")
    jobs_db_name: str = Field(default="jobs.db", alias="VT_JOBS_DB_NAME")
    # Secondary (and local-only) object storage root.
    local_storage_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "storage").resolve(), alias="VT_LOCAL_STORAGE_DIR"
    )

    # --- tool binaries ---
    ffmpeg_bin: str = Field(default="ffmpeg", alias="FFMPEG_BIN")
    ffprobe_bin: str = Field(default="ffprobe", alias="FFPROBE_BIN")

    # --- tool timeouts (seconds) ---
    tool_quick_timeout_s: float = Field(default=30.0, alias="TOOL_QUICK_TIMEOUT_S")
    tool_extract_timeout_s: float = Field(default=120.0, alias="TOOL_EXTRACT_TIMEOUT_S")
    tool_merge_timeout_s: float = Field(default=180.0, alias="TOOL_MERGE_TIMEOUT_S")
    # One entry per mux strategy, in ladder order.
    mux_timeouts_s: str = Field(default="30,60,90,120,180", alias="MUX_TIMEOUTS_S")

    # --- processing ---
    chunk_duration_s: int = Field(default=60, alias="CHUNK_DURATION_S")
    max_concurrent_jobs: int = Field(default=5, alias="MAX_CONCURRENT_JOBS")
    retry_attempts: int = Field(default=3, alias="RETRY_ATTEMPTS")
    retry_delay_s: float = Field(default=5.0, alias="RETRY_DELAY_S")
    supported_video_formats: str = Field(default="mp4,avi,mov,mkv,wmv", alias="SUPPORTED_VIDEO_FORMATS")
    max_duration_s: float = Field(default=3600.0, alias="MAX_DURATION_S")
    video_bitrate: str = Field(default="2000k", alias="VIDEO_BITRATE")
    audio_bitrate: str = Field(default="128k", alias="AUDIO_BITRATE")
    audio_sample_rate: int = Field(default=16000, alias="AUDIO_SAMPLE_RATE")
    substitute_silence_on_chunk_failure: bool = Field(
        default=True, alias="SUBSTITUTE_SILENCE_ON_CHUNK_FAILURE"
    )
    require_successful_language: bool = Field(default=True, alias="REQUIRE_SUCCESSFUL_LANGUAGE")

    # --- recognition ---
    recognition_poll_interval_s: float = Field(default=5.0, alias="RECOGNITION_POLL_INTERVAL_S")
    recognition_poll_attempts: int = Field(default=60, alias="RECOGNITION_POLL_ATTEMPTS")
    recognition_max_alternatives: int = Field(default=3, alias="RECOGNITION_MAX_ALTERNATIVES")
    recognition_model: str = Field(default="latest_long", alias="RECOGNITION_MODEL")
    recognition_speaker_diarization: bool = Field(
        default=False, alias="RECOGNITION_SPEAKER_DIARIZATION"
    )
    recognition_max_speakers: int = Field(default=2, alias="RECOGNITION_MAX_SPEAKERS")

    # --- translation ---
    translation_max_chars: int = Field(default=5000, alias="TRANSLATION_MAX_CHARS")
    translation_pivot_language: str = Field(default="en", alias="TRANSLATION_PIVOT_LANGUAGE")
    # Comma-separated "src:tgt" pairs translated in one hop; "*" means every pair.
    translation_direct_pairs: str = Field(
        default=(
            "en:hi,en:ta,en:te,en:kn,en:ml,en:bn,en:mr,en:gu,en:pa,en:ur,"
            "hi:en,ta:en,te:en,kn:en,ml:en,bn:en,mr:en,gu:en,pa:en,ur:en"
        ),
        alias="TRANSLATION_DIRECT_PAIRS",
    )

    # --- synthesis ---
    synthesis_max_chars: int = Field(default=3000, alias="SYNTHESIS_MAX_CHARS")
    synthesis_audio_format: str = Field(default="mp3", alias="SYNTHESIS_AUDIO_FORMAT")
    # Coarse byte-rate gender guess; off until a real classifier exists.
    gender_voice_selection: bool = Field(default=False, alias="GENDER_VOICE_SELECTION")
    default_voice: str = Field(default="en-US-Standard-C", alias="DEFAULT_VOICE")
    # Comma-separated "lang:female_voice[/male_voice]" entries.
    voice_table: str = Field(
        default=(
            "en:en-US-Standard-C/en-US-Standard-B,"
            "hi:hi-IN-Standard-A/hi-IN-Standard-B,"
            "ta:ta-IN-Standard-A/ta-IN-Standard-B,"
            "ar:ar-XA-Standard-A/ar-XA-Standard-B,"
            "ko:ko-KR-Standard-A/ko-KR-Standard-C,"
            "zh:cmn-CN-Standard-A/cmn-CN-Standard-B"
        ),
        alias="VOICE_TABLE",
    )

    # --- storage ---
    storage_backend: str = Field(default="local", alias="STORAGE_BACKEND")  # gcs|local
    gcs_bucket: str = Field(default="", alias="GCS_BUCKET")
    gcs_prefix: str = Field(default="", alias="GCS_PREFIX")
    signed_url_expiry_s: int = Field(default=3600, alias="SIGNED_URL_EXPIRY_S")
    gcp_project: str = Field(default="", alias="GCP_PROJECT")
    gcp_location: str = Field(default="global", alias="GCP_LOCATION")

    # --- notifications (ntfy) ---
    ntfy_enabled: bool = Field(default=False, alias="NTFY_ENABLED")
    ntfy_base_url: str = Field(default="", alias="NTFY_BASE_URL")
    ntfy_topic: str = Field(default="", alias="NTFY_TOPIC")
    ntfy_timeout_sec: float = Field(default=5.0, alias="NTFY_TIMEOUT_SEC")
    ntfy_retries: int = Field(default=3, alias="NTFY_RETRIES")
    ntfy_tls_insecure: bool = Field(default=False, alias="NTFY_TLS_INSECURE")

    # --- logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    @field_validator("chunk_duration_s")
    @classmethod
    def _chunk_floor(cls, v: int) -> int:
        if int(v) < 5:
            raise ValueError("CHUNK_DURATION_S must be >= 5")
        return int(v)

    @field_validator("max_concurrent_jobs", "recognition_poll_attempts")
    @classmethod
    def _positive(cls, v: int) -> int:
        if int(v) < 1:
            raise ValueError("must be >= 1")
        return int(v)

    def resolved_state_dir(self) -> Path:
        return Path(self.state_dir) if self.state_dir else Path(self.work_dir) / "_state"

    def video_format_list(self) -> list[str]:
        return [
            f.strip().lower().lstrip(".")
            for f in str(self.supported_video_formats or "").split(",")
            if f.strip()
        ]

    def mux_timeout_list(self) -> list[float]:
        out: list[float] = []
        for part in str(self.mux_timeouts_s or "").split(","):
            part = part.strip()
            if part:
                out.append(float(part))
        return out or [30.0, 60.0, 90.0, 120.0, 180.0]

    def direct_pair_set(self) -> set[tuple[str, str]]:
        pairs: set[tuple[str, str]] = set()
        for item in str(self.translation_direct_pairs or "").split(","):
            item = item.strip().lower()
            if item == "*":
                pairs.add(("*", "*"))
            elif ":" in item:
                src, tgt = item.split(":", 1)
                pairs.add((src.strip(), tgt.strip()))
        return pairs

    def voice_map(self) -> dict[str, tuple[str, str]]:
        """Language -> (female voice, male voice). Male falls back to female."""
        out: dict[str, tuple[str, str]] = {}
        for item in str(self.voice_table or "").split(","):
            if ":" not in item:
                continue
            lang, voices = item.split(":", 1)
            female, _, male = voices.strip().partition("/")
            if female.strip():
                out[lang.strip().lower()] = (female.strip(), (male or female).strip())
        return out
