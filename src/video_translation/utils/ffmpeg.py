from __future__ import annotations

# Canonical ffmpeg/ffprobe access for the pipeline.
#
# Stages never build a subprocess themselves: they receive a MediaTools
# instance whose binaries, timeouts and runner are fixed at construction.
import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from video_translation.utils.ffmpeg_safe import ToolError, ToolResult, ToolRunner, run_tool


@dataclass(frozen=True, slots=True)
class ToolConfig:
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    quick_timeout_s: float = 30.0
    extract_timeout_s: float = 120.0
    merge_timeout_s: float = 180.0
    mux_timeouts_s: tuple[float, ...] = (30.0, 60.0, 90.0, 120.0, 180.0)
    sample_rate: int = 16000
    audio_bitrate: str = "128k"
    video_bitrate: str = "2000k"


def build_tool_config(settings: Any = None) -> ToolConfig:
    if settings is None:
        from video_translation.config import get_settings

        settings = get_settings()
    return ToolConfig(
        ffmpeg_bin=str(settings.ffmpeg_bin),
        ffprobe_bin=str(settings.ffprobe_bin),
        quick_timeout_s=float(settings.tool_quick_timeout_s),
        extract_timeout_s=float(settings.tool_extract_timeout_s),
        merge_timeout_s=float(settings.tool_merge_timeout_s),
        mux_timeouts_s=tuple(settings.public.mux_timeout_list()),
        sample_rate=int(settings.audio_sample_rate),
        audio_bitrate=str(settings.audio_bitrate),
        video_bitrate=str(settings.video_bitrate),
    )


@dataclass(frozen=True, slots=True)
class MediaInfo:
    format_name: str
    duration_s: float
    width: int
    height: int
    has_video: bool
    has_audio: bool
    size_bytes: int


class MediaTools:
    def __init__(self, config: ToolConfig | None = None, *, runner: ToolRunner = run_tool) -> None:
        self.config = config or ToolConfig()
        self._runner = runner

    def ffmpeg(self, args: Sequence[str], *, timeout_s: float | None = None) -> ToolResult:
        argv = [self.config.ffmpeg_bin, "-hide_banner", "-loglevel", "error", "-y", *map(str, args)]
        return self._runner(argv, timeout_s=float(timeout_s or self.config.quick_timeout_s))

    def ffprobe(self, args: Sequence[str], *, timeout_s: float | None = None) -> ToolResult:
        argv = [self.config.ffprobe_bin, "-v", "error", *map(str, args)]
        return self._runner(argv, timeout_s=float(timeout_s or self.config.quick_timeout_s))

    def probe_duration(self, path: Path) -> float:
        res = self.ffprobe(
            [
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                str(path),
            ]
        )
        raw = (res.stdout or "").strip().splitlines()
        try:
            return float(raw[0]) if raw else 0.0
        except ValueError as ex:
            raise ToolError(f"ffprobe returned a non-numeric duration: {raw[0]!r}") from ex

    def probe_info(self, path: Path) -> MediaInfo:
        """
        Container/stream summary. The first video stream supplies width/height.
        """
        res = self.ffprobe(["-print_format", "json", "-show_format", "-show_streams", str(path)])
        try:
            data = json.loads(res.stdout) if res.stdout.strip() else {}
        except ValueError as ex:
            raise ToolError(f"ffprobe returned invalid JSON: {ex}") from ex

        fmt = data.get("format") if isinstance(data, dict) else None
        streams = data.get("streams") if isinstance(data, dict) else None
        fmt = fmt if isinstance(fmt, dict) else {}
        streams = streams if isinstance(streams, list) else []

        width = height = 0
        has_video = has_audio = False
        for st in streams:
            if not isinstance(st, dict):
                continue
            kind = str(st.get("codec_type") or "")
            if kind == "audio":
                has_audio = True
            elif kind == "video" and not has_video:
                has_video = True
                width = int(st.get("width") or 0)
                height = int(st.get("height") or 0)

        size = 0
        if Path(path).exists():
            size = Path(path).stat().st_size
        return MediaInfo(
            format_name=str(fmt.get("format_name") or "").strip(),
            duration_s=float(fmt.get("duration") or 0.0),
            width=width,
            height=height,
            has_video=has_video,
            has_audio=has_audio,
            size_bytes=int(size),
        )
