from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.ffmpeg_safe import ToolError
from video_translation.utils.io import ensure_dir, file_size
from video_translation.utils.ladder import Strategy, run_ladder
from video_translation.utils.log import logger


class MediaValidationError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class SourceInfo:
    path: Path
    duration_s: float
    size_bytes: int
    format_name: str
    width: int
    height: int


def validate_video(
    tools: MediaTools,
    path: Path,
    *,
    supported_formats: Sequence[str],
    max_duration_s: float,
) -> SourceInfo:
    """
    Reject sources the pipeline cannot handle before any real work starts.
    """
    path = Path(path)
    ext = path.suffix.lower().lstrip(".")
    allowed = {f.lower().lstrip(".") for f in supported_formats}
    if ext not in allowed:
        raise MediaValidationError(
            f"unsupported video format {ext or '(none)'!r}; expected one of {sorted(allowed)}"
        )
    if not path.is_file():
        raise MediaValidationError(f"video not found: {path}")
    size = file_size(path)
    if size <= 0:
        raise MediaValidationError(f"video is empty: {path}")

    try:
        info = tools.probe_info(path)
    except ToolError as ex:
        raise MediaValidationError(f"could not read video metadata: {ex}") from ex
    if not info.has_video:
        raise MediaValidationError("source has no video stream")
    if info.duration_s <= 0:
        raise MediaValidationError("could not determine video duration")
    if info.duration_s > float(max_duration_s):
        raise MediaValidationError(
            f"video is {info.duration_s:.0f}s long; the limit is {float(max_duration_s):.0f}s"
        )
    return SourceInfo(
        path=path,
        duration_s=info.duration_s,
        size_bytes=size,
        format_name=info.format_name,
        width=info.width,
        height=info.height,
    )


def _require_output(path: Path) -> None:
    if file_size(path) <= 0:
        raise ToolError(f"no output written: {path}")


def extract_audio(tools: MediaTools, video: Path, out_dir: Path) -> Path:
    """
    Mono 16 kHz narration track from `video`.

    Tries MP3 first, then PCM WAV; returns whichever was produced.
    """
    ensure_dir(out_dir)
    cfg = tools.config
    mp3 = out_dir / "audio.mp3"
    wav = out_dir / "audio.wav"

    def _mp3(timeout: float) -> Path:
        tools.ffmpeg(
            [
                "-i", str(video), "-vn",
                "-ac", "1", "-ar", str(cfg.sample_rate),
                "-c:a", "libmp3lame", "-b:a", cfg.audio_bitrate,
                str(mp3),
            ],
            timeout_s=timeout,
        )
        return mp3

    def _wav(timeout: float) -> Path:
        tools.ffmpeg(
            ["-i", str(video), "-vn", "-ac", "1", "-ar", str(cfg.sample_rate), "-c:a", "pcm_s16le", str(wav)],
            timeout_s=timeout,
        )
        return wav

    outcome = run_ladder(
        "extract_audio",
        [
            Strategy("mp3_mono", _mp3, cfg.extract_timeout_s),
            Strategy("wav_mono", _wav, cfg.extract_timeout_s),
        ],
        verify=_require_output,
    )
    logger.info("audio_extracted", path=str(outcome.value), strategy=outcome.strategy)
    return outcome.value
