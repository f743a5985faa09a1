from __future__ import annotations

import math
import wave
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

from video_translation.jobs.models import AudioChunk, ChunkKind
from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.ffmpeg_safe import ToolError
from video_translation.utils.io import ensure_dir, file_size
from video_translation.utils.ladder import LadderExhausted, Strategy, run_ladder
from video_translation.utils.log import logger

MIN_NOMINAL_CHUNK_S = 5
MIN_CHUNK_DURATION_S = 0.5
MIN_CHUNK_BYTES = 1024
SILENT_PLACEHOLDER_S = 5.0


@dataclass(frozen=True, slots=True)
class Window:
    index: int
    start_s: float
    end_s: float

    @property
    def duration_s(self) -> float:
        return self.end_s - self.start_s


@dataclass(slots=True)
class ChunkingReport:
    chunks: list[AudioChunk]
    planned: int
    dropped: list[int] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return any(c.degraded for c in self.chunks)


def plan_windows(total_s: float, chunk_s: float) -> list[Window]:
    """
    ceil(total/chunk) contiguous windows covering [0, total]; the last keeps the remainder.
    """
    if chunk_s < MIN_NOMINAL_CHUNK_S:
        raise ValueError(f"chunk duration must be >= {MIN_NOMINAL_CHUNK_S}s")
    if total_s <= 0:
        return []
    n = math.ceil(total_s / chunk_s)
    return [
        Window(index=i, start_s=i * chunk_s, end_s=min((i + 1) * chunk_s, total_s)) for i in range(n)
    ]


def write_silence_wav(path: Path, duration_s: float, *, sample_rate: int = 16000) -> Path:
    """16-bit mono digital silence; needs no external tool."""
    ensure_dir(path.parent)
    frames = max(1, int(round(float(duration_s) * sample_rate)))
    with wave.open(str(path), "wb") as w:
        w.setnchannels(1)
        w.setsampwidth(2)
        w.setframerate(int(sample_rate))
        w.writeframes(b"\x00\x00" * frames)
    return path


def make_silence(tools: MediaTools, out_stem: Path, duration_s: float) -> Path:
    """
    Silent audio of `duration_s`: MP3 through ffmpeg when it cooperates,
    otherwise a WAV written directly.
    """
    cfg = tools.config
    duration_s = max(MIN_CHUNK_DURATION_S, float(duration_s))
    mp3 = out_stem.with_suffix(".mp3")
    wav = out_stem.with_suffix(".wav")

    def _lavfi(timeout: float) -> Path:
        tools.ffmpeg(
            [
                "-f", "lavfi", "-i", f"anullsrc=r={cfg.sample_rate}:cl=mono",
                "-t", f"{duration_s:.3f}",
                "-c:a", "libmp3lame", "-b:a", cfg.audio_bitrate,
                str(mp3),
            ],
            timeout_s=timeout,
        )
        return mp3

    def _wave(_timeout: float) -> Path:
        return write_silence_wav(wav, duration_s, sample_rate=cfg.sample_rate)

    outcome = run_ladder(
        "silence",
        [Strategy("lavfi_mp3", _lavfi, cfg.quick_timeout_s), Strategy("wave_pcm", _wave, cfg.quick_timeout_s)],
        verify=_require_output,
    )
    return outcome.value


def _require_output(path: Path) -> None:
    if file_size(path) <= 0:
        raise ToolError(f"no output written: {path}")


def _measure(tools: MediaTools, path: Path) -> tuple[float, int]:
    size = file_size(path)
    try:
        duration = tools.probe_duration(path)
    except ToolError:
        duration = 0.0
    return duration, size


def _is_valid(duration_s: float, size_bytes: int) -> bool:
    return duration_s >= MIN_CHUNK_DURATION_S and size_bytes >= MIN_CHUNK_BYTES


def _cut_window(tools: MediaTools, audio: Path, w: Window, out: Path) -> Path:
    cfg = tools.config
    head = ["-ss", f"{w.start_s:.3f}", "-t", f"{w.duration_s:.3f}", "-i", str(audio)]

    def _copy(timeout: float) -> Path:
        tools.ffmpeg([*head, "-c", "copy", str(out)], timeout_s=timeout)
        return out

    def _reencode(timeout: float) -> Path:
        tools.ffmpeg(
            [*head, "-ac", "1", "-ar", str(cfg.sample_rate), "-c:a", "libmp3lame", "-b:a", cfg.audio_bitrate, str(out)],
            timeout_s=timeout,
        )
        return out

    return run_ladder(
        "chunk_extract",
        [
            Strategy("stream_copy", _copy, cfg.quick_timeout_s),
            Strategy("reencode", _reencode, cfg.quick_timeout_s),
        ],
        verify=_require_output,
    ).value


def _whole_file(tools: MediaTools, audio: Path, out_dir: Path) -> AudioChunk | None:
    cfg = tools.config
    out = out_dir / "chunk_whole.mp3"
    try:
        tools.ffmpeg(
            ["-i", str(audio), "-ac", "1", "-ar", str(cfg.sample_rate), "-c:a", "libmp3lame", "-b:a", cfg.audio_bitrate, str(out)],
            timeout_s=cfg.extract_timeout_s,
        )
    except ToolError as ex:
        logger.warning("chunk_whole_file_failed", error=str(ex).splitlines()[0])
        return None
    duration, size = _measure(tools, out)
    if not _is_valid(duration, size):
        logger.warning("chunk_whole_file_invalid", duration_s=duration, size_bytes=size)
        return None
    return AudioChunk(
        index=0, start_s=0.0, end_s=duration, duration_s=duration, size_bytes=size, path=out, kind=ChunkKind.WHOLE_FILE
    )


def chunk_audio(
    tools: MediaTools, audio: Path, out_dir: Path, *, chunk_duration_s: float
) -> ChunkingReport:
    """
    Split `audio` into validated chunks of about `chunk_duration_s`.

    Never returns an empty list: when no window survives, the whole file is
    used as one chunk, and when that fails too a silent placeholder is.
    """
    ensure_dir(out_dir)
    if chunk_duration_s < MIN_NOMINAL_CHUNK_S:
        raise ValueError(f"chunk duration must be >= {MIN_NOMINAL_CHUNK_S}s")
    try:
        total = tools.probe_duration(audio)
    except ToolError as ex:
        logger.warning("chunk_probe_failed", error=str(ex).splitlines()[0])
        total = 0.0

    windows = plan_windows(total, float(chunk_duration_s))
    report = ChunkingReport(chunks=[], planned=len(windows))
    for w in windows:
        out = out_dir / f"chunk_{w.index:03d}.mp3"
        try:
            _cut_window(tools, audio, w, out)
        except LadderExhausted:
            report.dropped.append(w.index)
            continue
        duration, size = _measure(tools, out)
        if not _is_valid(duration, size):
            logger.info("chunk_dropped", index=w.index, duration_s=duration, size_bytes=size)
            report.dropped.append(w.index)
            with suppress(OSError):
                out.unlink()
            continue
        report.chunks.append(
            AudioChunk(
                index=w.index,
                start_s=w.start_s,
                end_s=w.end_s,
                duration_s=duration,
                size_bytes=size,
                path=out,
            )
        )

    if report.chunks:
        logger.info(
            "chunking_done", planned=report.planned, kept=len(report.chunks), dropped=len(report.dropped)
        )
        return report

    whole = _whole_file(tools, audio, out_dir)
    if whole is not None:
        logger.warning("chunking_whole_file_fallback", planned=report.planned)
        report.chunks.append(whole)
        return report

    placeholder = write_silence_wav(out_dir / "chunk_silent.wav", SILENT_PLACEHOLDER_S, sample_rate=tools.config.sample_rate)
    logger.error("chunking_silent_placeholder", planned=report.planned)
    report.chunks.append(
        AudioChunk(
            index=0,
            start_s=0.0,
            end_s=SILENT_PLACEHOLDER_S,
            duration_s=SILENT_PLACEHOLDER_S,
            size_bytes=file_size(placeholder),
            path=placeholder,
            kind=ChunkKind.SILENT,
        )
    )
    return report
