from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.ffmpeg_safe import ToolError
from video_translation.utils.io import ensure_dir, file_size, sha256_file
from video_translation.utils.ladder import Attempt, Strategy, run_ladder
from video_translation.utils.log import logger

DEFAULT_CANVAS = (1280, 720)
MUX_DURATION_TOLERANCE = 0.10


@dataclass(frozen=True, slots=True)
class MuxOutcome:
    path: Path
    strategy: str
    degraded: bool
    passthrough: bool
    attempts: list[Attempt] = field(default_factory=list)


def _require_output(path: Path) -> None:
    if file_size(path) <= 0:
        raise ToolError(f"no output written: {path}")


def _manifest_line(path: Path) -> str:
    # concat demuxer quoting: ' becomes '\''
    p = str(Path(path).resolve()).replace("'", "'\\''")
    return f"file '{p}'"


def concat_audio(tools: MediaTools, parts: Sequence[Path], out: Path) -> Path:
    """
    Join audio files in order.

    Ladder: concat demuxer with stream copy, the same manifest re-encoded,
    then an explicit concat filter graph.
    """
    parts = [Path(p) for p in parts]
    if not parts:
        raise ValueError("nothing to concatenate")
    ensure_dir(out.parent)
    if len(parts) == 1:
        shutil.copyfile(parts[0], out)
        return out

    cfg = tools.config
    manifest = out.with_name(f"{out.stem}_concat.txt")
    manifest.write_text("\n".join(_manifest_line(p) for p in parts) + "\n", encoding="utf-8")
    demux = ["-f", "concat", "-safe", "0", "-i", str(manifest)]
    encode = ["-ac", "1", "-ar", str(cfg.sample_rate), "-c:a", "libmp3lame", "-b:a", cfg.audio_bitrate]

    def _copy(timeout: float) -> Path:
        tools.ffmpeg([*demux, "-c", "copy", str(out)], timeout_s=timeout)
        return out

    def _reencode(timeout: float) -> Path:
        tools.ffmpeg([*demux, *encode, str(out)], timeout_s=timeout)
        return out

    def _filter(timeout: float) -> Path:
        inputs: list[str] = []
        for p in parts:
            inputs += ["-i", str(p)]
        graph = "".join(f"[{i}:a]" for i in range(len(parts))) + f"concat=n={len(parts)}:v=0:a=1[out]"
        tools.ffmpeg([*inputs, "-filter_complex", graph, "-map", "[out]", *encode, str(out)], timeout_s=timeout)
        return out

    outcome = run_ladder(
        "concat_audio",
        [
            Strategy("demuxer_copy", _copy, cfg.merge_timeout_s),
            Strategy("demuxer_reencode", _reencode, cfg.merge_timeout_s),
            Strategy("filter_graph", _filter, cfg.merge_timeout_s),
        ],
        verify=_require_output,
    )
    total_in = sum(file_size(p) for p in parts)
    size = file_size(out)
    if total_in and size < total_in / 2:
        logger.warning(
            "concat_output_smaller_than_expected",
            parts=len(parts),
            input_bytes=total_in,
            output_bytes=size,
            strategy=outcome.strategy,
        )
    return out


def classify_sync(expected_s: float, actual_s: float) -> str:
    if expected_s <= 0 or actual_s <= 0:
        return "unknown"
    drift = abs(actual_s - expected_s) / expected_s
    if drift <= 0.05:
        return "good"
    if drift <= 0.10:
        return "acceptable"
    return "poor"


def _even(n: int) -> int:
    return max(2, int(n) - (int(n) % 2))


def mux_video(
    tools: MediaTools,
    video: Path,
    audio: Path,
    out: Path,
    *,
    source_duration_s: float,
    width: int = 0,
    height: int = 0,
) -> MuxOutcome:
    """
    Attach `audio` to the picture of `video`, keeping the video stream as is.

    The last two rungs give up on the picture: a black canvas carrying the
    new audio, and finally a byte-identical copy of the original video
    (reported as passthrough).
    """
    ensure_dir(out.parent)
    cfg = tools.config
    timeouts = list(cfg.mux_timeouts_s) or [cfg.merge_timeout_s]
    while len(timeouts) < 5:
        timeouts.append(timeouts[-1])
    aac = ["-c:a", "aac", "-b:a", cfg.audio_bitrate]

    def _mapped_timestamps(timeout: float) -> Path:
        argv = ["-fflags", "+genpts", "-i", str(video), "-i", str(audio)]
        argv += ["-map", "0:v:0", "-map", "1:a:0", "-c:v", "copy", *aac, "-avoid_negative_ts", "make_zero"]
        if source_duration_s > 0:
            argv += ["-t", f"{source_duration_s:.3f}"]
        tools.ffmpeg([*argv, str(out)], timeout_s=timeout)
        if source_duration_s > 0:
            got = tools.probe_duration(out)
            if abs(got - source_duration_s) / source_duration_s > MUX_DURATION_TOLERANCE:
                raise ToolError(f"muxed duration {got:.2f}s is off from source {source_duration_s:.2f}s")
        return out

    def _mapped(timeout: float) -> Path:
        tools.ffmpeg(
            ["-i", str(video), "-i", str(audio), "-map", "0:v:0", "-map", "1:a:0", "-c:v", "copy", *aac, str(out)],
            timeout_s=timeout,
        )
        return out

    def _unmapped(timeout: float) -> Path:
        tools.ffmpeg(["-i", str(video), "-i", str(audio), "-c:v", "copy", *aac, str(out)], timeout_s=timeout)
        return out

    def _silent_canvas(timeout: float) -> Path:
        w, h = (_even(width), _even(height)) if width and height else DEFAULT_CANVAS
        dur = source_duration_s if source_duration_s > 0 else None
        canvas = f"color=c=black:s={w}x{h}:r=25" + (f":d={dur:.3f}" if dur else "")
        tools.ffmpeg(
            [
                "-f", "lavfi", "-i", canvas,
                "-i", str(audio),
                "-map", "0:v:0", "-map", "1:a:0",
                "-c:v", "libx264", "-b:v", cfg.video_bitrate, "-pix_fmt", "yuv420p",
                *aac, "-shortest",
                str(out),
            ],
            timeout_s=timeout,
        )
        return out

    def _passthrough(_timeout: float) -> Path:
        shutil.copyfile(video, out)
        return out

    outcome = run_ladder(
        "mux",
        [
            Strategy("mapped_timestamps", _mapped_timestamps, timeouts[0]),
            Strategy("mapped", _mapped, timeouts[1]),
            Strategy("unmapped", _unmapped, timeouts[2]),
            Strategy("silent_canvas", _silent_canvas, timeouts[3]),
            Strategy("passthrough", _passthrough, timeouts[4]),
        ],
        verify=_require_output,
    )
    passthrough = outcome.strategy == "passthrough" and sha256_file(out) == sha256_file(video)
    degraded = outcome.strategy in {"silent_canvas", "passthrough"}
    if degraded:
        logger.warning("mux_degraded", strategy=outcome.strategy, passthrough=passthrough)
    return MuxOutcome(
        path=out,
        strategy=outcome.strategy,
        degraded=degraded,
        passthrough=passthrough,
        attempts=outcome.attempts,
    )
