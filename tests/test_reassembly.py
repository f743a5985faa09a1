from __future__ import annotations

from pathlib import Path

import pytest

from tests._helpers.fakes import FakeRunner, fake_tools, is_ffmpeg_with
from video_translation.stages.reassembly import classify_sync, concat_audio, mux_video
from video_translation.utils.ffmpeg import MediaTools, ToolConfig
from video_translation.utils.ladder import LadderExhausted


def _parts(tmp_path: Path, runner, durations: list[float]) -> list[Path]:
    parts = []
    for i, d in enumerate(durations):
        p = tmp_path / f"part_{i}.mp3"
        p.write_bytes(b"\x03" * 2048)
        runner.set_duration(p, d)
        parts.append(p)
    return parts


def _video(tmp_path: Path, runner, seconds: float) -> Path:
    v = tmp_path / "source.mp4"
    v.write_bytes(b"\x00\x00\x00\x18ftypmp42" + b"\x07" * 4096)
    runner.set_duration(v, seconds)
    return v


def test_concat_single_part_is_copied(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    [p] = _parts(tmp_path, runner, [5.0])
    out = concat_audio(tools, [p], tmp_path / "out" / "merged.mp3")
    assert out.read_bytes() == p.read_bytes()
    assert runner.calls == []


def test_concat_uses_demuxer_copy_first(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    parts = _parts(tmp_path, runner, [5.0, 7.0])
    out = concat_audio(tools, parts, tmp_path / "merged.mp3")
    assert runner.duration_of(str(out)) == pytest.approx(12.0)
    assert len(runner.calls) == 1
    assert "copy" in runner.calls[0]
    manifest = (tmp_path / "merged_concat.txt").read_text(encoding="utf-8").splitlines()
    assert manifest == [f"file '{p.resolve()}'" for p in parts]


def test_concat_falls_back_to_filter_graph(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    parts = _parts(tmp_path, runner, [1.0, 2.0, 3.0])
    runner.fail_if.append(is_ffmpeg_with("concat"))

    out = concat_audio(tools, parts, tmp_path / "merged.mp3")
    assert out.exists()
    assert "-filter_complex" in runner.calls[-1]
    assert runner.duration_of(str(out)) == pytest.approx(6.0)


def test_concat_all_strategies_fail(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    parts = _parts(tmp_path, runner, [1.0, 2.0])
    runner.fail_if.append(lambda argv: argv[0] == "ffmpeg")
    with pytest.raises(LadderExhausted):
        concat_audio(tools, parts, tmp_path / "merged.mp3")


def test_concat_rejects_empty_input(tmp_path: Path) -> None:
    tools, _ = fake_tools()
    with pytest.raises(ValueError):
        concat_audio(tools, [], tmp_path / "merged.mp3")


@pytest.mark.parametrize(
    ("expected", "actual", "quality"),
    [
        (100.0, 103.0, "good"),
        (100.0, 95.0, "good"),
        (100.0, 108.0, "acceptable"),
        (100.0, 120.0, "poor"),
        (0.0, 10.0, "unknown"),
        (10.0, 0.0, "unknown"),
    ],
)
def test_classify_sync(expected: float, actual: float, quality: str) -> None:
    assert classify_sync(expected, actual) == quality


def test_mux_first_rung(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    video = _video(tmp_path, runner, 30.0)
    [audio] = _parts(tmp_path, runner, [29.0])

    res = mux_video(tools, video, audio, tmp_path / "out.mp4", source_duration_s=30.0)
    assert res.strategy == "mapped_timestamps"
    assert not res.degraded
    assert not res.passthrough
    mux_call = next(a for a in runner.calls if a[0] == "ffmpeg")
    assert mux_call[mux_call.index("-c:v") + 1] == "copy"
    assert "0:v:0" in mux_call
    assert "1:a:0" in mux_call


def test_mux_duration_check_moves_to_plain_mapping(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    video = _video(tmp_path, runner, 30.0)
    [audio] = _parts(tmp_path, runner, [29.0])
    # the probe after the timestamp rung reports a truncated file
    runner.fail_if.append(lambda argv: argv[0] == "ffprobe" and argv[-1].endswith("out.mp4"))

    res = mux_video(tools, video, audio, tmp_path / "out.mp4", source_duration_s=30.0)
    assert res.strategy == "mapped"
    assert not res.degraded
    assert [a.strategy for a in res.attempts] == ["mapped_timestamps", "mapped"]


def test_mux_silent_canvas_is_degraded(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    video = _video(tmp_path, runner, 30.0)
    [audio] = _parts(tmp_path, runner, [30.0])
    runner.fail_if.append(lambda argv: argv[0] == "ffmpeg" and str(video) in argv)

    res = mux_video(tools, video, audio, tmp_path / "out.mp4", source_duration_s=30.0, width=641, height=360)
    assert res.strategy == "silent_canvas"
    assert res.degraded
    assert not res.passthrough
    canvas_call = runner.calls[-1]
    assert any(a.startswith("color=c=black:s=640x360") for a in canvas_call)


def test_mux_passthrough_is_detected(tmp_path: Path) -> None:
    tools, runner = fake_tools()
    video = _video(tmp_path, runner, 30.0)
    [audio] = _parts(tmp_path, runner, [30.0])
    runner.fail_if.append(lambda argv: argv[0] == "ffmpeg")

    res = mux_video(tools, video, audio, tmp_path / "out.mp4", source_duration_s=30.0)
    assert res.strategy == "passthrough"
    assert res.passthrough
    assert res.degraded
    assert (tmp_path / "out.mp4").read_bytes() == video.read_bytes()


MUX_RUNGS = ["mapped_timestamps", "mapped", "unmapped", "silent_canvas", "passthrough"]


def _mux_rung(argv: list[str]) -> str | None:
    if argv[0] != "ffmpeg" or "aac" not in argv:
        return None
    if "+genpts" in argv:
        return "mapped_timestamps"
    if "lavfi" in argv:
        return "silent_canvas"
    return "mapped" if "-map" in argv else "unmapped"


@pytest.mark.parametrize("failing", range(len(MUX_RUNGS)))
def test_mux_rungs_run_in_order(tmp_path: Path, failing: int) -> None:
    tools, runner = fake_tools()
    video = _video(tmp_path, runner, 30.0)
    [audio] = _parts(tmp_path, runner, [30.0])
    broken = set(MUX_RUNGS[:failing])
    runner.fail_if.append(lambda argv: _mux_rung(argv) in broken)

    res = mux_video(tools, video, audio, tmp_path / "out.mp4", source_duration_s=30.0)
    assert res.strategy == MUX_RUNGS[failing]
    assert [a.strategy for a in res.attempts] == MUX_RUNGS[: failing + 1]
    assert [a.ok for a in res.attempts] == [False] * failing + [True]
    assert res.degraded is (failing >= 3)


@pytest.mark.parametrize(
    ("configured", "expected"),
    [
        ((30.0, 60.0, 90.0, 120.0, 180.0), [30.0, 60.0, 90.0, 120.0]),
        ((45.0,), [45.0, 45.0, 45.0, 45.0]),
    ],
)
def test_mux_rungs_get_their_own_timeouts(tmp_path: Path, configured, expected) -> None:
    runner = FakeRunner()
    seen: list[float] = []

    def recording(argv, *, timeout_s):
        if _mux_rung([str(a) for a in argv]) is not None:
            seen.append(timeout_s)
        return runner(argv, timeout_s=timeout_s)

    tools = MediaTools(ToolConfig(mux_timeouts_s=configured), runner=recording)
    video = _video(tmp_path, runner, 30.0)
    [audio] = _parts(tmp_path, runner, [30.0])
    runner.fail_if.append(lambda argv: _mux_rung(argv) is not None)

    res = mux_video(tools, video, audio, tmp_path / "out.mp4", source_duration_s=30.0)
    assert res.strategy == "passthrough"
    assert seen == expected
