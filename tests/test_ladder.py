from __future__ import annotations

import shutil
import sys
import time

import pytest

from video_translation.utils.ffmpeg_safe import ToolError, ToolTimeout, run_tool
from video_translation.utils.ladder import LadderExhausted, Strategy, run_ladder
from video_translation.utils.retry import retry_call


def test_ladder_stops_at_first_success_in_order() -> None:
    seen: list[tuple[str, float]] = []

    def rung(name: str, ok: bool):
        def run(timeout: float) -> str:
            seen.append((name, timeout))
            if not ok:
                raise RuntimeError(f"{name} broke")
            return name

        return run

    out = run_ladder(
        "op",
        [
            Strategy("a", rung("a", False), 1.0),
            Strategy("b", rung("b", True), 2.0),
            Strategy("c", rung("c", True), 3.0),
        ],
    )
    assert out.value == "b"
    assert out.strategy == "b"
    assert out.fell_back is True
    assert seen == [("a", 1.0), ("b", 2.0)]
    assert [a.ok for a in out.attempts] == [False, True]
    assert "a broke" in (out.attempts[0].error or "")


def test_ladder_verify_failure_moves_to_next_rung() -> None:
    def verify(v: int) -> None:
        if v < 0:
            raise ValueError("negative")

    out = run_ladder(
        "op",
        [Strategy("neg", lambda t: -1), Strategy("pos", lambda t: 1)],
        verify=verify,
    )
    assert out.value == 1
    assert out.index == 1


def test_ladder_exhausted_lists_every_attempt() -> None:
    def boom(_t: float) -> None:
        raise ToolError("nope")

    with pytest.raises(LadderExhausted) as ei:
        run_ladder("merge", [Strategy("x", boom), Strategy("y", boom)])
    assert ei.value.operation == "merge"
    assert [a.strategy for a in ei.value.attempts] == ["x", "y"]
    assert "merge" in str(ei.value)


def test_run_tool_kills_on_timeout() -> None:
    t0 = time.perf_counter()
    with pytest.raises(ToolTimeout) as ei:
        run_tool([sys.executable, "-c", "import time; time.sleep(30)"], timeout_s=0.5)
    assert time.perf_counter() - t0 < 10
    assert ei.value.result is not None
    assert ei.value.result.returncode == -9


def test_run_tool_nonzero_exit_raises_with_result() -> None:
    with pytest.raises(ToolError) as ei:
        run_tool([sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"], timeout_s=10)
    assert ei.value.result is not None
    assert ei.value.result.returncode == 3
    assert "bad" in ei.value.result.stderr


def test_run_tool_rejects_missing_timeout_and_forbidden_flags() -> None:
    with pytest.raises(ValueError):
        run_tool(["echo", "hi"], timeout_s=0)
    with pytest.raises(ToolError):
        run_tool(["ffmpeg", "-filter_script", "x"], timeout_s=5)


def test_run_tool_missing_binary() -> None:
    with pytest.raises(ToolError):
        run_tool(["definitely-not-a-real-binary-xyz"], timeout_s=5)


@pytest.mark.skipif(shutil.which("echo") is None, reason="echo not available")
def test_run_tool_captures_stdout() -> None:
    res = run_tool(["echo", "hello"], timeout_s=5)
    assert res.ok
    assert res.stdout.strip() == "hello"


def test_retry_call_retries_then_succeeds() -> None:
    calls = {"n": 0}
    sleeps: list[float] = []

    def fn():
        calls["n"] += 1
        if calls["n"] < 3:
            raise RuntimeError("fail")
        return "ok"

    assert retry_call(fn, retries=5, base=1.0, cap=10.0, jitter=False, sleep=sleeps.append) == "ok"
    assert calls["n"] == 3
    assert sleeps == [1.0, 2.0]


def test_retry_call_gives_up_immediately() -> None:
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        raise KeyError("permanent")

    with pytest.raises(KeyError):
        retry_call(fn, retries=5, giveup=lambda ex: isinstance(ex, KeyError), sleep=lambda _: None)
    assert calls["n"] == 1


def test_retry_call_exhausts_retries() -> None:
    calls = {"n": 0}

    def fn():
        calls["n"] += 1
        raise RuntimeError("always")

    with pytest.raises(RuntimeError):
        retry_call(fn, retries=2, base=0.1, jitter=False, sleep=lambda _: None)
    assert calls["n"] == 3
