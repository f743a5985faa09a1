from __future__ import annotations

import subprocess
import time
from collections.abc import Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import Protocol

_FORBIDDEN_FLAGS = {
    "-filter_script",
    "-filter_script:v",
    "-filter_script:a",
    "-stats_file",
}


@dataclass(frozen=True, slots=True)
class ToolResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    elapsed_s: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ToolError(RuntimeError):
    def __init__(self, message: str, *, result: ToolResult | None = None) -> None:
        super().__init__(message)
        self.result = result


class ToolTimeout(ToolError):
    pass


class ToolRunner(Protocol):
    def __call__(self, argv: Sequence[str], *, timeout_s: float) -> ToolResult: ...


def _validate_args(argv: Sequence[str]) -> None:
    if not argv:
        raise ToolError("empty argv")
    for a in argv:
        if a in _FORBIDDEN_FLAGS:
            raise ToolError(f"Forbidden ffmpeg/ffprobe flag: {a}")


def _tail(s: str, n: int = 4000) -> str:
    s = str(s or "")
    if len(s) <= n:
        return s
    return s[-n:]


def run_tool(argv: Sequence[str], *, timeout_s: float) -> ToolResult:
    """
    Run an external tool (list-argv, no shell) under a mandatory timeout.

    On expiry the process is killed before ToolTimeout is raised, so a hung
    ffmpeg never outlives the attempt that started it. A non-zero exit raises
    ToolError carrying the captured result.
    """
    argv = [str(a) for a in argv]
    _validate_args(argv)
    if timeout_s is None or float(timeout_s) <= 0:
        raise ValueError("timeout_s must be positive")

    t0 = time.perf_counter()
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as ex:
        raise ToolError(f"failed to start {argv[0]}: {ex}") from ex

    try:
        out, err = proc.communicate(timeout=float(timeout_s))
    except subprocess.TimeoutExpired as ex:
        proc.kill()
        out, err = "", ""
        with suppress(Exception):
            out, err = proc.communicate(timeout=5)
        res = ToolResult(
            argv=tuple(argv),
            returncode=-9,
            stdout=out or "",
            stderr=err or "",
            elapsed_s=time.perf_counter() - t0,
        )
        raise ToolTimeout(f"{argv[0]} timed out after {timeout_s}s", result=res) from ex

    res = ToolResult(
        argv=tuple(argv),
        returncode=int(proc.returncode),
        stdout=out or "",
        stderr=err or "",
        elapsed_s=time.perf_counter() - t0,
    )
    if res.returncode != 0:
        raise ToolError(
            f"{argv[0]} failed (exit={res.returncode})\n"
            f"argv={argv}\n"
            f"stderr_tail={_tail(res.stderr)}",
            result=res,
        )
    return res
