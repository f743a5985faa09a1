from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from pathlib import Path

from video_translation.services.base import (
    PollStatus,
    RecognitionPoll,
    SynthesisError,
    TranslationError,
    UnsupportedLanguagePair,
)
from video_translation.utils.ffmpeg import MediaTools, ToolConfig
from video_translation.utils.ffmpeg_safe import ToolError, ToolResult


class FakeRunner:
    """
    Stands in for ffmpeg/ffprobe.

    ffmpeg writes `out_bytes` to the last argv entry and records a duration
    for it; ffprobe answers from the recorded durations. Any predicate in
    `fail_if` that matches an argv makes that call fail.
    """

    def __init__(self, *, out_bytes: int = 4096, default_duration: float = 0.0) -> None:
        self.out_bytes = out_bytes
        self.default_duration = float(default_duration)
        self.durations: dict[str, float] = {}
        self.calls: list[list[str]] = []
        self.fail_if: list[Callable[[list[str]], bool]] = []
        self.video_streams = True

    def set_duration(self, path: Path, seconds: float) -> None:
        self.durations[str(path)] = float(seconds)
        self.durations[str(Path(path).resolve())] = float(seconds)

    def duration_of(self, path: str) -> float:
        for k in (path, str(Path(path).resolve())):
            if k in self.durations:
                return self.durations[k]
        return self.default_duration

    def __call__(self, argv: Sequence[str], *, timeout_s: float) -> ToolResult:
        argv = [str(a) for a in argv]
        self.calls.append(argv)
        assert timeout_s > 0
        for pred in self.fail_if:
            if pred(argv):
                raise ToolError(f"injected failure: {' '.join(argv[:6])}")
        if argv[0] == "ffprobe":
            return self._probe(argv)
        return self._ffmpeg(argv)

    def _result(self, argv: list[str], stdout: str = "") -> ToolResult:
        return ToolResult(argv=tuple(argv), returncode=0, stdout=stdout, stderr="", elapsed_s=0.01)

    def _inputs(self, argv: list[str]) -> list[str]:
        return [argv[i + 1] for i, a in enumerate(argv[:-1]) if a == "-i"]

    def _ffmpeg(self, argv: list[str]) -> ToolResult:
        out = argv[-1]
        inputs = self._inputs(argv)
        if "-t" in argv:
            dur = float(argv[argv.index("-t") + 1])
        elif "concat" in argv:
            manifest = Path(inputs[0]).read_text(encoding="utf-8").splitlines()
            files = [line[len("file '") : -1] for line in manifest if line.startswith("file '")]
            dur = sum(self.duration_of(f) for f in files)
        elif "-filter_complex" in argv:
            dur = sum(self.duration_of(i) for i in inputs)
        else:
            dur = self.duration_of(inputs[0]) if inputs else 0.0
        Path(out).parent.mkdir(parents=True, exist_ok=True)
        Path(out).write_bytes(b"\x01" * self.out_bytes)
        self.durations[out] = dur
        self.durations[str(Path(out).resolve())] = dur
        return self._result(argv)

    def _probe(self, argv: list[str]) -> ToolResult:
        path = argv[-1]
        dur = self.duration_of(path)
        if "format=duration" in argv:
            return self._result(argv, f"{dur}\n")
        streams = [{"codec_type": "audio"}]
        if self.video_streams:
            streams.insert(0, {"codec_type": "video", "width": 640, "height": 360})
        payload = {"format": {"format_name": "mov,mp4", "duration": str(dur)}, "streams": streams}
        return self._result(argv, json.dumps(payload))


def fake_tools(runner: FakeRunner | None = None, **overrides) -> tuple[MediaTools, FakeRunner]:
    runner = runner or FakeRunner()
    return MediaTools(ToolConfig(**overrides), runner=runner), runner


def is_ffmpeg_with(*needles: str) -> Callable[[list[str]], bool]:
    return lambda argv: argv[0] == "ffmpeg" and all(n in argv for n in needles)


class FakeRecognizer:
    def __init__(
        self,
        alternatives: Sequence[str] = ("Hello from Paris.",),
        *,
        polls_before_done: int = 0,
        fail: bool = False,
    ) -> None:
        self.alternatives = tuple(alternatives)
        self.polls_before_done = polls_before_done
        self.fail = fail
        self.submitted: list[tuple[str, str, str | None]] = []
        self._polls: dict[int, int] = {}

    def submit(self, audio_path, language_code, *, audio_uri=None, max_alternatives=3):
        self.submitted.append((str(audio_path), language_code, audio_uri))
        handle = len(self.submitted)
        self._polls[handle] = 0
        return handle

    def poll(self, handle) -> RecognitionPoll:
        if self.fail:
            return RecognitionPoll(status=PollStatus.FAILED, error="engine unavailable")
        self._polls[handle] += 1
        if self._polls[handle] <= self.polls_before_done:
            return RecognitionPoll(status=PollStatus.IN_PROGRESS)
        return RecognitionPoll(status=PollStatus.COMPLETED, alternatives=self.alternatives)


class FakeTranslator:
    def __init__(
        self,
        *,
        languages: set[str] | None = None,
        unsupported: set[tuple[str, str]] | None = None,
        fail_on: str | None = None,
    ) -> None:
        self.languages = languages if languages is not None else {"en", "hi", "ta", "es", "fr", "de"}
        self.unsupported = unsupported or set()
        self.fail_on = fail_on
        self.calls: list[tuple[str, str, str]] = []

    def supported_languages(self) -> set[str]:
        return set(self.languages)

    def translate(self, text: str, source: str, target: str) -> str:
        self.calls.append((text, source, target))
        if (source, target) in self.unsupported:
            raise UnsupportedLanguagePair(source, target)
        if self.fail_on and self.fail_on in text:
            raise TranslationError("backend rejected text")
        return f"[{target}] {text}"


class FakeSynthesizer:
    def __init__(self, *, fail_on: str | None = None, empty: bool = False) -> None:
        self.fail_on = fail_on
        self.empty = empty
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text: str, voice_id: str, audio_format: str = "mp3") -> bytes:
        self.calls.append((text, voice_id))
        if self.fail_on and self.fail_on in text:
            raise SynthesisError("voice unavailable")
        if self.empty:
            return b""
        return b"ID3" + b"\x00" * 2048

    def list_voices(self, language_code: str) -> list[str]:
        return []
