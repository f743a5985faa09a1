from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ResultStatus(str, Enum):
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ChunkKind(str, Enum):
    SEGMENT = "SEGMENT"
    WHOLE_FILE = "WHOLE_FILE"
    SILENT = "SILENT"


class ResultAlreadyFinal(RuntimeError):
    pass


def now_utc() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


def _enum(cls: type[Enum], v: Any) -> Any:
    if isinstance(v, str) and v.startswith(f"{cls.__name__}."):
        v = v.split(".", 1)[1]
    return cls(v)


@dataclass(slots=True)
class AudioChunk:
    index: int
    start_s: float
    end_s: float
    duration_s: float
    size_bytes: int
    path: Path
    kind: ChunkKind = ChunkKind.SEGMENT

    @property
    def degraded(self) -> bool:
        return self.kind is not ChunkKind.SEGMENT


@dataclass(slots=True)
class TranslationResult:
    language: str
    status: ResultStatus = ResultStatus.PROCESSING
    output_key: str = ""
    audio_key: str = ""
    output_size_bytes: int = 0
    processing_seconds: float = 0.0
    error_message: str | None = None
    degraded: bool = False
    degraded_reasons: list[str] = field(default_factory=list)
    chunk_count: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    mux_strategy: str = ""
    sync_quality: str = ""
    created_at: str = field(default_factory=now_utc)
    completed_at: str | None = None

    @property
    def is_final(self) -> bool:
        return self.status is not ResultStatus.PROCESSING

    def mark_degraded(self, reason: str) -> None:
        self.degraded = True
        if reason not in self.degraded_reasons:
            self.degraded_reasons.append(reason)

    def mark_completed(
        self, *, output_key: str, audio_key: str, output_size_bytes: int, processing_seconds: float
    ) -> None:
        if self.is_final:
            raise ResultAlreadyFinal(f"result for {self.language} is already {self.status.value}")
        self.status = ResultStatus.COMPLETED
        self.output_key = output_key
        self.audio_key = audio_key
        self.output_size_bytes = int(output_size_bytes)
        self.processing_seconds = float(processing_seconds)
        self.completed_at = now_utc()

    def mark_failed(self, message: str, *, processing_seconds: float = 0.0) -> None:
        if self.is_final:
            raise ResultAlreadyFinal(f"result for {self.language} is already {self.status.value}")
        self.status = ResultStatus.FAILED
        self.error_message = str(message or "unknown error")
        self.processing_seconds = float(processing_seconds)
        self.completed_at = now_utc()

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TranslationResult:
        dd = dict(d)
        dd["status"] = _enum(ResultStatus, dd.get("status", "PROCESSING"))
        dd.setdefault("degraded_reasons", [])
        dd.setdefault("failed_chunks", [])
        return cls(**dd)


@dataclass(slots=True)
class TranslationJob:
    id: str
    original_filename: str
    source_language: str
    target_languages: list[str]
    source_key: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    results: list[TranslationResult] = field(default_factory=list)
    error_message: str | None = None
    duration_s: float = 0.0
    file_size_bytes: int = 0
    attempt: int = 1
    created_at: str = field(default_factory=now_utc)
    updated_at: str = field(default_factory=now_utc)
    completed_at: str | None = None

    def advance_progress(self, pct: float) -> int:
        """Raise progress to `pct` (clamped 0..100); never lowers it."""
        target = max(0, min(100, int(pct)))
        if target > self.progress:
            self.progress = target
            self.touch()
        return self.progress

    def touch(self) -> None:
        self.updated_at = now_utc()

    def result_for(self, language: str) -> TranslationResult | None:
        # Latest attempt wins when a job was retried.
        for r in reversed(self.results):
            if r.language == language:
                return r
        return None

    def mark_processing(self) -> None:
        self.status = JobStatus.PROCESSING
        self.error_message = None
        self.completed_at = None
        self.touch()

    def mark_completed(self) -> None:
        self.status = JobStatus.COMPLETED
        self.progress = 100
        self.completed_at = now_utc()
        self.touch()

    def mark_failed(self, message: str) -> None:
        self.status = JobStatus.FAILED
        self.error_message = str(message or "unknown error")
        self.completed_at = now_utc()
        self.touch()

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["results"] = [r.to_dict() for r in self.results]
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TranslationJob:
        dd = dict(d)
        dd["status"] = _enum(JobStatus, dd.get("status", "QUEUED"))
        dd["results"] = [TranslationResult.from_dict(r) for r in dd.get("results") or []]
        dd["target_languages"] = list(dd.get("target_languages") or [])
        dd.setdefault("attempt", 1)
        return cls(**dd)
