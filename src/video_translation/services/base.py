from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol


class ServiceError(RuntimeError):
    """An external collaborator failed; the message is the collaborator's own."""


class RecognitionError(ServiceError):
    pass


class TranslationError(ServiceError):
    pass


class UnsupportedLanguagePair(TranslationError):
    def __init__(self, source: str, target: str, message: str = "") -> None:
        super().__init__(message or f"translation {source}->{target} is not supported")
        self.source = source
        self.target = target


class SynthesisError(ServiceError):
    pass


class StorageError(ServiceError):
    pass


class PollStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class RecognitionPoll:
    status: PollStatus
    # Alternative transcripts of the whole chunk, best first.
    alternatives: Sequence[str] = field(default_factory=tuple)
    error: str | None = None
    # Distinct speaker labels seen (0 when diarization is off).
    speaker_count: int = 0


class SpeechRecognizer(Protocol):
    def submit(
        self,
        audio_path: Path,
        language_code: str,
        *,
        audio_uri: str | None = None,
        max_alternatives: int = 3,
    ) -> Any: ...

    def poll(self, handle: Any) -> RecognitionPoll: ...


class TextTranslator(Protocol):
    def translate(self, text: str, source: str, target: str) -> str: ...

    def supported_languages(self) -> set[str]: ...


class SpeechSynthesizer(Protocol):
    def synthesize(self, text: str, voice_id: str, audio_format: str = "mp3") -> bytes: ...

    def list_voices(self, language_code: str) -> list[str]: ...


class ObjectStore(Protocol):
    name: str

    def put(self, key: str, path: Path) -> int: ...

    def get(self, key: str, dest: Path) -> Path: ...

    def exists(self, key: str) -> bool: ...

    def url(self, key: str, expires_s: int = 3600) -> str: ...

    def delete(self, key: str) -> None: ...
