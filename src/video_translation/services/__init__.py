from __future__ import annotations

from .base import (
    ObjectStore,
    PollStatus,
    RecognitionError,
    RecognitionPoll,
    ServiceError,
    SpeechRecognizer,
    SpeechSynthesizer,
    StorageError,
    SynthesisError,
    TextTranslator,
    TranslationError,
    UnsupportedLanguagePair,
)

__all__ = [
    "ObjectStore",
    "PollStatus",
    "RecognitionError",
    "RecognitionPoll",
    "ServiceError",
    "SpeechRecognizer",
    "SpeechSynthesizer",
    "StorageError",
    "SynthesisError",
    "TextTranslator",
    "TranslationError",
    "UnsupportedLanguagePair",
]
