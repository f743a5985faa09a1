from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .base import SpeechRecognizer, SpeechSynthesizer, TextTranslator


@dataclass(frozen=True, slots=True)
class Services:
    recognizer: SpeechRecognizer
    translator: TextTranslator
    synthesizer: SpeechSynthesizer


def build_services(settings: Any = None) -> Services:
    """Google Cloud collaborators configured from settings."""
    if settings is None:
        from video_translation.config import get_settings

        settings = get_settings()

    from .google import GoogleSpeechRecognizer, GoogleSpeechSynthesizer, GoogleTextTranslator

    api_key = ""
    if settings.google_api_key is not None:
        api_key = settings.google_api_key.get_secret_value()
    return Services(
        recognizer=GoogleSpeechRecognizer(
            model=str(settings.recognition_model),
            sample_rate=int(settings.audio_sample_rate),
            diarization=bool(settings.recognition_speaker_diarization),
            max_speakers=int(settings.recognition_max_speakers),
        ),
        translator=GoogleTextTranslator(
            project=str(settings.gcp_project), location=str(settings.gcp_location)
        ),
        synthesizer=GoogleSpeechSynthesizer(api_key=api_key),
    )
