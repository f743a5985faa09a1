from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from video_translation.jobs.models import AudioChunk
from video_translation.services.base import SpeechSynthesizer, SynthesisError
from video_translation.stages.reassembly import concat_audio
from video_translation.stages.translation import split_sentences
from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.ffmpeg_safe import ToolError
from video_translation.utils.io import ensure_dir, file_size
from video_translation.utils.log import logger
from video_translation.utils.retry import retry_call

WORDS_PER_MINUTE = 150

# Byte-rate split for the coarse gender guess (bytes/second of the source chunk).
_GENDER_BYTE_RATE_SPLIT = 15000.0


class Gender(str, Enum):
    FEMALE = "female"
    MALE = "male"
    UNKNOWN = "unknown"


def estimate_speech_seconds(text: str) -> float:
    words = len(str(text or "").split())
    return words / WORDS_PER_MINUTE * 60.0


def classify_gender(size_bytes: int, duration_s: float) -> Gender:
    """
    Guess the speaker's gender from the source chunk's byte rate.

    This is a placeholder with low accuracy; only used when
    GENDER_VOICE_SELECTION is on.
    """
    if size_bytes <= 0 or duration_s <= 0:
        return Gender.UNKNOWN
    rate = size_bytes / duration_s
    return Gender.MALE if rate < _GENDER_BYTE_RATE_SPLIT else Gender.FEMALE


class VoiceTable:
    def __init__(self, voices: dict[str, tuple[str, str]], default_voice: str) -> None:
        self._voices = {k.lower(): v for k, v in voices.items()}
        self.default_voice = default_voice

    def voice_for(self, language: str, gender: Gender = Gender.UNKNOWN) -> str:
        pair = self._voices.get(str(language).lower())
        if pair is None:
            return self.default_voice
        female, male = pair
        return male if gender is Gender.MALE else female


def pack_sentences(text: str, max_chars: int) -> list[str]:
    """
    Group sentences into pieces of at most `max_chars`; an oversized sentence
    is cut at word boundaries.
    """
    pieces: list[str] = []
    cur = ""
    for sentence in split_sentences(text):
        while len(sentence) > max_chars:
            cut = sentence.rfind(" ", 0, max_chars)
            cut = cut if cut > 0 else max_chars
            if cur:
                pieces.append(cur)
                cur = ""
            pieces.append(sentence[:cut].strip())
            sentence = sentence[cut:].strip()
        if not sentence:
            continue
        if cur and len(cur) + 1 + len(sentence) > max_chars:
            pieces.append(cur)
            cur = sentence
        else:
            cur = f"{cur} {sentence}".strip()
    if cur:
        pieces.append(cur)
    return pieces


class ChunkSynthesizer:
    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        tools: MediaTools,
        *,
        voices: VoiceTable,
        max_chars: int = 3000,
        audio_format: str = "mp3",
        gender_selection: bool = False,
        retries: int = 3,
        retry_delay_s: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._synthesizer = synthesizer
        self.tools = tools
        self.voices = voices
        self.max_chars = int(max_chars)
        self.audio_format = audio_format
        self.gender_selection = bool(gender_selection)
        self.retries = int(retries)
        self.retry_delay_s = float(retry_delay_s)
        self._sleep = sleep

    def select_voice(self, language: str, source_chunk: AudioChunk | None = None) -> str:
        gender = Gender.UNKNOWN
        if self.gender_selection and source_chunk is not None:
            gender = classify_gender(source_chunk.size_bytes, source_chunk.duration_s)
        return self.voices.voice_for(language, gender)

    def _call(self, text: str, voice: str, out: Path) -> Path:
        audio = retry_call(
            lambda: self._synthesizer.synthesize(text, voice, self.audio_format),
            retries=self.retries,
            base=self.retry_delay_s,
            cap=self.retry_delay_s * 4,
            jitter=False,
            sleep=self._sleep,
        )
        if not audio:
            raise SynthesisError(f"voice {voice} returned no audio")
        ensure_dir(out.parent)
        out.write_bytes(audio)
        return out

    def synthesize(
        self,
        text: str,
        language: str,
        out: Path,
        *,
        source_chunk: AudioChunk | None = None,
    ) -> Path:
        if not str(text or "").strip():
            raise SynthesisError("nothing to synthesize")
        voice = self.select_voice(language, source_chunk)

        if len(text) <= self.max_chars:
            self._call(text, voice, out)
        else:
            parts: list[Path] = []
            pieces = pack_sentences(text, self.max_chars)
            for i, piece in enumerate(pieces):
                part = out.with_name(f"{out.stem}_part{i:03d}{out.suffix}")
                try:
                    parts.append(self._call(piece, voice, part))
                except Exception as ex:
                    logger.warning("tts_piece_skipped", piece=i, of=len(pieces), error=str(ex))
            if not parts:
                raise SynthesisError("every synthesis piece failed")
            concat_audio(self.tools, parts, out)

        if file_size(out) <= 0:
            raise SynthesisError(f"synthesized audio is empty: {out}")

        expected = estimate_speech_seconds(text)
        try:
            actual = self.tools.probe_duration(out)
        except ToolError:
            actual = 0.0
        logger.debug(
            "tts_chunk_done",
            voice=voice,
            chars=len(text),
            expected_s=round(expected, 2),
            actual_s=round(actual, 2),
        )
        return out
