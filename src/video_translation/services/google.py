from __future__ import annotations

import base64
import json
import urllib.error
import urllib.parse
import urllib.request
from contextlib import suppress
from pathlib import Path
from typing import Any

from google.api_core import exceptions as gexc
from google.cloud import speech_v1 as speech
from google.cloud import translate_v3 as translate

from video_translation.utils.log import logger

from .base import (
    PollStatus,
    RecognitionError,
    RecognitionPoll,
    SynthesisError,
    TranslationError,
    UnsupportedLanguagePair,
)

_TTS_BASE = "https://texttospeech.googleapis.com/v1"


class GoogleSpeechRecognizer:
    """
    Cloud Speech-to-Text long-running recognition.

    `submit` returns the operation; `poll` never blocks.
    """

    def __init__(
        self,
        *,
        model: str = "latest_long",
        sample_rate: int = 16000,
        diarization: bool = False,
        max_speakers: int = 2,
        client: Any = None,
    ) -> None:
        self.model = model
        self.sample_rate = int(sample_rate)
        self.diarization = bool(diarization)
        self.max_speakers = max(1, int(max_speakers))
        self._client = client

    def _speech(self) -> Any:
        if self._client is None:
            self._client = speech.SpeechClient()
        return self._client

    def submit(
        self,
        audio_path: Path,
        language_code: str,
        *,
        audio_uri: str | None = None,
        max_alternatives: int = 3,
    ) -> Any:
        suffix = Path(audio_path).suffix.lower()
        if suffix == ".flac":
            encoding = speech.RecognitionConfig.AudioEncoding.FLAC
        elif suffix == ".wav":
            encoding = speech.RecognitionConfig.AudioEncoding.LINEAR16
        else:
            encoding = speech.RecognitionConfig.AudioEncoding.ENCODING_UNSPECIFIED
        config = speech.RecognitionConfig(
            encoding=encoding,
            sample_rate_hertz=self.sample_rate,
            language_code=language_code,
            max_alternatives=max(1, int(max_alternatives)),
            enable_automatic_punctuation=True,
            model=self.model,
        )
        if self.diarization:
            config.diarization_config = speech.SpeakerDiarizationConfig(
                enable_speaker_diarization=True,
                min_speaker_count=1,
                max_speaker_count=self.max_speakers,
            )
        if audio_uri:
            audio = speech.RecognitionAudio(uri=audio_uri)
        else:
            audio = speech.RecognitionAudio(content=Path(audio_path).read_bytes())
        try:
            return self._speech().long_running_recognize(config=config, audio=audio)
        except gexc.GoogleAPICallError as ex:
            raise RecognitionError(f"recognition submit failed: {ex}") from ex

    def poll(self, handle: Any) -> RecognitionPoll:
        try:
            if not handle.done():
                return RecognitionPoll(status=PollStatus.IN_PROGRESS)
            err = handle.exception()
            if err is not None:
                return RecognitionPoll(status=PollStatus.FAILED, error=str(err))
            response = handle.result()
        except gexc.GoogleAPICallError as ex:
            return RecognitionPoll(status=PollStatus.FAILED, error=str(ex))

        results = list(getattr(response, "results", None) or [])

        # With diarization the last result repeats every word with its speaker tag.
        speakers: set[int] = set()
        if results and results[-1].alternatives:
            for w in getattr(results[-1].alternatives[0], "words", None) or []:
                tag = int(getattr(w, "speaker_tag", 0) or 0)
                if tag:
                    speakers.add(tag)
        if speakers and len(results) > 1:
            results = results[:-1]

        # Each result covers a stretch of the chunk; build the k-th whole-chunk
        # alternative by joining the k-th alternative of every result.
        width = max((len(r.alternatives) for r in results), default=0)
        alternatives: list[str] = []
        for k in range(width):
            parts: list[str] = []
            for r in results:
                alts = list(r.alternatives or [])
                if not alts:
                    continue
                alt = alts[k] if k < len(alts) else alts[0]
                txt = str(getattr(alt, "transcript", "") or "").strip()
                if txt:
                    parts.append(txt)
            joined = " ".join(parts).strip()
            if joined and joined not in alternatives:
                alternatives.append(joined)
        return RecognitionPoll(
            status=PollStatus.COMPLETED,
            alternatives=tuple(alternatives),
            speaker_count=len(speakers),
        )


class GoogleTextTranslator:
    """Cloud Translation v3 (translate_text with a project/location parent)."""

    def __init__(self, *, project: str, location: str = "global", client: Any = None) -> None:
        if not project:
            raise TranslationError("GCP_PROJECT is required for Cloud Translation")
        self.parent = f"projects/{project}/locations/{location}"
        self._client = client
        self._languages: set[str] | None = None

    def _translate(self) -> Any:
        if self._client is None:
            self._client = translate.TranslationServiceClient()
        return self._client

    def supported_languages(self) -> set[str]:
        if self._languages is None:
            try:
                resp = self._translate().get_supported_languages(request={"parent": self.parent})
            except gexc.GoogleAPICallError as ex:
                raise TranslationError(f"language listing failed: {ex}") from ex
            self._languages = {
                str(lang.language_code).split("-", 1)[0].lower()
                for lang in (resp.languages or [])
                if getattr(lang, "language_code", "")
            }
        return set(self._languages)

    def translate(self, text: str, source: str, target: str) -> str:
        req: dict[str, Any] = {
            "parent": self.parent,
            "contents": [text],
            "mime_type": "text/plain",
            "source_language_code": source,
            "target_language_code": target,
        }
        try:
            resp = self._translate().translate_text(request=req)
        except gexc.InvalidArgument as ex:
            if "not supported" in str(ex).lower():
                raise UnsupportedLanguagePair(source, target, str(ex)) from ex
            raise TranslationError(f"translation failed: {ex}") from ex
        except gexc.GoogleAPICallError as ex:
            raise TranslationError(f"translation failed: {ex}") from ex
        if not resp.translations:
            raise TranslationError("translation returned no text")
        return str(resp.translations[0].translated_text or "")


def _language_code_for_voice(voice_id: str) -> str:
    # Voice names look like "hi-IN-Standard-A" / "cmn-CN-Wavenet-B".
    parts = str(voice_id).split("-")
    if len(parts) >= 2:
        return f"{parts[0]}-{parts[1]}"
    return "en-US"


class GoogleSpeechSynthesizer:
    """Cloud Text-to-Speech over its REST endpoint (API key auth)."""

    def __init__(self, *, api_key: str, timeout_sec: float = 60.0) -> None:
        if not api_key:
            raise SynthesisError("GOOGLE_API_KEY is required for Text-to-Speech")
        self._api_key = api_key
        self.timeout_sec = float(timeout_sec)

    def _request(self, url: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(url, data=data, method="POST" if data else "GET")
        req.add_header("Content-Type", "application/json; charset=utf-8")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                body = resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as ex:
            detail = ""
            with suppress(Exception):
                detail = ex.read().decode("utf-8", errors="replace")[:300]
            raise SynthesisError(f"text-to-speech HTTP {ex.code}: {detail}") from ex
        except (urllib.error.URLError, OSError) as ex:
            raise SynthesisError(f"text-to-speech request failed: {ex}") from ex
        try:
            return json.loads(body) if body else {}
        except ValueError as ex:
            raise SynthesisError(f"text-to-speech returned invalid JSON: {ex}") from ex

    def synthesize(self, text: str, voice_id: str, audio_format: str = "mp3") -> bytes:
        encoding = "MP3" if str(audio_format).lower() == "mp3" else "LINEAR16"
        payload = {
            "input": {"text": text},
            "voice": {"languageCode": _language_code_for_voice(voice_id), "name": voice_id},
            "audioConfig": {"audioEncoding": encoding},
        }
        key = urllib.parse.quote(self._api_key, safe="")
        data = self._request(f"{_TTS_BASE}/text:synthesize?key={key}", payload)
        content = data.get("audioContent")
        if not content:
            raise SynthesisError("text-to-speech returned no audio")
        return base64.b64decode(content)

    def list_voices(self, language_code: str) -> list[str]:
        q = urllib.parse.urlencode({"languageCode": language_code, "key": self._api_key})
        data = self._request(f"{_TTS_BASE}/voices?{q}")
        voices = data.get("voices") or []
        names = [str(v.get("name")) for v in voices if isinstance(v, dict) and v.get("name")]
        logger.debug("tts_voices_listed", language_code=language_code, count=len(names))
        return names
