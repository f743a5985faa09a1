from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

# Containers that take almost any codec under stream copy.
_MKV_SOURCES = {".mkv", ".avi", ".wmv"}


def _stem(filename: str) -> str:
    stem = re.sub(r"[^A-Za-z0-9._-]+", "_", Path(str(filename or "")).stem).strip("._")
    return stem or "video"


def output_suffix(filename: str) -> str:
    return ".mkv" if Path(str(filename)).suffix.lower() in _MKV_SOURCES else ".mp4"


def upload_key(filename: str) -> str:
    ts = datetime.now(tz=timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"uploads/{ts}/{uuid.uuid4().hex}{Path(str(filename)).suffix.lower()}"


def output_key(job_id: str, filename: str, language: str) -> str:
    return f"translated/{job_id}/{_stem(filename)}_{language}{output_suffix(filename)}"


def audio_key(job_id: str, filename: str, language: str) -> str:
    return f"translated/{job_id}/{_stem(filename)}_{language}_audio.mp3"


def transcription_key(job_id: str, language: str, index: int, suffix: str) -> str:
    return f"transcription/{job_id}/{language}/chunk_{int(index):03d}{suffix}"
