from __future__ import annotations

import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from video_translation.services.base import (
    PollStatus,
    RecognitionError,
    ServiceError,
    SpeechRecognizer,
)
from video_translation.utils.ffmpeg import MediaTools
from video_translation.utils.ffmpeg_safe import ToolError
from video_translation.utils.io import file_size
from video_translation.utils.ladder import Strategy, run_ladder
from video_translation.utils.log import logger

TERMINAL_PUNCT = (".", "!", "?", "।", "。", "！", "？")

CONNECTIVES = frozenset(
    {"and", "but", "because", "so", "then", "however", "therefore", "although", "while", "or"}
)

# Capitalised words that are not names (sentence starters, pronouns, greetings).
COMMON_WORDS = frozenset(
    {
        "the", "a", "an", "i", "it", "this", "that", "these", "those", "we", "you", "he", "she",
        "they", "my", "our", "your", "his", "her", "their", "and", "but", "so", "then", "there",
        "here", "what", "when", "where", "why", "how", "who", "which", "yes", "no", "okay", "ok",
        "well", "now", "hello", "hi", "thank", "thanks", "please", "is", "are", "was", "were",
        "if", "in", "on", "at", "for", "with", "of", "to", "from", "today", "tomorrow",
        "yesterday", "also", "let", "lets", "let's", "all", "one", "some", "just", "because",
        "however", "therefore", "although", "while", "or", "do", "does", "did", "can", "will",
    }
)

_INCOMPLETE_PATTERNS = (
    re.compile(r"\b(the|a|an|and|or|but|of|to|with|for|in|on|at|because)\s*$", re.IGNORECASE),
    re.compile(r"\b(um+|uh+|erm|hmm+)\b", re.IGNORECASE),
    re.compile(r"(\.\.\.|…)\s*$"),
)

_EDGE_PUNCT_RE = re.compile(r"^(\W*)(.*?)(\W*)$", re.DOTALL)

_FUSED_WORDS = {
    "alot": "a lot",
    "infront": "in front",
    "incase": "in case",
    "aswell": "as well",
    "eachother": "each other",
    "atleast": "at least",
}

_PLACEHOLDER_MARKERS = (
    "mock transcription",
    "sample transcription",
    "test transcription",
    "lorem ipsum",
)


@dataclass(frozen=True, slots=True)
class TranscriptSelection:
    text: str
    score: float
    source: str  # single|base|composite|empty
    candidates: int


@dataclass(frozen=True, slots=True)
class RecognitionSettings:
    poll_interval_s: float = 5.0
    poll_attempts: int = 60
    max_alternatives: int = 3


def _split_edges(token: str) -> tuple[str, str, str]:
    m = _EDGE_PUNCT_RE.match(token)
    if not m:
        return "", token, ""
    return m.group(1), m.group(2), m.group(3)


def _is_name_like(word: str) -> bool:
    return (
        len(word) > 1
        and word.isalpha()
        and word[0].isupper()
        and word[1:].islower()
        and word.lower() not in COMMON_WORDS
    )


def _bare_words(text: str) -> list[str]:
    out = []
    for tok in text.split():
        core = _split_edges(tok)[1].lower()
        if core:
            out.append(core)
    return out


def name_like_count(text: str) -> int:
    """Capitalised, non-common tokens that do not open a sentence."""
    count = 0
    prev = ""
    for tok in text.split():
        core = _split_edges(tok)[1]
        at_start = not prev or prev.endswith(TERMINAL_PUNCT)
        if not at_start and _is_name_like(core):
            count += 1
        prev = tok
    return count


def has_repeated_phrase(text: str, n: int = 4) -> bool:
    words = _bare_words(text)
    seen: set[tuple[str, ...]] = set()
    for i in range(len(words) - n + 1):
        gram = tuple(words[i : i + n])
        if gram in seen:
            return True
        seen.add(gram)
    return False


def looks_incomplete(text: str) -> bool:
    return any(p.search(text) for p in _INCOMPLETE_PATTERNS)


def score_transcript(text: str) -> float:
    t = str(text or "").strip()
    if not t:
        return 0.0
    words = _bare_words(t)
    score = min(20.0, len(t) / 10.0)
    score += min(15.0, len(words) * 0.5)
    score += 2.0 * name_like_count(t)
    if t.endswith(TERMINAL_PUNCT):
        score += 10.0
    if any(w in CONNECTIVES for w in words):
        score += 5.0
    if has_repeated_phrase(t):
        score -= 10.0
    if looks_incomplete(t):
        score -= 5.0
    return score


def _build_composite(texts: Sequence[str], base: str) -> str | None:
    """
    Longest repeat-free candidate, with name spellings and terminal
    punctuation borrowed from the other candidates.
    """
    clean = [t for t in texts if not has_repeated_phrase(t)]
    if not clean:
        return None
    longest = max(clean, key=len)

    capitalised: dict[str, str] = {}
    for t in texts:
        for tok in t.split():
            core = _split_edges(tok)[1]
            if _is_name_like(core):
                capitalised.setdefault(core.lower(), core)

    out: list[str] = []
    for tok in longest.split():
        lead, core, trail = _split_edges(tok)
        if core.islower() and core in capitalised:
            core = capitalised[core]
        out.append(f"{lead}{core}{trail}")
    composite = " ".join(out)

    if not composite.endswith(TERMINAL_PUNCT):
        donors = [base, *texts]
        mark = next((d[-1] for d in donors if d.endswith(TERMINAL_PUNCT)), None)
        if mark:
            composite = composite.rstrip(",;: ") + mark
    return composite


def cleanup_transcript(text: str) -> str:
    t = re.sub(r"\s+", " ", str(text or "")).strip()
    if not t:
        return ""
    # space before punctuation: "hello , world" -> "hello, world"
    t = re.sub(r"\s+([,.!?;:।])", r"\1", t)
    # missing space after sentence punctuation: "done.Next" -> "done. Next"
    t = re.sub(r"(?<=[a-z])([.!?])(?=[A-Z])", r"\1 ", t)
    t = re.sub(r"।(?=\S)", "। ", t)
    for fused, fixed in _FUSED_WORDS.items():
        t = re.sub(rf"\b{fused}\b", fixed, t, flags=re.IGNORECASE)
    if t[0].isalpha() and t[0].islower():
        t = t[0].upper() + t[1:]
    if not t.endswith(TERMINAL_PUNCT):
        t = t.rstrip(",;:") + "."
    return t


def select_transcript(candidates: Sequence[str]) -> TranscriptSelection:
    """
    Pick the best of several recognition alternatives for one chunk.

    The returned score is the selection score before cleanup, so it is never
    below any candidate's own score.
    """
    texts = [str(c).strip() for c in candidates if c and str(c).strip()]
    if not texts:
        return TranscriptSelection(text="", score=0.0, source="empty", candidates=0)

    scored = [(score_transcript(t), t) for t in texts]
    best_score, best = scored[0]
    for s, t in scored[1:]:
        if s > best_score:
            best_score, best = s, t
    source = "single" if len(texts) == 1 else "base"

    if len(texts) >= 2:
        composite = _build_composite(texts, best)
        if composite and composite != best:
            composite_score = score_transcript(composite)
            if composite_score > best_score:
                best, best_score, source = composite, composite_score, "composite"

    return TranscriptSelection(
        text=cleanup_transcript(best), score=best_score, source=source, candidates=len(texts)
    )


def looks_like_placeholder(text: str) -> bool:
    low = str(text or "").lower()
    return any(m in low for m in _PLACEHOLDER_MARKERS)


def prepare_for_recognition(tools: MediaTools, chunk: Path, out_dir: Path) -> Path:
    """Lossless mono 16 kHz copy of a chunk: FLAC, or PCM WAV when FLAC fails."""
    cfg = tools.config
    stem = out_dir / f"{chunk.stem}_rec"

    def _encode(codec: str, suffix: str) -> Callable[[float], Path]:
        def run(timeout: float) -> Path:
            out = stem.with_suffix(suffix)
            tools.ffmpeg(
                ["-i", str(chunk), "-ac", "1", "-ar", str(cfg.sample_rate), "-c:a", codec, str(out)],
                timeout_s=timeout,
            )
            return out

        return run

    def _verify(p: Path) -> None:
        if file_size(p) <= 0:
            raise ToolError(f"no output written: {p}")

    return run_ladder(
        "recognition_audio",
        [
            Strategy("flac", _encode("flac", ".flac"), cfg.quick_timeout_s * 2),
            Strategy("wav_pcm", _encode("pcm_s16le", ".wav"), cfg.quick_timeout_s * 2),
        ],
        verify=_verify,
    ).value


def transcribe_chunk(
    recognizer: SpeechRecognizer,
    audio: Path,
    language_code: str,
    *,
    audio_uri: str | None = None,
    settings: RecognitionSettings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> TranscriptSelection:
    """
    Submit one chunk for recognition and poll until it finishes.

    A FAILED status, or no result after `poll_attempts` polls, raises
    RecognitionError.
    """
    rs = settings or RecognitionSettings()
    try:
        handle = recognizer.submit(
            audio, language_code, audio_uri=audio_uri, max_alternatives=rs.max_alternatives
        )
    except ServiceError:
        raise
    except Exception as ex:
        raise RecognitionError(f"recognition submit failed: {ex}") from ex

    for attempt in range(int(rs.poll_attempts)):
        poll = recognizer.poll(handle)
        if poll.status is PollStatus.COMPLETED:
            selection = select_transcript(poll.alternatives)
            logger.debug(
                "recognition_done",
                polls=attempt + 1,
                candidates=selection.candidates,
                source=selection.source,
                score=round(selection.score, 2),
                speakers=poll.speaker_count,
            )
            return selection
        if poll.status is PollStatus.FAILED:
            raise RecognitionError(poll.error or "recognition failed")
        sleep(float(rs.poll_interval_s))
    raise RecognitionError(f"recognition did not finish after {rs.poll_attempts} polls")
