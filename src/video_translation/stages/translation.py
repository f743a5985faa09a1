from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from video_translation.services.base import (
    TextTranslator,
    TranslationError,
    UnsupportedLanguagePair,
)
from video_translation.utils.log import logger
from video_translation.utils.retry import retry_call

PLACEHOLDER_RE = re.compile(r"\bPN_(\d+)_(\d+)\b")
_EDGE_PUNCT_RE = re.compile(r"^(\W*)(.*?)(\W*)$", re.DOTALL)
_SENTENCE_RE = re.compile(r"[^.!?।]+(?:[.!?।]+|$)")

# Capitalised words that are ordinary vocabulary, not names.
COMMON_WORDS = frozenset(
    {
        "the", "a", "an", "i", "it", "this", "that", "these", "those", "we", "you", "he", "she",
        "they", "my", "our", "your", "his", "her", "their", "and", "but", "so", "then", "there",
        "here", "what", "when", "where", "why", "how", "who", "which", "yes", "no", "okay",
        "well", "now", "hello", "thank", "thanks", "please", "today", "tomorrow", "yesterday",
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
        "mr", "mrs", "ms", "dr", "ok", "also", "however", "therefore", "after", "before",
        "is", "are", "was", "were", "do", "does", "did", "can", "will", "would", "should", "could",
        "have", "has", "be", "if", "or", "not", "let", "just", "all", "some", "every", "each",
        "first", "next", "last", "finally", "because", "since", "until", "although", "though",
        "maybe", "still", "even", "only", "once", "again", "one", "two", "many", "most", "more",
        "very", "good", "morning", "evening", "night", "everyone", "everybody", "welcome", "back",
        "center", "stage", "host", "session", "high", "performance", "grace", "skill",
        "artistry", "display", "performers", "journey", "moment", "entertainment", "pause",
        "festivities", "continues", "between", "captivating", "refined", "keeping",
        "enthralled", "transit", "while", "take", "offer", "as", "by", "on", "in", "at", "to",
        "for", "of", "with", "from", "up", "down", "out", "off", "over", "under",
        "look", "see", "listen", "remember", "imagine", "think", "know", "go", "come", "make",
        "get", "give", "tell", "say", "ask", "try", "use", "find", "show", "start", "stop",
    }
)


@dataclass(frozen=True, slots=True)
class ProtectedText:
    text: str
    # placeholder -> original word
    restoration: dict[str, str]


def _is_proper_noun(word: str) -> bool:
    if len(word) < 2 or not word.isalpha() or word.lower() in COMMON_WORDS:
        return False
    if word.isupper():
        # acronym
        return True
    if any(c.isupper() for c in word[1:]):
        # mixed case (McDonald, iPhone)
        return True
    return word[0].isupper() and word[1:].islower() and 3 <= len(word) <= 15


def protect_proper_nouns(text: str) -> ProtectedText:
    """
    Replace likely names with PN_<i>_<len> placeholders so a translator
    leaves them alone. Punctuation around a name stays outside its placeholder.
    """
    restoration: dict[str, str] = {}
    out: list[str] = []
    for tok in re.split(r"(\s+)", str(text or "")):
        if not tok or tok.isspace():
            out.append(tok)
            continue
        m = _EDGE_PUNCT_RE.match(tok)
        lead, core, trail = (m.group(1), m.group(2), m.group(3)) if m else ("", tok, "")
        if core and _is_proper_noun(core):
            ph = f"PN_{len(restoration)}_{len(core)}"
            restoration[ph] = core
            out.append(f"{lead}{ph}{trail}")
        else:
            out.append(tok)
    return ProtectedText(text="".join(out), restoration=restoration)


def restore_proper_nouns(text: str, restoration: dict[str, str]) -> str:
    if not restoration:
        return text

    def _sub(m: re.Match[str]) -> str:
        return restoration.get(m.group(0), m.group(0))

    return PLACEHOLDER_RE.sub(_sub, text)


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.findall(str(text or "")) if s.strip()]


class ChunkTranslator:
    """
    Translate one chunk's transcript.

    Pairs outside `direct_pairs` (or rejected by the translator as
    unsupported) go through the pivot language in two hops.
    """

    def __init__(
        self,
        translator: TextTranslator,
        *,
        direct_pairs: set[tuple[str, str]] | None = None,
        pivot: str = "en",
        max_chars: int = 5000,
        retries: int = 3,
        retry_delay_s: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._translator = translator
        self.direct_pairs = set(direct_pairs) if direct_pairs is not None else {("*", "*")}
        self.pivot = pivot
        self.max_chars = int(max_chars)
        self.retries = int(retries)
        self.retry_delay_s = float(retry_delay_s)
        self._sleep = sleep
        self._languages: set[str] | None = None

    def _supported(self) -> set[str]:
        # Only a successful listing is cached; an empty set means unknown.
        if self._languages is None:
            try:
                self._languages = set(self._translator.supported_languages())
            except Exception as ex:
                logger.warning("translation_languages_unavailable", error=str(ex))
                return set()
        return self._languages

    def is_direct(self, source: str, target: str) -> bool:
        if ("*", "*") not in self.direct_pairs and (source, target) not in self.direct_pairs:
            return False
        langs = self._supported()
        return not langs or (source in langs and target in langs)

    def translate(self, text: str, source: str, target: str) -> str:
        if not str(text or "").strip():
            return ""
        if source == target:
            return text
        protected = protect_proper_nouns(text)
        if len(protected.text) > self.max_chars:
            out = self._translate_long(protected.text, source, target)
        else:
            out = self._route(protected.text, source, target)
        return restore_proper_nouns(out, protected.restoration)

    def _translate_long(self, text: str, source: str, target: str) -> str:
        pieces: list[str] = []
        sentences = split_sentences(text)
        for i, sentence in enumerate(sentences):
            try:
                pieces.append(self._route(sentence, source, target))
            except Exception as ex:
                logger.warning(
                    "translation_sentence_kept_original",
                    sentence=i,
                    of=len(sentences),
                    error=str(ex),
                )
                pieces.append(sentence)
        return " ".join(p.strip() for p in pieces if p.strip())

    def _route(self, text: str, source: str, target: str) -> str:
        if self.pivot in (source, target) or self.is_direct(source, target):
            try:
                return self._call(text, source, target)
            except UnsupportedLanguagePair:
                if self.pivot in (source, target):
                    raise
                logger.info("translation_pair_unsupported", source=source, target=target)
        return self._two_hop(text, source, target)

    def _two_hop(self, text: str, source: str, target: str) -> str:
        logger.debug("translation_two_hop", source=source, pivot=self.pivot, target=target)
        middle = self._call(text, source, self.pivot)
        return self._call(middle, self.pivot, target)

    def _call(self, text: str, source: str, target: str) -> str:
        out = retry_call(
            lambda: self._translator.translate(text, source, target),
            retries=self.retries,
            base=self.retry_delay_s,
            cap=self.retry_delay_s * 4,
            jitter=False,
            giveup=lambda ex: isinstance(ex, UnsupportedLanguagePair),
            on_retry=lambda n, delay, ex: logger.warning(
                "translation_retry", attempt=n, delay_s=delay, error=str(ex)
            ),
            sleep=self._sleep,
        )
        out = str(out or "")
        if text.strip() and not out.strip():
            raise TranslationError(f"empty translation for {source}->{target}")
        return out
