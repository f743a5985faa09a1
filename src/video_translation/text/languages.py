from __future__ import annotations

# Language names accepted on input, mapped to the short codes used everywhere else.
LANGUAGE_CODES: dict[str, str] = {
    "english": "en",
    "hindi": "hi",
    "tamil": "ta",
    "telugu": "te",
    "kannada": "kn",
    "malayalam": "ml",
    "bengali": "bn",
    "marathi": "mr",
    "gujarati": "gu",
    "punjabi": "pa",
    "urdu": "ur",
    "arabic": "ar",
    "korean": "ko",
    "chinese": "zh",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "japanese": "ja",
}

# Short code -> speech recognition locale.
RECOGNITION_LOCALES: dict[str, str] = {
    "en": "en-US",
    "hi": "hi-IN",
    "ta": "ta-IN",
    "te": "te-IN",
    "kn": "kn-IN",
    "ml": "ml-IN",
    "bn": "bn-IN",
    "mr": "mr-IN",
    "gu": "gu-IN",
    "pa": "pa-Guru-IN",
    "ur": "ur-IN",
    "ar": "ar-XA",
    "es": "es-US",
    "fr": "fr-FR",
    "de": "de-DE",
    "zh": "zh-CN",
    "ja": "ja-JP",
    "ko": "ko-KR",
}

DEFAULT_RECOGNITION_LOCALE = "en-US"


def normalize_language(value: str) -> str:
    """
    Accept a language name ("Hindi"), a short code ("hi") or a locale ("hi-IN").

    Raises ValueError for anything unknown.
    """
    v = str(value or "").strip().lower().replace("_", "-")
    if not v:
        raise ValueError("language is empty")
    if v in LANGUAGE_CODES:
        return LANGUAGE_CODES[v]
    code = v.split("-", 1)[0]
    if code in RECOGNITION_LOCALES:
        return code
    raise ValueError(f"unsupported language: {value!r}")


def recognition_locale(language: str) -> str:
    try:
        code = normalize_language(language)
    except ValueError:
        return DEFAULT_RECOGNITION_LOCALE
    return RECOGNITION_LOCALES.get(code, DEFAULT_RECOGNITION_LOCALE)


def is_supported(language: str) -> bool:
    try:
        normalize_language(language)
    except ValueError:
        return False
    return True
