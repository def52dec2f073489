from __future__ import annotations

from typing import Optional

DEFAULT_LOCALE = "en-US"
SPANISH_LOCALE = "es-ES"
HINDI_LOCALE = "hi-IN"

SUPPORTED_LOCALES = (DEFAULT_LOCALE, SPANISH_LOCALE, HINDI_LOCALE)


def normalize_locale(locale: Optional[str]) -> str:
    """
    Maps any locale string onto the supported set.

    Every read path and job key goes through this, so "es", "es-MX" and
    "ES_es" all share one cache entry.
    """
    value = (locale or "").strip().lower()
    if value.startswith("es"):
        return SPANISH_LOCALE
    if value.startswith("hi"):
        return HINDI_LOCALE
    return DEFAULT_LOCALE


def same_locale(a: Optional[str], b: Optional[str]) -> bool:
    return normalize_locale(a) == normalize_locale(b)
