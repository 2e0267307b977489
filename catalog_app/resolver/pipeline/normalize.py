"""
Text normalization for scraped vehicle names.

Scrapers leak template artifacts into names (``"M3Specs"``, ``"320i undefined"``,
``"NaN"``) and spell the same model with and without accents. Everything that
compares names goes through :func:`normalize`; write-back to display columns
goes through :func:`strip_artifacts`, which removes the same artifacts but keeps
the original casing and accents.
"""

from __future__ import annotations

import re
import unicodedata

_TRAILING_SPECS = re.compile(r"specs$", re.IGNORECASE)
# Scrapers glue these onto trims ("320dNaN"), so they go wherever they appear
_EMBEDDED_ARTIFACTS = re.compile(r"undefined|null|nan", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[\W_]+")


def _coerce_text(raw: object) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    return str(raw)


def _strip_once(text: str) -> str:
    text = _EMBEDDED_ARTIFACTS.sub("", text)
    text = _WHITESPACE.sub(" ", text).strip()
    return _TRAILING_SPECS.sub("", text).strip()


def strip_artifacts(raw: object) -> str:
    """
    Remove scraper artifacts while preserving case and accents.

    Removal repeats until nothing changes, so ``"Specs Specs"`` and nested
    fragments such as ``"nunullll"`` collapse completely.
    """

    text = _coerce_text(raw)
    while True:
        cleaned = _strip_once(text)
        if cleaned == text:
            return cleaned
        text = cleaned


def has_artifacts(raw: object) -> bool:
    """Return True when ``raw`` would change under :func:`strip_artifacts` beyond whitespace."""

    text = _WHITESPACE.sub(" ", _coerce_text(raw)).strip()
    return strip_artifacts(text) != text


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(raw: object) -> str:
    """
    Canonical comparison form of a free-text name.

    Lower-cases, folds accents (``"Murciélago"`` becomes ``"murcielago"``),
    strips artifacts and collapses whitespace. Never raises; ``None`` yields
    the empty string, which callers treat as "no usable name". The function is
    idempotent.
    """

    return strip_artifacts(strip_diacritics(_coerce_text(raw).lower()))


def match_key(raw: object) -> str:
    """Index key for brand/model names: normalized, punctuation folded to single spaces."""

    return _NON_WORD.sub(" ", normalize(raw)).strip()


def code_key(raw: object) -> str:
    """Index key for chassis codes: normalized, alphanumerics only (``"e-46"`` → ``"e46"``)."""

    return _NON_WORD.sub("", normalize(raw))


def slugify(name: object) -> str:
    return match_key(name).replace(" ", "-")


__all__ = [
    "code_key",
    "has_artifacts",
    "match_key",
    "normalize",
    "slugify",
    "strip_artifacts",
    "strip_diacritics",
]
