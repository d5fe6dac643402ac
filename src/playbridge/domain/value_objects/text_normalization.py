"""Text normalization for song matching.

Hey future me - catalogs disagree about EVERYTHING cosmetic:
- "Beyoncé" vs "Beyonce" (diacritics)
- "Daft Punk feat. Pharrell Williams" vs "Daft Punk" (featured artists)
- "Song (2011 Remaster)" vs "Song" (version suffixes)
- "Don't Stop" vs "Dont Stop" (punctuation)

Everything here lowercases, strips diacritics and punctuation, and collapses
whitespace so the fuzzy scorer compares what actually matters.

Examples:
    >>> normalize_title("Get Lucky (Radio Edit)")
    'get lucky'
    >>> normalize_artist("Daft Punk feat. Pharrell Williams")
    'daft punk'
    >>> normalize_string("Beyoncé")
    'beyonce'
"""

import re
import unicodedata

# Featured / collaborating artist markers. Everything after the marker goes.
_FEATURING_PATTERN = re.compile(
    r"\s+(?:feat\.?|ft\.?|featuring|with|vs\.?|and|&)\s+.*$",
    re.IGNORECASE,
)

_BRACKETED_PATTERN = re.compile(r"\s*[\(\[][^\)\]]*[\)\]]")

# Version keywords that make "Song (Live)" a different upload of "Song".
_VERSION_KEYWORDS = (
    r"remaster(?:ed)?|deluxe|extended|live|acoustic|demo|remix|edit|radio|"
    r"single|album|bonus|version|ver|mix"
)

_VERSION_BRACKET_PATTERN = re.compile(
    rf"\s*[\(\[][^\)\]]*\b(?:{_VERSION_KEYWORDS})\b[^\)\]]*[\)\]]",
    re.IGNORECASE,
)

_VERSION_DASH_PATTERN = re.compile(
    rf"\s+-\s+[^-]*\b(?:{_VERSION_KEYWORDS})\b.*$",
    re.IGNORECASE,
)

_FEATURING_BRACKET_PATTERN = re.compile(
    r"\s*[\(\[]\s*(?:feat\.?|ft\.?|featuring|with)\s[^\)\]]*[\)\]]",
    re.IGNORECASE,
)

_NON_WORD_PATTERN = re.compile(r"[^\w\s]|_")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def strip_diacritics(value: str) -> str:
    """Remove combining marks: 'é' -> 'e'."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_string(value: str | None) -> str:
    """Lowercase, drop diacritics and punctuation, collapse whitespace."""
    if not value:
        return ""
    text = strip_diacritics(value.lower())
    text = _NON_WORD_PATTERN.sub(" ", text)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def normalize_title(title: str | None) -> str:
    """Normalize a track title, dropping version and featuring suffixes."""
    if not title:
        return ""
    text = _FEATURING_BRACKET_PATTERN.sub("", title)
    text = _VERSION_BRACKET_PATTERN.sub("", text)
    text = _VERSION_DASH_PATTERN.sub("", text)
    normalized = normalize_string(text)
    # "(Live)" alone must not turn a title into an empty string
    return normalized or normalize_string(title)


def normalize_artist(artist: str | None) -> str:
    """Normalize an artist credit down to the primary artist."""
    if not artist:
        return ""
    text = _BRACKETED_PATTERN.sub("", artist)
    text = _FEATURING_PATTERN.sub("", text)
    normalized = normalize_string(text)
    return normalized or normalize_string(artist)


def sanitize_filename(value: str, replacement: str = "_") -> str:
    """Make a string safe to use as a file name on every common filesystem."""
    cleaned = re.sub(r'[<>:"/\\|?*\x00-\x1f]', replacement, value)
    cleaned = _WHITESPACE_PATTERN.sub(" ", cleaned).strip(" .")
    return cleaned or "untitled"


__all__ = [
    "normalize_artist",
    "normalize_string",
    "normalize_title",
    "sanitize_filename",
    "strip_diacritics",
]
