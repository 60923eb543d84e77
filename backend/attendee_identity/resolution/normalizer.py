"""Display-name normalization for attendee matching."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable

_BRACKETED_RE = re.compile(r"\([^)]*\)|\[[^\]]*\]|\{[^}]*\}")
_UNCLOSED_BRACKET_RE = re.compile(r"[(\[{].*$")
_DEVICE_WORDS = r"iphone|ipad|android|galaxy|phone|pc|macbook|laptop|desktop"
_POSSESSIVE_DEVICE_RE = re.compile(rf"['’]s\s+(?:{_DEVICE_WORDS})\b.*$", re.IGNORECASE)
_DASH_DEVICE_RE = re.compile(rf"\s+[-–|/]\s*(?:{_DEVICE_WORDS})\b.*$", re.IGNORECASE)
_APOSTROPHE_RE = re.compile(r"['’`´]")
_NON_WORD_RE = re.compile(r"[^\w\s]|_")
_MULTISPACE_RE = re.compile(r"\s+")
_ROLE_SUFFIXES = ("guest", "host", "cohost", "co-host")
_TRAILING_SEGMENT_RE = re.compile(r"\s[|/–-]\s")
_NON_PERSON_TOKENS = frozenset(
    {
        "admin",
        "android",
        "cohost",
        "desktop",
        "galaxy",
        "guest",
        "host",
        "ipad",
        "iphone",
        "laptop",
        "macbook",
        "meeting",
        "pc",
        "phone",
        "user",
        "zoom",
    }
)


def normalize_display_name(value: str | None) -> str:
    """Reduce a raw display name to its comparable key.

    Lower-cased, accent-folded, bracketed annotations and device suffixes
    removed, punctuation dropped, whitespace collapsed. Idempotent. An empty
    result marks the name as unresolvable.
    """

    if not value:
        return ""
    text = _strip_annotations(value)
    folded = "".join(
        char
        for char in unicodedata.normalize("NFKD", text.casefold())
        if not unicodedata.combining(char)
    )
    folded = _APOSTROPHE_RE.sub("", folded)
    folded = _NON_WORD_RE.sub(" ", folded)
    tokens = folded.split()
    tokens = _drop_role_suffixes(tokens)
    return " ".join(tokens)


def display_name_for(value: str | None) -> str:
    """Clean display label used for canonical names."""

    if not value:
        return ""
    text = unicodedata.normalize("NFKC", _strip_annotations(value))
    text = _MULTISPACE_RE.sub(" ", text).strip(" -|,;:")
    tokens = _drop_role_suffixes(text.split())
    text = " ".join(tokens)
    if text and (text == text.lower() or text == text.upper()):
        text = " ".join(_display_token(token) for token in tokens)
    return text


def first_last_key(normalized: str) -> str:
    """First two tokens of a 3+ token key when they look like a person's name.

    "sam ghanem sober founders" reduces to "sam ghanem"; an empty string means
    no reduction applies.
    """

    tokens = normalized.split() if normalized else []
    if len(tokens) < 3:
        return ""
    first, last = tokens[0], tokens[1]
    if len(first) < 2 or len(last) < 2:
        return ""
    if not any(char.isalpha() for char in first) or not any(char.isalpha() for char in last):
        return ""
    if first in _NON_PERSON_TOKENS or last in _NON_PERSON_TOKENS:
        return ""
    return f"{first} {last}"


def canonical_name_score(name: str) -> tuple[int, int, int, int]:
    """Higher tuple is preferred as canonical name."""

    stripped = name.strip()
    tokens = stripped.split()
    has_annotation = bool(
        _BRACKETED_RE.search(stripped)
        or _POSSESSIVE_DEVICE_RE.search(stripped)
        or _TRAILING_SEGMENT_RE.search(stripped)
    )
    initials_only = sum(1 for token in tokens if len(token.rstrip(".")) <= 1)
    properly_cased = bool(tokens) and all(token[:1].isupper() for token in tokens if token[:1].isalpha())
    return (
        0 if has_annotation else 1,
        len(tokens) - initials_only,
        1 if properly_cased else 0,
        len(stripped),
    )


def choose_canonical_name(aliases: Iterable[str]) -> str:
    """Pick the best-looking alias deterministically and clean it for display."""

    best: tuple[tuple[int, int, int, int], str] | None = None
    for alias in aliases:
        label = display_name_for(alias)
        if not label:
            continue
        candidate = (canonical_name_score(alias), alias)
        if best is None or candidate[0] > best[0] or (candidate[0] == best[0] and alias < best[1]):
            best = candidate
    return display_name_for(best[1]) if best is not None else ""


def is_probable_bot(normalized: str, keywords: Iterable[str]) -> bool:
    """Return True when the name looks like a recording/note-taking bot."""

    if not normalized:
        return False
    padded = f" {normalized} "
    for keyword in keywords:
        key = normalize_display_name(keyword)
        if key and f" {key} " in padded:
            return True
    return False


def _strip_annotations(value: str) -> str:
    text = _BRACKETED_RE.sub(" ", value)
    text = _UNCLOSED_BRACKET_RE.sub(" ", text)
    text = _POSSESSIVE_DEVICE_RE.sub("", text)
    text = _DASH_DEVICE_RE.sub("", text)
    return text


def _drop_role_suffixes(tokens: list[str]) -> list[str]:
    trimmed = list(tokens)
    while len(trimmed) > 1:
        last = trimmed[-1].casefold().strip(".-")
        if last == "host" and len(trimmed) > 2 and trimmed[-2].casefold() == "co":
            trimmed = trimmed[:-2]
            continue
        if last in _ROLE_SUFFIXES:
            trimmed.pop()
            continue
        break
    return trimmed


def _display_token(token: str) -> str:
    if not any(char.isalpha() for char in token):
        return token.upper()
    return token[:1].upper() + token[1:].lower()
