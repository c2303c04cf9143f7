"""
Track identity resolution.

Normalizes free-text track/artist metadata into a match key so the same
logical track merges across services. Known metadata inconsistencies are
handled by explicit override tables, never inline in the adapters.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Iterable, Tuple

KEY_SEPARATOR = "|"

_QUALIFIER_WORDS = (
    r"feat\.?|ft\.?|featuring|with|prod\.?|remix(?:ed)?|mix|edit|version|"
    r"remaster(?:ed)?|live|mono|stereo|radio|acoustic|demo|instrumental"
)

# "(feat. X)", "[Radio Edit]", "(2011 Remaster)"
_BRACKETED_QUALIFIER = re.compile(
    r"[\(\[][^\(\)\[\]]*\b(?:" + _QUALIFIER_WORDS + r")(?![\w])[^\(\)\[\]]*[\)\]]"
)
# "Song - Remastered 2011", "Song - Radio Edit"
_DASH_QUALIFIER = re.compile(
    r"\s+-\s+[^-]*\b(?:" + _QUALIFIER_WORDS + r")(?![\w])[^-]*$"
)
# Bare "feat. X" without brackets runs to the end of the title
_BARE_FEATURING = re.compile(r"\s+(?:feat\.|ft\.|featuring)\s+.*$")
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def fold_case(text: str) -> str:
    # Upper-case first so dotless and dotted i variants fold to the same letter
    return text.upper().casefold()


@dataclass(frozen=True)
class KeyOverride:
    """Forces a match key for titles/artists whose metadata differs by service."""

    title_contains: str
    artist_contains: str
    key: str

    def matches(self, track_name: str, artist_name: str) -> bool:
        return (
            fold_case(self.title_contains) in fold_case(track_name)
            and fold_case(self.artist_contains) in fold_case(artist_name)
        )


@dataclass(frozen=True)
class TitleCorrection:
    """Replaces mis-split display metadata from a combined "artist - title" field."""

    contains: Tuple[str, ...]
    track_name: str
    artist_name: str

    def matches(self, combined: str) -> bool:
        text = fold_case(combined)
        return all(fold_case(part) in text for part in self.contains)


OVERRIDES: Tuple[KeyOverride, ...] = (
    KeyOverride("just dropped in", "kenny rogers", "just-dropped-in-kenny-rogers"),
)

APPLE_TITLE_CORRECTIONS: Tuple[TitleCorrection, ...] = (
    TitleCorrection(
        contains=("just dropped in", "kenny rogers"),
        track_name="Just Dropped In (To See What Condition My Condition Is In)",
        artist_name="Kenny Rogers & The First Edition",
    ),
)


def normalize(text: Optional[str]) -> str:
    """Case-fold, drop version/featuring qualifiers and punctuation, collapse whitespace."""
    if not text:
        return ""
    value = fold_case(text)
    # Strip innermost groups first so nested qualifiers come out too
    previous = None
    while previous != value:
        previous = value
        value = _BRACKETED_QUALIFIER.sub(" ", value)
    value = _DASH_QUALIFIER.sub("", value)
    value = _BARE_FEATURING.sub("", value)
    value = _PUNCTUATION.sub("", value)
    return _WHITESPACE.sub(" ", value).strip()


def match_key(
    track_name: Optional[str],
    artist_name: Optional[str],
    overrides: Iterable[KeyOverride] = OVERRIDES,
) -> str:
    """Return the identity key used to merge the same track across sources."""
    track_name = track_name or ""
    artist_name = artist_name or ""
    for override in overrides:
        if override.matches(track_name, artist_name):
            return override.key
    return f"{normalize(track_name)}{KEY_SEPARATOR}{normalize(artist_name)}"


def resolve_apple_track(
    combined: str,
    corrections: Iterable[TitleCorrection] = APPLE_TITLE_CORRECTIONS,
) -> Optional[Tuple[str, str]]:
    """Look up a corrected (track, artist) pair for a combined Apple title field."""
    for correction in corrections:
        if correction.matches(combined):
            return correction.track_name, correction.artist_name
    return None
