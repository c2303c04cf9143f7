"""
Format adapters: one per supported export format.

Each adapter turns a raw export file (name + text content) into canonical
``PlayEvent`` objects. Files no adapter recognizes contribute nothing;
documents that fail to parse are logged and contribute nothing; single
records that fail required-field checks are dropped.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from io import StringIO
from typing import Optional, List, Dict, Any, NamedTuple, Union

import numpy as np
import pandas as pd

from . import config
from .error_handling import MalformedFileError, get_logger, handle_errors
from .identity import resolve_apple_track
from .models import PlayEvent, Source, UNKNOWN_ARTIST, UNKNOWN_ALBUM

FileContent = Union[str, bytes]

logger = get_logger()

# Epoch milliseconds that pandas can represent as a Timestamp
_EPOCH_MS_MIN = pd.Timestamp.min.value // 1_000_000 + 1
_EPOCH_MS_MAX = pd.Timestamp.max.value // 1_000_000 - 1


class ParseResult(NamedTuple):
    """Events read from one file and the number of records dropped as malformed."""

    events: List[PlayEvent]
    skipped: int = 0


def _empty_result() -> ParseResult:
    return ParseResult([])


def _decode(content: FileContent) -> str:
    if isinstance(content, bytes):
        return content.decode("utf-8-sig", errors="replace")
    return content.lstrip("\ufeff")


def _clean_text(value: Any) -> Optional[str]:
    """Return stripped text, or None for missing/NaN/blank values."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def _to_float(value: Any) -> float:
    """Float value of a cell; NaN for anything unparseable or too large."""
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return np.nan


def _clean_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    if not np.isfinite(number):
        return None
    return int(number)


def _numeric(series: pd.Series) -> pd.Series:
    return series.map(_to_float).astype(float)


def _to_pydatetime(value: Any) -> Optional[datetime]:
    """Timestamp cell as a datetime; None when missing or unrepresentable."""
    if pd.isna(value):
        return None
    try:
        return value.to_pydatetime()
    except (OverflowError, ValueError, pd.errors.OutOfBoundsDatetime):
        return None


def _column(df: pd.DataFrame, name: str) -> pd.Series:
    """Return a column, or an all-missing one when the export omits it."""
    if name in df.columns:
        return df[name]
    return pd.Series(None, index=df.index, dtype=object)


def _is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in ("true", "1", "yes", "y")


class FormatAdapter:
    """Base class: subclasses declare how they recognize and parse a file."""

    source: Source
    name_markers: tuple = ()
    extensions: tuple = ()

    def matches(self, file_name: str) -> bool:
        lowered = file_name.lower()
        return (
            any(marker.lower() in lowered for marker in self.name_markers)
            and lowered.endswith(self.extensions)
        )

    def parse(self, file_name: str, content: FileContent) -> List[PlayEvent]:
        return self.read(file_name, content).events

    def read(self, file_name: str, content: FileContent) -> ParseResult:
        raise NotImplementedError


class SpotifyJsonAdapter(FormatAdapter):
    """
    Spotify privacy exports.

    Understands both the Extended Streaming History records
    (``Streaming_History_Audio_*.json``: ``ts``, ``ms_played``,
    ``master_metadata_*``, podcast ``episode_*`` fields) and the Account
    Data records (``StreamingHistory_music_*.json`` / ``_podcast_*``:
    ``endTime``, ``msPlayed``, ``trackName``, ``artistName``).
    """

    source = Source.SPOTIFY
    name_markers = ("Streaming_History", "StreamingHistory")
    extensions = (".json",)

    @handle_errors(default_return=_empty_result, exceptions=(MalformedFileError,))
    def read(self, file_name: str, content: FileContent) -> ParseResult:
        try:
            data = json.loads(_decode(content))
        except json.JSONDecodeError as e:
            raise MalformedFileError(file_name, e) from e
        if not isinstance(data, list):
            raise MalformedFileError(file_name, "expected a JSON array of listening records")

        records = [r for r in data if isinstance(r, dict)]
        not_records = len(data) - len(records)
        if not records:
            return ParseResult([], not_records)

        df = pd.DataFrame(records)
        if "ts" in df.columns:
            df = self._extended_frame(df)
        elif "endTime" in df.columns:
            df = self._account_data_frame(df)
        else:
            logger.info(f"{file_name}: no recognizable listening records")
            return ParseResult([], not_records)

        # Timestamp and a finite, non-negative duration are required on every record
        valid = df["timestamp"].notna() & np.isfinite(df["ms_played"]) & (df["ms_played"] >= 0)
        dropped = int((~valid).sum()) + not_records
        if dropped:
            logger.debug(f"{file_name}: dropped {dropped} malformed records")
        df = df[valid]

        events = [self._to_event(row) for row in df.to_dict("records")]
        logger.debug(f"{file_name}: parsed {len(events):,} Spotify events")
        return ParseResult(events, dropped)

    @staticmethod
    def _extended_frame(df: pd.DataFrame) -> pd.DataFrame:
        out = pd.DataFrame({
            "timestamp": pd.to_datetime(df["ts"], format="ISO8601", utc=True, errors="coerce"),
            "ms_played": _numeric(_column(df, "ms_played")),
        })
        columns = {
            "track_name": "master_metadata_track_name",
            "artist_name": "master_metadata_album_artist_name",
            "album_name": "master_metadata_album_album_name",
            "show_name": "episode_show_name",
            "episode_name": "episode_name",
            "end_reason": "reason_end",
            "total_duration_ms": "duration_ms",
        }
        for target, column in columns.items():
            out[target] = _column(df, column)
        return out

    @staticmethod
    def _account_data_frame(df: pd.DataFrame) -> pd.DataFrame:
        out = pd.DataFrame({
            "timestamp": pd.to_datetime(df["endTime"], format="%Y-%m-%d %H:%M", utc=True, errors="coerce"),
            "ms_played": _numeric(_column(df, "msPlayed")),
        })
        columns = {
            "track_name": "trackName",
            "artist_name": "artistName",
            "show_name": "podcastName",
            "episode_name": "episodeName",
        }
        for target, column in columns.items():
            out[target] = _column(df, column)
        out["album_name"] = None
        out["end_reason"] = None
        out["total_duration_ms"] = None
        return out

    def _to_event(self, row: Dict[str, Any]) -> PlayEvent:
        return PlayEvent(
            track_name=_clean_text(row["track_name"]),
            artist_name=_clean_text(row["artist_name"]) or UNKNOWN_ARTIST,
            album_name=_clean_text(row["album_name"]) or UNKNOWN_ALBUM,
            timestamp=row["timestamp"].to_pydatetime(),
            duration_played_ms=int(row["ms_played"]),
            source=self.source,
            show_name=_clean_text(row["show_name"]),
            episode_name=_clean_text(row["episode_name"]),
            end_reason=_clean_text(row["end_reason"]),
            total_duration_ms=_clean_int(row["total_duration_ms"]),
        )


class AppleMusicCsvAdapter(FormatAdapter):
    """
    Apple Music activity CSV exports.

    Track and artist share one combined column, written either as
    ``"Artist - Track"`` or ``"Track, Artist"``. Play duration is not in the
    export, so it is estimated from the ``Is User Initiated`` flag.
    """

    source = Source.APPLE_MUSIC
    name_markers = ("apple",)
    extensions = (".csv",)

    TRACK_COLUMNS = ("Track Name", "Song Name", "Title", "Track Description")
    PLAYED_AT_COLUMNS = ("Last Played Date", "Play Date", "Event Start Timestamp", "Played At")
    USER_INITIATED_COLUMNS = ("Is User Initiated", "User Initiated")

    @handle_errors(default_return=_empty_result, exceptions=(MalformedFileError,))
    def read(self, file_name: str, content: FileContent) -> ParseResult:
        try:
            df = pd.read_csv(StringIO(_decode(content)), dtype=str, skipinitialspace=True, skip_blank_lines=True)
        except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise MalformedFileError(file_name, e) from e

        track_col = self._find_column(df, self.TRACK_COLUMNS)
        played_col = self._find_column(df, self.PLAYED_AT_COLUMNS)
        if track_col is None or played_col is None:
            logger.info(f"{file_name}: missing track or played-at column, skipping")
            return ParseResult([])
        initiated_col = self._find_column(df, self.USER_INITIATED_COLUMNS)

        df = df.copy()
        df[track_col] = df[track_col].str.strip()
        df[played_col] = df[played_col].str.strip()
        present = df[track_col].fillna("").ne("") & df[played_col].fillna("").ne("")
        dropped = int((~present).sum())
        if dropped:
            logger.debug(f"{file_name}: dropped {dropped} rows without track or date")
        df = df[present]

        epoch_ms = _numeric(df[played_col])
        # Out-of-range epochs take the wall-clock fallback below
        epoch_ms = epoch_ms.where(epoch_ms.between(_EPOCH_MS_MIN, _EPOCH_MS_MAX))
        timestamps = pd.to_datetime(epoch_ms, unit="ms", utc=True, errors="coerce")

        events = []
        now = None
        for idx, combined in df[track_col].items():
            timestamp = _to_pydatetime(timestamps.loc[idx])
            if timestamp is None:
                # Lossy fallback: keep the play, stamp it with wall-clock time
                if now is None:
                    now = datetime.now(timezone.utc)
                    logger.warning(f"{file_name}: unparseable play dates replaced with current time")
                timestamp = now

            user_initiated = _is_truthy(df.at[idx, initiated_col]) if initiated_col else False
            track_name, artist_name = split_combined_title(combined)
            events.append(PlayEvent(
                track_name=track_name,
                artist_name=artist_name,
                album_name=UNKNOWN_ALBUM,
                timestamp=timestamp,
                duration_played_ms=config.FULL_PLAY_MS if user_initiated else config.PARTIAL_PLAY_MS,
                source=self.source,
            ))

        logger.debug(f"{file_name}: parsed {len(events):,} Apple Music events")
        return ParseResult(events, dropped)

    @staticmethod
    def _find_column(df: pd.DataFrame, candidates: tuple) -> Optional[str]:
        by_lower = {str(c).strip().lower(): c for c in df.columns}
        for candidate in candidates:
            if candidate.lower() in by_lower:
                return by_lower[candidate.lower()]
        return None


def split_combined_title(combined: str) -> tuple:
    """
    Split a combined Apple title field into (track, artist).

    ``"Artist - Track"`` splits on the first `` - ``; ``"Track, Artist"``
    takes the last ``, `` segment as the artist. Anything else keeps the
    whole field as the track with an unknown artist.
    """
    corrected = resolve_apple_track(combined)
    if corrected is not None:
        return corrected

    dash = combined.find(" - ")
    if dash > 0:
        artist = combined[:dash].strip()
        track = combined[dash + 3:].strip()
        if track:
            return track, artist or UNKNOWN_ARTIST
    comma = combined.rfind(", ")
    if comma > 0:
        track = combined[:comma].strip()
        artist = combined[comma + 2:].strip()
        if track and artist:
            return track, artist
    return combined.strip(), UNKNOWN_ARTIST


ADAPTERS: List[FormatAdapter] = [
    SpotifyJsonAdapter(),
    AppleMusicCsvAdapter(),
]


def select_adapter(file_name: str, adapters: Optional[List[FormatAdapter]] = None) -> Optional[FormatAdapter]:
    """Pick the adapter for a file by name marker and extension."""
    for adapter in adapters if adapters is not None else ADAPTERS:
        if adapter.matches(file_name):
            return adapter
    return None


def read_file(file_name: str, content: FileContent) -> ParseResult:
    """Parse one file into canonical events plus its malformed-record count."""
    adapter = select_adapter(file_name)
    if adapter is None:
        logger.debug(f"{file_name}: no adapter for this file, skipping")
        return ParseResult([])
    return adapter.read(file_name, content)


def parse_file(file_name: str, content: FileContent) -> List[PlayEvent]:
    """Parse one file into canonical events; unrecognized files yield []."""
    return read_file(file_name, content).events
