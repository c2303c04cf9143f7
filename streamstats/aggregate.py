"""
Aggregation engine.

Folds the canonical event stream into per-track, per-artist and per-album
statistics in a single pass. Track identity goes through the match key;
artists and albums are keyed by their unmodified display names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from . import config
from .error_handling import get_logger
from .identity import KeyOverride, OVERRIDES, match_key
from .models import (
    AlbumAggregate,
    ArtistAggregate,
    PlayEvent,
    RunTotals,
    Source,
    TrackAggregate,
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
)
from .temporal import compute_streak

logger = get_logger()

AlbumKey = Tuple[str, str]


@dataclass
class _TrackAcc:
    key: str
    track_name: str
    artist_name: str
    album_name: str
    source: Source
    total_played_ms: int = 0
    play_count: int = 0
    timestamps: List[datetime] = field(default_factory=list)

    def absorb_metadata(self, track_name: str, artist_name: str, album_name: str, source: Source) -> None:
        # Metadata only ever improves: an unknown album is replaced by a real one
        if self.album_name == UNKNOWN_ALBUM and album_name != UNKNOWN_ALBUM:
            self.track_name = track_name
            self.artist_name = artist_name
            self.album_name = album_name
            self.source = source

    def freeze(self) -> TrackAggregate:
        return TrackAggregate(
            key=self.key,
            track_name=self.track_name,
            artist_name=self.artist_name,
            album_name=self.album_name,
            total_played_ms=self.total_played_ms,
            play_count=self.play_count,
            timestamps=tuple(self.timestamps),
            source=self.source,
        )


@dataclass
class _ArtistAcc:
    name: str
    first_listen: datetime
    total_played_ms: int = 0
    play_count: int = 0
    timestamps: List[datetime] = field(default_factory=list)


@dataclass
class _AlbumAcc:
    name: str
    artist_name: str
    first_listen: datetime
    total_played_ms: int = 0
    play_count: int = 0
    track_names: set = field(default_factory=set)


@dataclass(frozen=True)
class Aggregation:
    """Output of one aggregation pass. Nothing in it changes after return."""

    tracks: Dict[str, TrackAggregate]
    artists: Dict[str, ArtistAggregate]
    albums: Dict[AlbumKey, AlbumAggregate]
    play_history: Dict[str, Tuple[datetime, ...]]
    artist_history: Dict[str, Tuple[datetime, ...]]
    totals: RunTotals


def _accumulate(
    event: PlayEvent,
    tracks: Dict[str, _TrackAcc],
    artists: Dict[str, _ArtistAcc],
    albums: Dict[AlbumKey, _AlbumAcc],
    overrides: Iterable[KeyOverride],
) -> None:
    played = int(event.duration_played_ms)
    timestamp = event.timestamp
    # Naive timestamps cannot be ordered against the rest of the history
    if timestamp.utcoffset() is None:
        raise ValueError("timestamp must be timezone-aware")
    track_name = event.track_name
    artist_name = event.artist_name or UNKNOWN_ARTIST
    album_name = event.album_name or UNKNOWN_ALBUM
    key = match_key(track_name, artist_name, overrides)

    track = tracks.get(key)
    if track is None:
        track = tracks[key] = _TrackAcc(
            key=key,
            track_name=track_name,
            artist_name=artist_name,
            album_name=album_name,
            source=event.source,
        )
    else:
        track.absorb_metadata(track_name, artist_name, album_name, event.source)
    track.total_played_ms += played
    track.play_count += 1
    track.timestamps.append(timestamp)

    artist = artists.get(artist_name)
    if artist is None:
        artist = artists[artist_name] = _ArtistAcc(name=artist_name, first_listen=timestamp)
    artist.total_played_ms += played
    artist.play_count += 1
    artist.first_listen = min(artist.first_listen, timestamp)
    artist.timestamps.append(timestamp)

    album_key = (album_name, artist_name)
    album = albums.get(album_key)
    if album is None:
        album = albums[album_key] = _AlbumAcc(name=album_name, artist_name=artist_name, first_listen=timestamp)
    album.total_played_ms += played
    album.play_count += 1
    album.track_names.add(track_name)
    album.first_listen = min(album.first_listen, timestamp)


def _most_played(candidates: List[TrackAggregate]) -> Optional[TrackAggregate]:
    if not candidates:
        return None
    return min(candidates, key=lambda t: (-t.play_count, -t.total_played_ms, t.key))


def aggregate(
    events: Iterable[PlayEvent],
    overrides: Iterable[KeyOverride] = OVERRIDES,
    totals: Optional[RunTotals] = None,
    now: Optional[datetime] = None,
) -> Aggregation:
    """
    Fold play events into track, artist and album aggregates.

    Args:
        events: Canonical play events, in encounter order
        overrides: Match-key override table
        totals: Running totals to continue from (fresh when None)
        now: Evaluation time for current streaks (defaults to now, UTC)

    Returns:
        Aggregation with frozen aggregates, histories and run totals
    """
    overrides = tuple(overrides)
    totals = totals or RunTotals()
    tracks: Dict[str, _TrackAcc] = {}
    artists: Dict[str, _ArtistAcc] = {}
    albums: Dict[AlbumKey, _AlbumAcc] = {}

    total_ms = totals.total_listening_ms
    processed = totals.processed_songs
    short_plays = totals.short_plays
    null_names = totals.null_track_names
    skipped = totals.skipped_entries

    for event in events:
        try:
            is_short = event.duration_played_ms < config.MIN_PLAY_MS
            has_name = bool(event.track_name)
        except (AttributeError, TypeError):
            skipped += 1
            continue
        if is_short:
            short_plays += 1
        if not has_name:
            null_names += 1
        if is_short or not has_name:
            continue
        try:
            _accumulate(event, tracks, artists, albums, overrides)
        except (AttributeError, TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed event {event!r}: {e}")
            skipped += 1
            continue
        processed += 1
        total_ms += int(event.duration_played_ms)

    frozen_tracks = {key: acc.freeze() for key, acc in tracks.items()}

    by_artist: Dict[str, List[TrackAggregate]] = {}
    for track in frozen_tracks.values():
        by_artist.setdefault(track.artist_name, []).append(track)

    frozen_artists = {
        name: ArtistAggregate(
            name=name,
            total_played_ms=acc.total_played_ms,
            play_count=acc.play_count,
            first_listen=acc.first_listen,
            most_played_track=_most_played(by_artist.get(name, [])),
            streak=compute_streak(acc.timestamps, now=now),
        )
        for name, acc in artists.items()
    }
    frozen_albums = {
        key: AlbumAggregate(
            name=acc.name,
            artist_name=acc.artist_name,
            total_played_ms=acc.total_played_ms,
            play_count=acc.play_count,
            track_count=len(acc.track_names),
            first_listen=acc.first_listen,
        )
        for key, acc in albums.items()
    }

    return Aggregation(
        tracks=frozen_tracks,
        artists=frozen_artists,
        albums=frozen_albums,
        play_history={key: t.timestamps for key, t in frozen_tracks.items()},
        artist_history={name: tuple(acc.timestamps) for name, acc in artists.items()},
        totals=RunTotals(
            total_listening_ms=total_ms,
            processed_songs=processed,
            short_plays=short_plays,
            null_track_names=null_names,
            skipped_entries=skipped,
        ),
    )


def rank_artists(artists: Dict[str, ArtistAggregate]) -> List[ArtistAggregate]:
    """Artists by total listening time, descending."""
    return sorted(artists.values(), key=lambda a: (-a.total_played_ms, a.name))


def rank_albums(albums: Dict[AlbumKey, AlbumAggregate]) -> List[AlbumAggregate]:
    """Albums by total listening time, descending."""
    return sorted(albums.values(), key=lambda a: (-a.total_played_ms, a.name, a.artist_name))


def rank_tracks(tracks: Dict[str, TrackAggregate], limit: Optional[int] = None) -> List[TrackAggregate]:
    """Tracks by total listening time, descending, capped at ``limit``."""
    limit = config.TOP_TRACKS if limit is None else limit
    return sorted(tracks.values(), key=lambda t: (-t.total_played_ms, t.key))[:limit]
