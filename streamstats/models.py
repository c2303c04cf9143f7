"""
Canonical data model.

Every adapter maps its export records into ``PlayEvent``; everything
downstream (aggregation, temporal analysis, queries) only sees these types.
Aggregates are frozen once the pass that built them returns.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from enum import Enum
from typing import Optional, Dict, List, Tuple, Any

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


class Source(str, Enum):
    SPOTIFY = "spotify"
    APPLE_MUSIC = "apple_music"
    YOUTUBE_MUSIC = "youtube_music"
    TIDAL = "tidal"


# Service metadata for the upload surface
STREAMING_SERVICES: Dict[Source, Dict[str, str]] = {
    Source.SPOTIFY: {
        "name": "Spotify",
        "download_url": "https://www.spotify.com/account/privacy/",
        "instructions": 'Request your "Extended streaming history" and wait for the email (can take up to 5 days)',
        "accepted_formats": ".json",
    },
    Source.APPLE_MUSIC: {
        "name": "Apple Music",
        "download_url": "https://privacy.apple.com/",
        "instructions": 'Request a copy of your data and select "Apple Music Activity"',
        "accepted_formats": ".csv",
    },
    Source.YOUTUBE_MUSIC: {
        "name": "YouTube Music",
        "download_url": "https://takeout.google.com/",
        "instructions": "Select YouTube and YouTube Music data in Google Takeout",
        "accepted_formats": ".json,.csv",
    },
}


@dataclass(frozen=True)
class PlayEvent:
    """One listen, post-normalization, from any source format."""

    track_name: Optional[str]
    timestamp: datetime
    duration_played_ms: int
    source: Source
    artist_name: str = UNKNOWN_ARTIST
    album_name: str = UNKNOWN_ALBUM
    show_name: Optional[str] = None
    episode_name: Optional[str] = None
    end_reason: Optional[str] = None
    total_duration_ms: Optional[int] = None

    @property
    def is_podcast(self) -> bool:
        return bool(self.episode_name)

    def as_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["source"] = self.source.value
        return record


@dataclass(frozen=True)
class TrackAggregate:
    key: str
    track_name: str
    artist_name: str
    album_name: str
    total_played_ms: int
    play_count: int
    # Encounter order, not sorted
    timestamps: Tuple[datetime, ...] = ()
    source: Optional[Source] = None


@dataclass(frozen=True)
class Streak:
    longest_run_days: int = 0
    longest_run_start: Optional[date] = None
    longest_run_end: Optional[date] = None
    current_run_days: int = 0


@dataclass(frozen=True)
class ArtistAggregate:
    name: str
    total_played_ms: int
    play_count: int
    first_listen: datetime
    most_played_track: Optional[TrackAggregate] = None
    streak: Streak = field(default_factory=Streak)


@dataclass(frozen=True)
class AlbumAggregate:
    name: str
    artist_name: str
    total_played_ms: int
    play_count: int
    track_count: int
    first_listen: datetime


@dataclass(frozen=True)
class BriefObsession:
    track: TrackAggregate
    window_start: datetime
    plays_in_window: int


@dataclass(frozen=True)
class YearTrack:
    """A track scoped to one calendar year, for per-year rankings."""

    track: TrackAggregate
    year: int
    play_count: int
    total_played_ms: float
    score: float


@dataclass(frozen=True)
class RunTotals:
    """Running tallies of one aggregation pass."""

    total_listening_ms: int = 0
    processed_songs: int = 0
    short_plays: int = 0
    null_track_names: int = 0
    skipped_entries: int = 0


@dataclass(frozen=True)
class BatchStats:
    total_files: int
    total_entries: int
    totals: RunTotals


@dataclass(frozen=True)
class AnalysisResult:
    """Everything the presentation layer consumes for one uploaded file set."""

    stats: BatchStats
    top_artists: List[ArtistAggregate]
    top_albums: List[AlbumAggregate]
    top_tracks: List[TrackAggregate]
    songs_by_year: Dict[int, List[YearTrack]]
    brief_obsessions: List[BriefObsession]
    events: List[PlayEvent]
    recent_favorites: List[TrackAggregate] = field(default_factory=list)
