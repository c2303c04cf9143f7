"""
streamstats - Listening statistics from streaming-history exports.

Reconciles Spotify JSON and Apple Music CSV exports into one canonical
event stream, then ranks tracks, artists and albums, finds listening streaks
and brief obsessions, and answers ad-hoc date-range queries.

Usage:
    from streamstats import load_files, process_files, query

    result = process_files(load_files(["my_spotify_data/"]))

    result.top_artists[:10]
    result.songs_by_year[2024]
    query(result.events, start_date="2024-06-01", end_date="2024-06-30", top_n=20)
"""

from .adapters import ADAPTERS, ParseResult, parse_file, read_file, select_adapter
from .aggregate import Aggregation, aggregate
from .engine import BackgroundAnalyzer, InputFile, load_files, process_files
from .error_handling import (
    ConfigurationError,
    MalformedFileError,
    NoValidDataError,
    StreamStatsError,
    UnsupportedQueryError,
    setup_logging,
)
from .identity import OVERRIDES, KeyOverride, match_key, normalize
from .models import (
    AlbumAggregate,
    AnalysisResult,
    ArtistAggregate,
    BriefObsession,
    PlayEvent,
    RunTotals,
    Source,
    Streak,
    TrackAggregate,
    YearTrack,
)
from .query import QueryOptions, QueryRow, events_frame, query
from .temporal import brief_obsessions, compute_streak, find_obsession, rank_by_year, rank_recent, recency_score

__version__ = "0.1.0"

__all__ = [
    # Engine
    "process_files",
    "load_files",
    "InputFile",
    "BackgroundAnalyzer",
    # Adapters
    "ADAPTERS",
    "parse_file",
    "read_file",
    "ParseResult",
    "select_adapter",
    # Identity
    "normalize",
    "match_key",
    "KeyOverride",
    "OVERRIDES",
    # Aggregation & temporal analysis
    "aggregate",
    "Aggregation",
    "compute_streak",
    "find_obsession",
    "brief_obsessions",
    "rank_by_year",
    "rank_recent",
    "recency_score",
    # Queries
    "query",
    "QueryOptions",
    "QueryRow",
    "events_frame",
    # Models
    "PlayEvent",
    "Source",
    "TrackAggregate",
    "ArtistAggregate",
    "AlbumAggregate",
    "Streak",
    "BriefObsession",
    "YearTrack",
    "RunTotals",
    "AnalysisResult",
    # Errors & logging
    "StreamStatsError",
    "NoValidDataError",
    "MalformedFileError",
    "ConfigurationError",
    "UnsupportedQueryError",
    "setup_logging",
]
