"""
Ad-hoc queries over the canonical event stream.

Answers custom date-range and podcast views: filter by date range and
selected artists/shows, group by track (or episode), rank, truncate.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from . import config
from .error_handling import UnsupportedQueryError, get_logger
from .identity import match_key
from .models import PlayEvent

logger = get_logger()

EVENT_COLUMNS = [
    "track_name", "timestamp", "duration_played_ms", "source", "artist_name",
    "album_name", "show_name", "episode_name", "end_reason", "total_duration_ms",
]
SORT_KEYS = ("total_played_ms", "session_count", "completed_plays")
KINDS = ("tracks", "episodes")
COMPLETED_REASON = "trackdone"

DateLike = Union[date, datetime, str, pd.Timestamp]
Events = Union[pd.DataFrame, Iterable[PlayEvent]]


@dataclass(frozen=True)
class QueryOptions:
    start_date: Optional[DateLike] = None
    end_date: Optional[DateLike] = None
    # Artist names (tracks) or show names (episodes); empty means no restriction
    entity_filter: Sequence[str] = ()
    top_n: int = 50
    sort_key: str = "total_played_ms"
    kind: str = "tracks"


@dataclass(frozen=True)
class QueryRow:
    key: str
    name: str
    # Artist for tracks, show for episodes
    group: str
    total_played_ms: int
    session_count: int
    completed_plays: int
    end_reasons: Dict[str, int] = field(default_factory=dict)
    first_played: Optional[datetime] = None
    last_played: Optional[datetime] = None


def events_frame(events: Iterable[PlayEvent]) -> pd.DataFrame:
    """Canonical events as a DataFrame (one row per play, UTC timestamps)."""
    df = pd.DataFrame([e.as_record() for e in events], columns=EVENT_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def _as_frame(events: Events) -> pd.DataFrame:
    if isinstance(events, pd.DataFrame):
        return events
    return events_frame(events)


def _utc_timestamp(value: DateLike) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def start_of_day(value: DateLike) -> pd.Timestamp:
    return _utc_timestamp(value).normalize()


def end_of_day(value: DateLike) -> pd.Timestamp:
    return start_of_day(value) + pd.Timedelta(days=1) - pd.Timedelta(1, unit="ns")


def clamp_top_n(top_n: int) -> int:
    return min(config.QUERY_TOP_MAX, max(config.QUERY_TOP_MIN, int(top_n)))


def observed_range(events: Events) -> Optional[Tuple[date, date]]:
    """First and last UTC calendar day with any event."""
    df = _as_frame(events)
    if df.empty:
        return None
    return df["timestamp"].min().date(), df["timestamp"].max().date()


def list_shows(events: Events) -> List[str]:
    """Distinct podcast show names, sorted."""
    df = _as_frame(events)
    return sorted(df["show_name"].dropna().unique().tolist())


def list_artists(events: Events) -> List[str]:
    """Distinct artist names of music plays, sorted."""
    df = _as_frame(events)
    return sorted(df.loc[df["track_name"].notna(), "artist_name"].dropna().unique().tolist())


def search_entities(
    candidates: Iterable[str],
    text: str,
    exclude: Iterable[str] = (),
    limit: int = 10,
) -> List[str]:
    """Case-insensitive substring lookup for the artist/show pickers."""
    needle = text.casefold()
    excluded = set(exclude)
    matches = [c for c in candidates if needle in c.casefold() and c not in excluded]
    return matches[:limit]


def query(events: Events, options: Optional[QueryOptions] = None, **kwargs) -> List[QueryRow]:
    """
    Rank tracks or podcast episodes over a date range.

    Args:
        events: Canonical events (or a frame from ``events_frame``)
        options: QueryOptions; keyword arguments build one when omitted

    Returns:
        Rows sorted by ``options.sort_key`` descending, at most ``top_n`` long
    """
    options = options or QueryOptions(**kwargs)
    if options.sort_key not in SORT_KEYS:
        raise UnsupportedQueryError(f"Unknown sort key {options.sort_key!r}; expected one of {SORT_KEYS}")
    if options.kind not in KINDS:
        raise UnsupportedQueryError(f"Unknown query kind {options.kind!r}; expected one of {KINDS}")

    df = _as_frame(events)
    if df.empty:
        return []

    start = start_of_day(options.start_date if options.start_date is not None else df["timestamp"].min())
    end = end_of_day(options.end_date if options.end_date is not None else df["timestamp"].max())
    df = df[(df["timestamp"] >= start) & (df["timestamp"] <= end)]
    df = df[df["duration_played_ms"] >= config.MIN_PLAY_MS]

    if options.kind == "tracks":
        df = df[df["track_name"].notna()]
        name_col, group_col = "track_name", "artist_name"
    else:
        df = df[df["episode_name"].notna() & df["show_name"].notna()]
        name_col, group_col = "episode_name", "show_name"

    entities = options.entity_filter
    if isinstance(entities, str):
        entities = (entities,)
    if entities:
        df = df[df[group_col].isin(list(entities))]

    if df.empty:
        logger.debug(f"No {options.kind} between {start.date()} and {end.date()}")
        return []

    if options.kind == "tracks":
        keys = [match_key(t, a) for t, a in zip(df["track_name"], df["artist_name"])]
    else:
        keys = [f"{e}|{s}" for e, s in zip(df["episode_name"], df["show_name"])]
    df = df.assign(_key=keys, _completed=df["end_reason"].eq(COMPLETED_REASON))

    summary = (
        df.groupby("_key", sort=False)
        .agg(
            name=(name_col, "first"),
            group=(group_col, "first"),
            total_played_ms=("duration_played_ms", "sum"),
            session_count=("duration_played_ms", "size"),
            completed_plays=("_completed", "sum"),
            first_played=("timestamp", "min"),
            last_played=("timestamp", "max"),
        )
        .reset_index()
    )

    reasons: Dict[str, Dict[str, int]] = {}
    counted = df.dropna(subset=["end_reason"]).groupby(["_key", "end_reason"]).size()
    for (key, reason), n in counted.items():
        reasons.setdefault(key, {})[reason] = int(n)

    summary = summary.sort_values(
        [options.sort_key, "name", "_key"], ascending=[False, True, True]
    ).head(clamp_top_n(options.top_n))

    return [
        QueryRow(
            key=rec["_key"],
            name=rec["name"],
            group=rec["group"],
            total_played_ms=int(rec["total_played_ms"]),
            session_count=int(rec["session_count"]),
            completed_plays=int(rec["completed_plays"]),
            end_reasons=reasons.get(rec["_key"], {}),
            first_played=rec["first_played"].to_pydatetime(),
            last_played=rec["last_played"].to_pydatetime(),
        )
        for rec in summary.to_dict("records")
    ]
