"""
Temporal analysis over aggregated play histories.

- Listening streaks: runs of consecutive UTC calendar days with a play
- Brief obsessions: low-play tracks with a concentrated 7-day burst
- Year-partitioned rankings
- Recency-weighted track ranking
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

import numpy as np

from . import config
from .models import BriefObsession, Streak, TrackAggregate, YearTrack

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)

# Decay constant for recency_score, in days
RECENCY_DECAY_DAYS = 180
# Plays at or above three minutes count fully toward recency_score
FULL_PLAY_WEIGHT_MS = 3 * 60 * 1000

Tracks = Union[Mapping[str, TrackAggregate], Iterable[TrackAggregate]]


def _utc_day(ts: datetime) -> date:
    return ts.astimezone(timezone.utc).date()


def _as_tracks(tracks: Tracks) -> Iterable[TrackAggregate]:
    if isinstance(tracks, Mapping):
        return tracks.values()
    return tracks


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def compute_streak(timestamps: Sequence[datetime], now: Optional[datetime] = None) -> Streak:
    """
    Longest and current run of consecutive listening days.

    The current run is reported as zero once the latest listening day is
    more than one day before ``now``.
    """
    if not timestamps:
        return Streak()

    days = sorted({_utc_day(ts) for ts in timestamps})

    longest = 0
    longest_start = longest_end = None
    run = 0
    run_start = None
    previous = None
    for day in days:
        if previous is not None and (day - previous).days == 1:
            run += 1
        else:
            run = 1
            run_start = day
        if run > longest:
            longest = run
            longest_start, longest_end = run_start, day
        previous = day

    days_since_last = (_utc_day(_now(now)) - days[-1]).days
    return Streak(
        longest_run_days=longest,
        longest_run_start=longest_start,
        longest_run_end=longest_end,
        current_run_days=run if days_since_last <= 1 else 0,
    )


def find_obsession(
    track: TrackAggregate,
    max_plays: Optional[int] = None,
    min_plays_in_window: Optional[int] = None,
    window_days: int = config.OBSESSION_WINDOW_DAYS,
) -> Optional[BriefObsession]:
    """
    Find the busiest trailing window in a low-play track's history.

    Every play closes a window ``[play - window_days, play]``; the first
    window with the highest count wins. Returns None unless the track has at
    most ``max_plays`` plays and its best window holds ``min_plays_in_window``.
    """
    max_plays = config.OBSESSION_MAX_PLAYS if max_plays is None else max_plays
    min_plays_in_window = config.OBSESSION_MIN_PLAYS if min_plays_in_window is None else min_plays_in_window

    if track.play_count > max_plays or not track.timestamps:
        return None

    ordered = sorted(track.timestamps)
    micros = np.array([(ts - _EPOCH) // _MICROSECOND for ts in ordered], dtype=np.int64)
    window = timedelta(days=window_days) // _MICROSECOND

    ends = np.searchsorted(micros, micros, side="right")
    starts = np.searchsorted(micros, micros - window, side="left")
    counts = ends - starts

    best = int(np.argmax(counts))
    plays = int(counts[best])
    if plays < min_plays_in_window:
        return None
    return BriefObsession(
        track=track,
        window_start=ordered[best] - timedelta(days=window_days),
        plays_in_window=plays,
    )


def brief_obsessions(tracks: Tracks, limit: Optional[int] = None) -> List[BriefObsession]:
    """All qualifying obsessions, most intense first, earliest window on ties."""
    limit = config.TOP_OBSESSIONS if limit is None else limit
    found = [o for o in (find_obsession(t) for t in _as_tracks(tracks)) if o is not None]
    found.sort(key=lambda o: (-o.plays_in_window, o.window_start, o.track.key))
    return found[:limit]


def rank_by_year(
    tracks: Tracks,
    history: Optional[Mapping[str, Sequence[datetime]]] = None,
    limit: Optional[int] = None,
) -> Dict[int, List[YearTrack]]:
    """
    Split each track's plays by calendar year and rank within each year.

    A year's play time is the track total scaled by that year's share of
    plays; ranking uses ``year_plays ** 1.5``.
    """
    limit = config.TOP_PER_YEAR if limit is None else limit
    by_year: Dict[int, List[YearTrack]] = {}

    for track in _as_tracks(tracks):
        stamps = history.get(track.key, ()) if history is not None else track.timestamps
        if not stamps:
            continue
        total_plays = len(stamps)
        per_year = Counter(ts.astimezone(timezone.utc).year for ts in stamps)
        for year, plays in per_year.items():
            by_year.setdefault(year, []).append(YearTrack(
                track=track,
                year=year,
                play_count=plays,
                total_played_ms=track.total_played_ms * plays / total_plays,
                score=float(plays) ** 1.5,
            ))

    ranked = {}
    for year in sorted(by_year):
        entries = sorted(by_year[year], key=lambda y: (-y.score, -y.total_played_ms, y.track.key))
        ranked[year] = entries[:limit]
    return ranked


def recency_score(
    play_count: int,
    total_played_ms: float,
    last_played: datetime,
    now: Optional[datetime] = None,
) -> float:
    """Play count damped by time since the last play and by short total play time."""
    days_since = (_now(now) - last_played).total_seconds() / 86400.0
    recency_weight = math.exp(-days_since / RECENCY_DECAY_DAYS)
    play_time_weight = min(total_played_ms / FULL_PLAY_WEIGHT_MS, 1.0)
    return play_count * recency_weight * play_time_weight


def rank_recent(
    tracks: Tracks,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[TrackAggregate]:
    """Tracks ranked by ``recency_score``, so current rotation beats old favourites."""
    limit = config.TOP_TRACKS if limit is None else limit
    now = _now(now)
    scored = [
        (recency_score(t.play_count, t.total_played_ms, max(t.timestamps), now), t)
        for t in _as_tracks(tracks)
        if t.timestamps
    ]
    scored.sort(key=lambda pair: (-pair[0], pair[1].key))
    return [t for _, t in scored[:limit]]
