"""
Result tables: engine output as DataFrames, plus the table export helper.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List

import pandas as pd

from .models import AlbumAggregate, ArtistAggregate, BriefObsession, TrackAggregate, YearTrack
from .query import QueryRow


def export_table(df: pd.DataFrame, out: str) -> str:
    p = Path(out)
    p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix.lower() in [".parquet", ".pq"]:
        df.to_parquet(p, index=False)
    elif p.suffix.lower() == ".csv":
        df.to_csv(p, index=False)
    else:
        # default parquet
        df.to_parquet(p.with_suffix(".parquet"), index=False)
        return str(p.with_suffix(".parquet"))
    return str(p)


def format_duration(ms: float) -> str:
    """Render milliseconds as "2d 3h", "4h 5m" or "7m"."""
    minutes = int(ms // 60000)
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"


def tracks_frame(tracks: Iterable[TrackAggregate]) -> pd.DataFrame:
    return pd.DataFrame(
        [{
            "key": t.key,
            "track_name": t.track_name,
            "artist_name": t.artist_name,
            "album_name": t.album_name,
            "play_count": t.play_count,
            "total_played_ms": t.total_played_ms,
            "source": t.source.value if t.source else None,
        } for t in tracks],
        columns=["key", "track_name", "artist_name", "album_name", "play_count", "total_played_ms", "source"],
    )


def artists_frame(artists: Iterable[ArtistAggregate]) -> pd.DataFrame:
    rows = []
    for a in artists:
        rows.append({
            "artist_name": a.name,
            "play_count": a.play_count,
            "total_played_ms": a.total_played_ms,
            "first_listen": a.first_listen,
            "most_played_track": a.most_played_track.track_name if a.most_played_track else None,
            "longest_streak_days": a.streak.longest_run_days,
            "longest_streak_start": a.streak.longest_run_start,
            "longest_streak_end": a.streak.longest_run_end,
            "current_streak_days": a.streak.current_run_days,
        })
    return pd.DataFrame(rows)


def albums_frame(albums: Iterable[AlbumAggregate]) -> pd.DataFrame:
    return pd.DataFrame([{
        "album_name": a.name,
        "artist_name": a.artist_name,
        "play_count": a.play_count,
        "total_played_ms": a.total_played_ms,
        "track_count": a.track_count,
        "first_listen": a.first_listen,
    } for a in albums])


def obsessions_frame(obsessions: Iterable[BriefObsession]) -> pd.DataFrame:
    return pd.DataFrame([{
        "track_name": o.track.track_name,
        "artist_name": o.track.artist_name,
        "play_count": o.track.play_count,
        "window_start": o.window_start,
        "plays_in_window": o.plays_in_window,
    } for o in obsessions])


def year_frame(songs_by_year: Dict[int, List[YearTrack]]) -> pd.DataFrame:
    """Long table: one row per (year, rank)."""
    rows = []
    for year, entries in songs_by_year.items():
        for rank, y in enumerate(entries, start=1):
            rows.append({
                "year": year,
                "rank": rank,
                "track_name": y.track.track_name,
                "artist_name": y.track.artist_name,
                "play_count": y.play_count,
                "total_played_ms": y.total_played_ms,
                "score": y.score,
            })
    return pd.DataFrame(rows)


def rows_frame(rows: Iterable[QueryRow]) -> pd.DataFrame:
    return pd.DataFrame([{
        "name": r.name,
        "group": r.group,
        "total_played_ms": r.total_played_ms,
        "session_count": r.session_count,
        "completed_plays": r.completed_plays,
        "end_reasons": ", ".join(f"{k}: {v}" for k, v in sorted(r.end_reasons.items(), key=lambda kv: -kv[1])),
        "first_played": r.first_played,
        "last_played": r.last_played,
    } for r in rows])
