"""
streamstats CLI - analyze streaming-history exports from the command line.
"""

from __future__ import annotations

import argparse
import sys

from . import config
from .adapters import ADAPTERS
from .engine import load_files, process_files
from .error_handling import NoValidDataError, setup_logging
from .export import (
    albums_frame,
    artists_frame,
    export_table,
    format_duration,
    obsessions_frame,
    rows_frame,
    tracks_frame,
    year_frame,
)
from .models import STREAMING_SERVICES
from .query import SORT_KEYS, QueryOptions, query


AVAILABLE_TABLES = [
    "tracks",
    "artists",
    "albums",
    "obsessions",
    "by_year",
    "recent",
]


def _print_summary(result, top: int) -> None:
    totals = result.stats.totals
    print(f"📊 Files processed: {result.stats.total_files}")
    print(f"   • Total entries: {result.stats.total_entries:,}")
    print(f"   • Processed songs: {totals.processed_songs:,}")
    print(f"   • Entries with no track name: {totals.null_track_names:,}")
    print(f"   • Skipped entries: {totals.skipped_entries:,}")
    print(f"   • Plays under 30s: {totals.short_plays:,}")
    print(f"   • Total listening time: {format_duration(totals.total_listening_ms)}")

    print(f"\n🎤 Top {top} artists:")
    for i, artist in enumerate(result.top_artists[:top], start=1):
        line = f"   {i:>3}. {artist.name} ({format_duration(artist.total_played_ms)}, {artist.play_count:,} plays)"
        if artist.streak.longest_run_days > 1:
            line += f", longest streak {artist.streak.longest_run_days} days"
        print(line)

    print(f"\n🎵 Top {top} tracks:")
    for i, track in enumerate(result.top_tracks[:top], start=1):
        print(f"   {i:>3}. {track.track_name} - {track.artist_name} "
              f"({format_duration(track.total_played_ms)}, {track.play_count:,} plays)")

    if result.brief_obsessions:
        print("\n🔥 Brief obsessions:")
        for o in result.brief_obsessions[:top]:
            print(f"   • {o.track.track_name} - {o.track.artist_name}: "
                  f"{o.plays_in_window} plays in the week from {o.window_start:%Y-%m-%d}")


def _services_epilog() -> str:
    """Where to request each export format the adapters can read."""
    lines = ["supported exports:"]
    for source in dict.fromkeys(adapter.source for adapter in ADAPTERS):
        service = STREAMING_SERVICES.get(source)
        if service is None:
            continue
        lines.append(f"  {service['name']} ({service['accepted_formats']}): {service['download_url']}")
        lines.append(f"    {service['instructions']}")
    return "\n".join(lines)


def main(argv=None):
    ap = argparse.ArgumentParser(
        prog="streamstats",
        description="Streaming history exports -> listening statistics.",
        epilog=_services_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("--verbose", action="store_true", help="Debug logging.")
    ap.add_argument("--log-dir", default=None, help="Also write logs to this directory.")
    sub = ap.add_subparsers(dest="cmd", required=True)

    # Analyze command
    ap_analyze = sub.add_parser("analyze", help="Aggregate statistics for a set of export files.")
    ap_analyze.add_argument("paths", nargs="+", help="Export files or directories.")
    ap_analyze.add_argument("--top", type=int, default=10, help="Rows to print per ranking (default: 10)")
    ap_analyze.add_argument("--table", choices=AVAILABLE_TABLES, default="tracks",
                            help="Which table to export with --out (default: tracks)")
    ap_analyze.add_argument("--out", default=None, help="Output path (.parquet or .csv)")

    # Query command
    ap_query = sub.add_parser("query", help="Rank tracks or podcast episodes over a date range.")
    ap_query.add_argument("paths", nargs="+", help="Export files or directories.")
    ap_query.add_argument("--start", default=None, help="Start date YYYY-MM-DD (default: first play)")
    ap_query.add_argument("--end", default=None, help="End date YYYY-MM-DD (default: last play)")
    ap_query.add_argument("--episodes", action="store_true", help="Rank podcast episodes instead of tracks.")
    ap_query.add_argument("--filter", action="append", default=[], dest="entities",
                          help="Artist (or show, with --episodes) to include; repeatable.")
    ap_query.add_argument("--top", type=int, default=50, help="Max rows, 1-999 (default: 50)")
    ap_query.add_argument("--sort", choices=SORT_KEYS, default="total_played_ms")
    ap_query.add_argument("--out", default=None, help="Output path (.parquet or .csv)")

    args = ap.parse_args(argv)

    setup_logging(args.log_dir or config.LOG_DIR, "DEBUG" if args.verbose else config.LOG_LEVEL)

    files = load_files(args.paths)
    try:
        result = process_files(files, progress=args.verbose)
    except NoValidDataError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    if args.cmd == "analyze":
        _print_summary(result, args.top)
        if args.out:
            tables = {
                "tracks": lambda: tracks_frame(result.top_tracks),
                "artists": lambda: artists_frame(result.top_artists),
                "albums": lambda: albums_frame(result.top_albums),
                "obsessions": lambda: obsessions_frame(result.brief_obsessions),
                "by_year": lambda: year_frame(result.songs_by_year),
                "recent": lambda: tracks_frame(result.recent_favorites),
            }
            df = tables[args.table]()
            path = export_table(df, args.out)
            print(f"✅ Exported {len(df):,} rows to {path}")
        return 0

    if args.cmd == "query":
        rows = query(result.events, QueryOptions(
            start_date=args.start,
            end_date=args.end,
            entity_filter=tuple(args.entities),
            top_n=args.top,
            sort_key=args.sort,
            kind="episodes" if args.episodes else "tracks",
        ))
        if not rows:
            print("No matches for these filters")
            return 0
        for i, row in enumerate(rows, start=1):
            print(f"{i:>3}. {row.name} - {row.group}: {format_duration(row.total_played_ms)}, "
                  f"{row.session_count} sessions, {row.completed_plays} completed")
        if args.out:
            path = export_table(rows_frame(rows), args.out)
            print(f"✅ Exported {len(rows):,} rows to {path}")
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
