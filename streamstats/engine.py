"""
Engine entry point: one uploaded file set in, one AnalysisResult out.

Files are parsed concurrently (adapters share no state), then a single
sequential aggregation and analysis pass runs to completion. Nothing is
kept between calls.
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, NamedTuple, Optional, Sequence, Union

from tqdm import tqdm

from .adapters import FileContent, ParseResult, read_file
from .aggregate import aggregate, rank_albums, rank_artists, rank_tracks
from .error_handling import NoValidDataError, get_logger, timed_step
from .models import AnalysisResult, BatchStats, PlayEvent, RunTotals
from .temporal import brief_obsessions, rank_by_year, rank_recent

logger = get_logger()

EXPORT_PATTERNS = ("*.json", "*.csv")


class InputFile(NamedTuple):
    """A named text blob from the upload surface."""

    name: str
    content: FileContent


def load_files(paths: Iterable[Union[str, Path]]) -> List[InputFile]:
    """Read export files from disk; directories contribute their JSON/CSV files."""
    files = []
    for path in map(Path, paths):
        if path.is_dir():
            members = sorted(p for pattern in EXPORT_PATTERNS for p in path.glob(pattern))
        else:
            members = [path]
        for member in members:
            files.append(InputFile(member.name, member.read_bytes()))
    return files


def parse_files(
    files: Sequence[InputFile],
    max_workers: Optional[int] = None,
    progress: bool = False,
) -> ParseResult:
    """Parse files concurrently; events keep file submission order."""
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="streamstats-parse") as pool:
        results = pool.map(lambda f: read_file(f.name, f.content), files)
        if progress:
            results = tqdm(results, total=len(files), desc="Parsing exports", unit="file")
        events: List[PlayEvent] = []
        skipped = 0
        for result in results:
            events.extend(result.events)
            skipped += result.skipped
    return ParseResult(events, skipped)


def analyze_events(
    events: List[PlayEvent],
    total_files: int = 0,
    now: Optional[datetime] = None,
    skipped: int = 0,
) -> AnalysisResult:
    """
    Run aggregation and temporal analysis over canonical events.

    ``skipped`` seeds ``skipped_entries`` with records the adapters dropped.
    """
    if not events:
        raise NoValidDataError()

    with timed_step("aggregate"):
        aggregation = aggregate(events, totals=RunTotals(skipped_entries=skipped), now=now)

    with timed_step("temporal analysis"):
        songs_by_year = rank_by_year(aggregation.tracks, aggregation.play_history)
        obsessions = brief_obsessions(aggregation.tracks)
        recent = rank_recent(aggregation.tracks, now=now)

    return AnalysisResult(
        stats=BatchStats(
            total_files=total_files,
            total_entries=len(events) + skipped,
            totals=aggregation.totals,
        ),
        top_artists=rank_artists(aggregation.artists),
        top_albums=rank_albums(aggregation.albums),
        top_tracks=rank_tracks(aggregation.tracks),
        songs_by_year=songs_by_year,
        brief_obsessions=obsessions,
        events=list(events),
        recent_favorites=recent,
    )


def process_files(
    files: Iterable[Union[InputFile, tuple]],
    now: Optional[datetime] = None,
    max_workers: Optional[int] = None,
    progress: bool = False,
) -> AnalysisResult:
    """
    Process one batch of export files.

    Args:
        files: (name, content) pairs; content may be str or bytes
        now: Evaluation time for current streaks (defaults to now, UTC)
        max_workers: Thread count for parsing (executor default when None)
        progress: Show a tqdm progress bar while parsing

    Returns:
        AnalysisResult for the whole batch

    Raises:
        NoValidDataError: If no file yields a single canonical event
    """
    files = [InputFile(*f) for f in files]

    with timed_step("parse files"):
        events, skipped = parse_files(files, max_workers=max_workers, progress=progress)

    if not events:
        logger.warning(f"No valid data in {len(files)} file(s)")
        raise NoValidDataError()

    result = analyze_events(events, total_files=len(files), now=now, skipped=skipped)
    totals = result.stats.totals
    logger.info(
        f"Processed {len(files)} file(s): {len(events):,} events, "
        f"{totals.processed_songs:,} counted plays, {totals.short_plays:,} short plays, "
        f"{totals.skipped_entries:,} skipped entries"
    )
    return result


class BackgroundAnalyzer:
    """
    Runs ``process_files`` off the caller's thread.

    Each ``submit`` supersedes the previous one: a superseded run that has
    not started is cancelled, one that has started runs to completion and
    its result is ignored. ``result()`` always refers to the latest call.
    """

    def __init__(self, max_workers: Optional[int] = None, progress: bool = False):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="streamstats-run")
        self._options = {"max_workers": max_workers, "progress": progress}
        self._current: Optional[Future] = None

    def submit(self, files: Iterable[Union[InputFile, tuple]], now: Optional[datetime] = None) -> Future:
        previous = self._current
        if previous is not None:
            previous.cancel()
        self._current = self._executor.submit(process_files, list(files), now=now, **self._options)
        return self._current

    def result(self, timeout: Optional[float] = None) -> AnalysisResult:
        if self._current is None:
            raise RuntimeError("No analysis has been submitted")
        return self._current.result(timeout=timeout)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "BackgroundAnalyzer":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
