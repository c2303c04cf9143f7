from datetime import datetime, timedelta, timezone

import pytest

from streamstats.models import PlayEvent, Source, UNKNOWN_ALBUM, UNKNOWN_ARTIST

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def _make_event(
    track="Song A",
    artist=UNKNOWN_ARTIST,
    album=UNKNOWN_ALBUM,
    ms=200000,
    at=None,
    day=0,
    source=Source.SPOTIFY,
    **podcast,
):
    timestamp = at if at is not None else BASE_TIME + timedelta(days=day)
    return PlayEvent(
        track_name=track,
        artist_name=artist,
        album_name=album,
        timestamp=timestamp,
        duration_played_ms=ms,
        source=source,
        **podcast,
    )


@pytest.fixture
def make_event():
    """Factory for canonical play events with sensible defaults."""
    return _make_event


@pytest.fixture
def base_time():
    return BASE_TIME
