import json
import logging
from datetime import datetime, timedelta, timezone

import pytest

from streamstats import config
from streamstats.adapters import (
    AppleMusicCsvAdapter,
    SpotifyJsonAdapter,
    parse_file,
    read_file,
    select_adapter,
    split_combined_title,
)
from streamstats.models import Source, UNKNOWN_ALBUM, UNKNOWN_ARTIST


def _extended_record(track="Song A", artist="Artist X", ms=200000, ts="2024-03-01T12:00:00Z", **extra):
    record = {
        "ts": ts,
        "ms_played": ms,
        "master_metadata_track_name": track,
        "master_metadata_album_artist_name": artist,
        "master_metadata_album_album_name": "Album Z",
        "reason_end": "trackdone",
    }
    record.update(extra)
    return record


# ------------------ Adapter selection ------------------

@pytest.mark.parametrize("name, expected", [
    ("Streaming_History_Audio_2023-2024_1.json", SpotifyJsonAdapter),
    ("StreamingHistory_music_0.json", SpotifyJsonAdapter),
    ("Apple Music Play Activity.csv", AppleMusicCsvAdapter),
    ("apple_music_library.CSV", AppleMusicCsvAdapter),
])
def test_select_adapter(name, expected):
    assert isinstance(select_adapter(name), expected)


@pytest.mark.parametrize("name", [
    "Streaming_History_Audio_2023.csv",
    "apple_music.json",
    "notes.txt",
    "Playlist1.json",
])
def test_unrecognized_files_yield_nothing(name):
    assert select_adapter(name) is None
    assert parse_file(name, "[]") == []


# ------------------ Spotify ------------------

def test_spotify_extended_records():
    content = json.dumps([_extended_record(), _extended_record(track="Song B", ms=250000)])
    events = parse_file("Streaming_History_Audio_2024.json", content)

    assert len(events) == 2
    first = events[0]
    assert first.track_name == "Song A"
    assert first.artist_name == "Artist X"
    assert first.album_name == "Album Z"
    assert first.duration_played_ms == 200000
    assert first.source == Source.SPOTIFY
    assert first.end_reason == "trackdone"
    assert first.timestamp == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    assert events[1].track_name == "Song B"


def test_spotify_missing_metadata_gets_sentinels():
    record = _extended_record(artist=None)
    record["master_metadata_album_album_name"] = None
    events = parse_file("Streaming_History_Audio_2024.json", json.dumps([record]))
    assert events[0].artist_name == UNKNOWN_ARTIST
    assert events[0].album_name == UNKNOWN_ALBUM


def test_spotify_podcast_record():
    record = _extended_record(
        track=None,
        artist=None,
        episode_name="Episode 1",
        episode_show_name="The Show",
        duration_ms=3600000,
    )
    events = parse_file("Streaming_History_Audio_2024.json", json.dumps([record]))

    assert len(events) == 1
    event = events[0]
    assert event.track_name is None
    assert event.is_podcast
    assert event.show_name == "The Show"
    assert event.episode_name == "Episode 1"
    assert event.total_duration_ms == 3600000


def test_spotify_account_data_records():
    content = json.dumps([
        {"endTime": "2024-01-05 13:45", "artistName": "Artist X", "trackName": "Song A", "msPlayed": 180000},
        {"endTime": "2024-01-05 14:10", "podcastName": "The Show", "episodeName": "Episode 2", "msPlayed": 900000},
    ])
    events = parse_file("StreamingHistory_music_0.json", content)

    assert [e.track_name for e in events] == ["Song A", None]
    assert events[0].timestamp == datetime(2024, 1, 5, 13, 45, tzinfo=timezone.utc)
    assert events[0].album_name == UNKNOWN_ALBUM
    assert events[1].show_name == "The Show"


def test_spotify_drops_records_missing_required_fields():
    content = json.dumps([
        _extended_record(),
        _extended_record(ts="not a timestamp"),
        _extended_record(ms=None),
        "not a record",
    ])
    events = parse_file("Streaming_History_Audio_2024.json", content)
    assert len(events) == 1

    result = read_file("Streaming_History_Audio_2024.json", content)
    assert len(result.events) == 1
    assert result.skipped == 3


def test_spotify_skips_non_finite_durations():
    overflowing = json.dumps(_extended_record(track="Song C")).replace("200000", "1e400")
    content = "[" + ", ".join([
        json.dumps(_extended_record()),
        json.dumps(_extended_record(track="Song B", ms=float("inf"))),
        overflowing,
    ]) + "]"

    result = read_file("Streaming_History_Audio_2024.json", content)

    assert [e.track_name for e in result.events] == ["Song A"]
    assert result.skipped == 2


def test_spotify_non_finite_total_duration_is_dropped():
    record = _extended_record(duration_ms=float("inf"))
    event = parse_file("Streaming_History_Audio_2024.json", json.dumps([record]))[0]
    assert event.total_duration_ms is None


def test_spotify_malformed_json_is_recoverable(caplog):
    with caplog.at_level(logging.WARNING, logger="streamstats"):
        events = parse_file("Streaming_History_Audio_2024.json", '[{"ts": "2024-')
    assert events == []
    assert "Streaming_History_Audio_2024.json" in caplog.text


def test_spotify_non_array_document():
    assert parse_file("Streaming_History_Audio_2024.json", '{"ts": "2024-01-01T00:00:00Z"}') == []


def test_spotify_accepts_bytes_with_bom():
    content = ("\ufeff" + json.dumps([_extended_record()])).encode("utf-8")
    events = parse_file("Streaming_History_Audio_2024.json", content)
    assert len(events) == 1


def test_spotify_parse_is_idempotent():
    content = json.dumps([_extended_record(), _extended_record(track="Song B")])
    adapter = SpotifyJsonAdapter()
    assert adapter.parse("Streaming_History_Audio_2024.json", content) == \
        adapter.parse("Streaming_History_Audio_2024.json", content)


# ------------------ Apple Music ------------------

APPLE_HEADER = "Track Name,Last Played Date,Is User Initiated\n"


def test_apple_artist_dash_track_row():
    content = APPLE_HEADER + '"Kanye West - Stronger", "1700000000000", true\n'
    events = parse_file("Apple Music Play Activity.csv", content)

    assert len(events) == 1
    event = events[0]
    assert event.artist_name == "Kanye West"
    assert event.track_name == "Stronger"
    assert event.duration_played_ms == config.FULL_PLAY_MS
    assert event.source == Source.APPLE_MUSIC
    assert event.album_name == UNKNOWN_ALBUM
    assert event.timestamp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_apple_track_comma_artist_row():
    content = APPLE_HEADER + '"Stronger, Kanye West",1700000000000,false\n'
    event = parse_file("apple_music.csv", content)[0]
    assert event.track_name == "Stronger"
    assert event.artist_name == "Kanye West"
    assert event.duration_played_ms == config.PARTIAL_PLAY_MS


def test_apple_drops_rows_missing_track_or_date():
    content = APPLE_HEADER + (
        '"Artist - Song",1700000000000,true\n'
        ',1700000000000,true\n'
        '"Artist - Other",,true\n'
    )
    events = parse_file("apple_music.csv", content)
    assert [e.track_name for e in events] == ["Song"]
    assert read_file("apple_music.csv", content).skipped == 2


def test_apple_bad_timestamp_falls_back_to_now():
    content = APPLE_HEADER + '"Artist - Song",yesterday-ish,true\n'
    before = datetime.now(timezone.utc)
    events = parse_file("apple_music.csv", content)
    after = datetime.now(timezone.utc)

    assert len(events) == 1
    assert before - timedelta(seconds=1) <= events[0].timestamp <= after + timedelta(seconds=1)


def test_apple_out_of_range_epochs_fall_back_to_now():
    content = APPLE_HEADER + (
        '"Artist - Huge",99999999999999999999,true\n'
        '"Artist - Far Future",9999999999999999,true\n'
        '"Artist - Infinite",inf,true\n'
        '"Artist - Fine",1700000000000,true\n'
    )
    before = datetime.now(timezone.utc)
    result = read_file("apple_music.csv", content)
    after = datetime.now(timezone.utc)

    assert [e.track_name for e in result.events] == ["Huge", "Far Future", "Infinite", "Fine"]
    assert result.skipped == 0
    for event in result.events[:3]:
        assert before - timedelta(seconds=1) <= event.timestamp <= after + timedelta(seconds=1)
    assert result.events[3].timestamp == datetime.fromtimestamp(1700000000, tz=timezone.utc)


def test_apple_missing_columns_yield_nothing():
    content = "Song,When\nfoo,bar\n"
    assert parse_file("apple_music.csv", content) == []


def test_apple_without_user_initiated_column_uses_partial_estimate():
    content = "Track Name,Last Played Date\n\"Artist - Song\",1700000000000\n"
    event = parse_file("apple_music.csv", content)[0]
    assert event.duration_played_ms == config.PARTIAL_PLAY_MS


def test_apple_title_correction():
    content = APPLE_HEADER + '"Kenny Rogers - Just Dropped In",1700000000000,true\n'
    event = parse_file("apple_music.csv", content)[0]
    assert event.track_name == "Just Dropped In (To See What Condition My Condition Is In)"
    assert event.artist_name == "Kenny Rogers & The First Edition"


def test_apple_empty_document():
    assert parse_file("apple_music.csv", "") == []


@pytest.mark.parametrize("combined, expected", [
    ("Artist - Track", ("Track", "Artist")),
    ("Artist - Track - Live", ("Track - Live", "Artist")),
    ("Track, Artist", ("Track", "Artist")),
    ("Track, With, Commas, Artist", ("Track, With, Commas", "Artist")),
    ("Just A Title", ("Just A Title", UNKNOWN_ARTIST)),
])
def test_split_combined_title(combined, expected):
    assert split_combined_title(combined) == expected
