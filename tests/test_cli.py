import json

import pandas as pd
import pytest

from streamstats.cli import main


@pytest.fixture
def export_dir(tmp_path):
    records = [
        {
            "ts": f"2024-03-0{day}T12:00:00Z",
            "ms_played": 200000,
            "master_metadata_track_name": "Song A",
            "master_metadata_album_artist_name": "Artist X",
            "master_metadata_album_album_name": "Album Z",
            "reason_end": "trackdone",
        }
        for day in (1, 2, 3)
    ]
    records.append({
        "ts": "2024-03-04T08:00:00Z",
        "ms_played": 1800000,
        "master_metadata_track_name": None,
        "episode_name": "Ep 1",
        "episode_show_name": "The Show",
        "reason_end": "trackdone",
    })
    (tmp_path / "Streaming_History_Audio_2024.json").write_text(json.dumps(records), encoding="utf-8")
    return tmp_path


def test_analyze_prints_summary(export_dir, capsys):
    assert main(["analyze", str(export_dir), "--top", "5"]) == 0
    out = capsys.readouterr().out
    assert "Files processed: 1" in out
    assert "Song A - Artist X" in out
    assert "longest streak 3 days" in out


def test_analyze_exports_table(export_dir, tmp_path):
    out_path = tmp_path / "out" / "artists.csv"
    assert main(["analyze", str(export_dir), "--table", "artists", "--out", str(out_path)]) == 0
    df = pd.read_csv(out_path)
    assert df["artist_name"].tolist() == ["Artist X"]
    assert df["play_count"].tolist() == [3]


def test_query_episodes_to_csv(export_dir, tmp_path, capsys):
    out_path = tmp_path / "episodes.csv"
    code = main(["query", str(export_dir), "--episodes", "--filter", "The Show", "--out", str(out_path)])
    assert code == 0
    assert "Ep 1 - The Show" in capsys.readouterr().out
    df = pd.read_csv(out_path)
    assert df["completed_plays"].tolist() == [1]
    assert df["end_reasons"].tolist() == ["trackdone: 1"]


def test_query_without_matches(export_dir, capsys):
    assert main(["query", str(export_dir), "--start", "2030-01-01", "--end", "2030-01-31"]) == 0
    assert "No matches for these filters" in capsys.readouterr().out


def test_no_valid_data_exit_code(tmp_path, capsys):
    (tmp_path / "Streaming_History_Audio_2024.json").write_text("{not json", encoding="utf-8")
    assert main(["analyze", str(tmp_path)]) == 1
    assert "No valid data" in capsys.readouterr().err


def test_help_lists_supported_exports(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["--help"])
    assert exc.value.code == 0
    out = capsys.readouterr().out
    assert "Spotify (.json): https://www.spotify.com/account/privacy/" in out
    assert "Apple Music (.csv): https://privacy.apple.com/" in out
    # YouTube Music has service metadata but no adapter
    assert "YouTube Music" not in out


def test_analyze_exports_recent_table(export_dir, tmp_path):
    out_path = tmp_path / "out" / "recent.csv"
    assert main(["analyze", str(export_dir), "--table", "recent", "--out", str(out_path)]) == 0
    df = pd.read_csv(out_path)
    assert df["track_name"].tolist() == ["Song A"]
    assert df["play_count"].tolist() == [3]
