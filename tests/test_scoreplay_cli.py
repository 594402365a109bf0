import json
from pathlib import Path

import pytest

from scoreplay import cli
from scoreplay.song import load_song


@pytest.fixture(autouse=True)
def _log_dir(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SCOREPLAY_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("SCOREPLAY_SAMPLE_RATE", "8000")


def _song_file(tmp_path: Path) -> Path:
    path = tmp_path / "tune.json"
    path.write_text(
        json.dumps({"title": "Tune", "bpm": 240, "notes": [{"pitch": "C4", "duration": 1}, {"pitch": "G4", "duration": 1}]}),
        encoding="utf-8",
    )
    return path


def test_render_writes_wav(tmp_path, capsys) -> None:
    song = _song_file(tmp_path)
    output = tmp_path / "tune.wav"

    code = cli.main(["render", str(song), "--output", str(output), "--instrument", "Guitar"])

    assert code == 0
    assert output.exists()
    assert "Wrote" in capsys.readouterr().out


def test_render_defaults_output_next_to_song(tmp_path) -> None:
    song = _song_file(tmp_path)
    assert cli.main(["render", str(song)]) == 0
    assert song.with_suffix(".wav").exists()


def test_missing_song_reports_failure(tmp_path, capsys) -> None:
    code = cli.main(["render", str(tmp_path / "missing.json")])
    assert code == 1
    assert "scoreplay CLI failed" in capsys.readouterr().err


def test_doctor_without_sounddevice(monkeypatch, capsys) -> None:
    monkeypatch.setattr(cli, "load_sounddevice", lambda: None)
    assert cli.main(["doctor"]) == 0
    out = capsys.readouterr().out
    assert "Output device: unavailable" in out
    assert "Sample rate: 8000" in out


def test_unknown_instrument_is_a_usage_error(tmp_path) -> None:
    song = _song_file(tmp_path)
    with pytest.raises(SystemExit):
        cli.main(["render", str(song), "--instrument", "kazoo"])


def test_zero_bpm_override_is_rejected(tmp_path) -> None:
    song = _song_file(tmp_path)
    output = tmp_path / "zero.wav"
    assert cli.main(["render", str(song), "--output", str(output), "--bpm", "0"]) == 1
    assert not output.exists()


def test_import_writes_playable_song(tmp_path, capsys) -> None:
    analysis = tmp_path / "scan.json"
    analysis.write_text(
        json.dumps({"notes": [{"pitch": "E4", "duration": 1}, {"pitch": "R", "duration": 1}]}),
        encoding="utf-8",
    )

    assert cli.main(["import", str(analysis), "--title", "Scan", "--bpm", "90"]) == 0
    assert "Wrote 2 notes (1 rests)" in capsys.readouterr().out

    song = load_song(tmp_path / "scan.song.json")
    assert song.title == "Scan"
    assert song.bpm == 90
    assert [note.id for note in song.notes] == ["scan-0", "scan-1"]
    assert cli.main(["render", str(tmp_path / "scan.song.json")]) == 0


def test_import_rejects_empty_analysis(tmp_path) -> None:
    analysis = tmp_path / "blank.json"
    analysis.write_text('{"notes": []}', encoding="utf-8")
    assert cli.main(["import", str(analysis)]) == 1
    assert not (tmp_path / "blank.song.json").exists()
