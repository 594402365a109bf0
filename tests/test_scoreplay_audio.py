from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from scoreplay.audio import ensure_audio_contract, write_wav
from scoreplay.config import Note, PlaybackSettings
from scoreplay.errors import InvalidConfigError, InvalidSequenceError
from scoreplay.render import render_sequence, render_to_wav

SR = 8000
SETTINGS = PlaybackSettings(sample_rate=SR, lookahead=0.0)


def test_write_wav_accepts_sequence(tmp_path: Path) -> None:
    target = tmp_path / "seq.wav"
    samples = [0.0, 0.1, -0.1, 0.0]

    write_wav(target, samples, sample_rate=22_050)

    assert target.exists()
    assert target.stat().st_size > 0


def test_write_wav_rejects_scalars(tmp_path: Path) -> None:
    with pytest.raises(InvalidConfigError):
        write_wav(tmp_path / "bad.wav", 0.5)  # type: ignore[arg-type]


def test_ensure_audio_contract_skip_peak() -> None:
    audio = np.array([2.0, -2.0], dtype=np.float32)
    out = ensure_audio_contract(audio, check_peak=False)
    assert np.allclose(out, audio)


def test_ensure_audio_contract_scales_loud_audio() -> None:
    out = ensure_audio_contract(np.array([[0.5, -4.0]], dtype=np.float64))
    assert out.dtype == np.float32
    assert out.shape == (2,)
    assert float(np.max(np.abs(out))) == pytest.approx(1.0)


def test_render_sequence_length_and_silent_rest() -> None:
    notes = [Note(pitch="A4", duration=1), Note(pitch="R", duration=1), Note(pitch="A4", duration=1)]
    audio = render_sequence(notes, 120, "flute", settings=SETTINGS)

    # three half-second beats plus the release tail
    assert len(audio) == round(1.75 * SR)
    first = audio[: SR // 2]
    rest = audio[SR // 2 + 10 : SR - 10]
    third = audio[SR : 3 * SR // 2]
    assert float(np.max(np.abs(first))) > 0.05
    assert float(np.max(np.abs(rest))) == 0.0
    assert float(np.max(np.abs(third))) > 0.05
    assert float(np.max(np.abs(audio))) <= 1.0


def test_render_sequence_rejects_empty() -> None:
    with pytest.raises(InvalidSequenceError):
        render_sequence([], 120, settings=SETTINGS)


def test_render_to_wav_writes_file(tmp_path: Path) -> None:
    target = tmp_path / "melody.wav"
    notes = [{"pitch": "C4", "duration": 1}, {"pitch": "E4", "duration": 1}]

    path = render_to_wav(target, notes, 240, "synth", settings=SETTINGS)

    assert path == target
    data, sample_rate = sf.read(target)
    assert sample_rate == SR
    assert len(data) == pytest.approx(0.75 * SR, abs=2)
