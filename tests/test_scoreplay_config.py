import pytest
from pydantic import ValidationError

from scoreplay.config import (
    INSTRUMENT_LABELS,
    INSTRUMENTS,
    Note,
    PlaybackSettings,
    coerce_notes,
    normalize_instrument,
    validate_bpm,
)
from scoreplay.errors import InvalidConfigError, InvalidSequenceError


def test_instrument_set_and_labels() -> None:
    assert INSTRUMENTS == ("piano", "guitar", "violin", "flute", "synth")
    assert INSTRUMENT_LABELS["synth"] == "Synthesizer"
    assert normalize_instrument(" Violin ") == "violin"
    with pytest.raises(InvalidConfigError):
        normalize_instrument("kazoo")


@pytest.mark.parametrize("bpm", [0, -10, "fast", float("nan")])
def test_validate_bpm_rejects(bpm: object) -> None:
    with pytest.raises(InvalidConfigError):
        validate_bpm(bpm)  # type: ignore[arg-type]


def test_note_validation() -> None:
    note = Note(pitch=" rest ", duration=0.5)
    assert note.pitch == "rest"
    assert note.is_rest
    with pytest.raises(ValidationError):
        Note(pitch="C4", duration=0)
    with pytest.raises(ValidationError):
        note.pitch = "D4"  # type: ignore[misc]


def test_coerce_notes_mixes_models_and_mappings() -> None:
    notes = coerce_notes([Note(pitch="C4", duration=1), {"pitch": "D4", "duration": 2}])
    assert [note.pitch for note in notes] == ["C4", "D4"]
    with pytest.raises(InvalidSequenceError):
        coerce_notes([{"pitch": "C4"}])


def test_settings_from_env() -> None:
    settings = PlaybackSettings.from_env(
        {"SCOREPLAY_LOOKAHEAD": "0.25", "SCOREPLAY_SAMPLE_RATE": "22050", "UNRELATED": "x"}
    )
    assert settings.lookahead == 0.25
    assert settings.sample_rate == 22050
    assert settings.grace_tail == 1.0

    with pytest.raises(InvalidConfigError):
        PlaybackSettings.from_env({"SCOREPLAY_SAMPLE_RATE": "zero"})


def test_settings_are_frozen() -> None:
    settings = PlaybackSettings()
    with pytest.raises(ValidationError):
        settings.lookahead = 1.0  # type: ignore[misc]
