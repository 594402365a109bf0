from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any, Literal, cast, get_args

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidConfigError, InvalidSequenceError

_LOGGER = logging.getLogger("scoreplay.config")

# -----------------------------------------------------------------------------
# Labels and constants
# -----------------------------------------------------------------------------

InstrumentKind = Literal["piano", "guitar", "violin", "flute", "synth"]
WaveformKind = Literal["sine", "triangle", "sawtooth", "square"]
PlaybackState = Literal["idle", "scheduling", "playing", "completed", "cancelled"]

INSTRUMENTS: tuple[InstrumentKind, ...] = get_args(InstrumentKind)
REST_MARKERS: frozenset[str] = frozenset({"R", "REST"})

INITIAL_BPM = 120.0
LOOKAHEAD_SECONDS = 0.1
PREVIEW_SECONDS = 0.5
GRACE_TAIL_SECONDS = 1.0
SAMPLE_RATE = 44_100

INSTRUMENT_LABELS: Mapping[InstrumentKind, str] = MappingProxyType(
    {
        "piano": "Piano",
        "guitar": "Guitar",
        "violin": "Violin",
        "flute": "Flute",
        "synth": "Synthesizer",
    }
)

# Duration palette in quarter-note units: (label, value, symbol)
NOTE_DURATIONS: tuple[tuple[str, float, str], ...] = (
    ("Whole (1/1)", 4.0, "\U0001d15d"),
    ("Half (1/2)", 2.0, "\U0001d15e"),
    ("Quarter (1/4)", 1.0, "♩"),
    ("Eighth (1/8)", 0.5, "♪"),
    ("Sixteenth (1/16)", 0.25, "\U0001d161"),
)

SOLFEGE: Mapping[str, str] = MappingProxyType(
    {
        "C": "DO",
        "C#": "DO#",
        "D": "RE",
        "D#": "RE#",
        "E": "MI",
        "F": "FA",
        "F#": "FA#",
        "G": "SOL",
        "G#": "SOL#",
        "A": "LA",
        "A#": "LA#",
        "B": "SI",
        "R": "ES",
    }
)


def normalize_instrument(value: str) -> InstrumentKind:
    """Case-insensitive instrument lookup; raises for names outside the set."""
    key = value.strip().lower()
    if key not in INSTRUMENTS:
        raise InvalidConfigError(f"Unknown instrument: {value!r}. Valid: {list(INSTRUMENTS)}")
    return cast(InstrumentKind, key)


def validate_bpm(bpm: float) -> float:
    try:
        value = float(bpm)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigError(f"bpm must be a number, got {bpm!r}") from exc
    if not value > 0:
        raise InvalidConfigError(f"bpm must be positive, got {bpm!r}")
    return value


# -----------------------------------------------------------------------------
# Notes and songs
# -----------------------------------------------------------------------------


class Note(BaseModel):
    """One melody event: a pitch (or rest) held for `duration` quarter notes."""

    pitch: str
    duration: float = Field(gt=0.0)
    id: str | None = None

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("pitch")
    @classmethod
    def _strip_pitch(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("pitch must not be empty")
        return stripped

    @property
    def is_rest(self) -> bool:
        return self.pitch.upper() in REST_MARKERS


NoteInput = Note | Mapping[str, Any]


class Song(BaseModel):
    title: str = "Untitled"
    bpm: float = Field(default=INITIAL_BPM, gt=0.0)
    notes: list[Note] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @property
    def total_beats(self) -> float:
        return sum(note.duration for note in self.notes)


def coerce_notes(notes: Iterable[NoteInput]) -> tuple[Note, ...]:
    """Validate a note sequence, accepting Note instances or plain mappings."""

    coerced: list[Note] = []
    for index, item in enumerate(notes):
        if isinstance(item, Note):
            coerced.append(item)
            continue
        try:
            coerced.append(Note.model_validate(item))
        except ValidationError as exc:
            raise InvalidSequenceError(f"Note {index} is invalid: {exc}") from exc
    return tuple(coerced)


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------

_ENV_PREFIX = "SCOREPLAY_"


class PlaybackSettings(BaseModel):
    """Timing and output knobs shared by the engine and the cursor tracker."""

    lookahead: float = Field(default=LOOKAHEAD_SECONDS, ge=0.0)
    preview_seconds: float = Field(default=PREVIEW_SECONDS, gt=0.0)
    grace_tail: float = Field(default=GRACE_TAIL_SECONDS, ge=0.0)
    sample_rate: int = Field(default=SAMPLE_RATE, gt=0)
    block_size: int = Field(default=512, gt=0)
    frame_interval: float = Field(default=1.0 / 60.0, gt=0.0)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PlaybackSettings":
        source = os.environ if environ is None else environ
        overrides: dict[str, str] = {}
        for name in cls.model_fields:
            raw = source.get(f"{_ENV_PREFIX}{name.upper()}")
            if raw:
                overrides[name] = raw
        if overrides:
            _LOGGER.debug("Playback settings overrides from env: %s", overrides)
        try:
            return cls.model_validate(overrides)
        except ValidationError as exc:
            raise InvalidConfigError(f"Invalid {_ENV_PREFIX}* setting: {exc}") from exc
