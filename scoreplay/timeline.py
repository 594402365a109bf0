from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .config import Note, validate_bpm


@dataclass(frozen=True)
class ScheduledNote:
    """A note placed on an absolute time axis (seconds)."""

    index: int
    pitch: str
    start: float
    duration: float

    @property
    def end(self) -> float:
        return self.start + self.duration

    def contains(self, t: float) -> bool:
        return self.start <= t < self.end


def seconds_per_beat(bpm: float) -> float:
    return 60.0 / validate_bpm(bpm)


def note_seconds(duration: float, bpm: float) -> float:
    """Length in seconds of `duration` quarter notes at `bpm`."""
    return duration * seconds_per_beat(bpm)


def build_timeline(
    notes: Sequence[Note],
    bpm: float,
    *,
    offset: float = 0.0,
) -> tuple[ScheduledNote, ...]:
    """Place every note (rests included) back to back starting at `offset`."""

    tempo = validate_bpm(bpm)
    cursor = offset
    placed: list[ScheduledNote] = []
    for index, note in enumerate(notes):
        seconds = note_seconds(note.duration, tempo)
        placed.append(ScheduledNote(index, note.pitch, cursor, seconds))
        cursor += seconds
    return tuple(placed)


def total_seconds(notes: Sequence[Note], bpm: float) -> float:
    timeline = build_timeline(notes, bpm)
    return timeline[-1].end if timeline else 0.0
