"""Pitch symbols to equal-tempered frequencies.

Pitches use scientific notation, ``<letter>[#]<octave>`` (``"C4"``, ``"F#3"``),
with a single trailing octave digit. Rests resolve to 0 Hz, and so does anything
that does not parse: callers treat ``<= 0`` as "no sound" so one bad note never
stops a sequence.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import NamedTuple

from .config import REST_MARKERS, SOLFEGE

CHROMATIC: tuple[str, ...] = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

SEMITONES: Mapping[str, int] = MappingProxyType({key: index for index, key in enumerate(CHROMATIC)})

# A4 sits at absolute semitone 57 counting from C0.
A4_FREQ = 440.0
A4_SEMITONE = 57


class ParsedPitch(NamedTuple):
    key: str
    octave: int

    @property
    def semitone(self) -> int:
        return self.octave * 12 + SEMITONES[self.key]


def is_rest(pitch: str) -> bool:
    return pitch.strip().upper() in REST_MARKERS


def parse_pitch(pitch: str) -> ParsedPitch | None:
    """Split a pitch into key and octave, or None when it is a rest or malformed."""

    text = pitch.strip()
    if len(text) < 2 or is_rest(text):
        return None
    octave_char = text[-1]
    if not octave_char.isdigit():
        return None
    key = text[:-1].upper()
    if key not in SEMITONES:
        return None
    return ParsedPitch(key, int(octave_char))


def frequency(pitch: str) -> float:
    """Frequency in Hz for a pitch symbol; 0.0 for rests and unknown pitches."""

    parsed = parse_pitch(pitch)
    if parsed is None:
        return 0.0
    return A4_FREQ * 2 ** ((parsed.semitone - A4_SEMITONE) / 12)


def solfege(pitch: str) -> str:
    if is_rest(pitch):
        return SOLFEGE["R"]
    parsed = parse_pitch(pitch)
    if parsed is None:
        return "?"
    return f"{SOLFEGE[parsed.key]}{parsed.octave}"
