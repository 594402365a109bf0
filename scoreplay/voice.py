"""Per-instrument envelopes.

Each instrument shapes a voice's gain as a few ramp segments anchored to the
note's start and end, and picks the oscillator waveform. Gain changes are
recorded on a :class:`GainAutomation` timeline and evaluated sample-accurately
when the voice renders.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal, TypeAlias

import numpy as np
from numpy.typing import NDArray

from .config import InstrumentKind, WaveformKind
from .errors import InvalidConfigError

FloatArray: TypeAlias = NDArray[np.float64]
RampKind = Literal["set", "linear", "exponential"]

# Exponential ramps approach but never reach zero.
ENVELOPE_FLOOR = 0.01


@dataclass(frozen=True)
class GainEvent:
    kind: RampKind
    value: float
    time: float


class GainAutomation:
    """Scheduled gain values: holds, linear ramps and exponential ramps."""

    def __init__(self, default: float = 1.0) -> None:
        self.default = default
        self._events: list[GainEvent] = []

    @property
    def events(self) -> tuple[GainEvent, ...]:
        return tuple(sorted(self._events, key=lambda event: event.time))

    def set_value_at_time(self, value: float, when: float) -> None:
        self._events.append(GainEvent("set", value, when))

    def linear_ramp_to_value_at_time(self, value: float, when: float) -> None:
        self._events.append(GainEvent("linear", value, when))

    def exponential_ramp_to_value_at_time(self, value: float, when: float) -> None:
        if value <= 0:
            raise InvalidConfigError(
                f"Exponential ramp target must be positive, got {value} "
                f"(use ENVELOPE_FLOOR={ENVELOPE_FLOOR})"
            )
        self._events.append(GainEvent("exponential", value, when))

    def value_at(self, t: float) -> float:
        return float(self.values_at(np.array([t], dtype=np.float64))[0])

    def values_at(self, times: FloatArray) -> FloatArray:
        """Evaluate the automation at each time in `times` (seconds)."""

        out = np.full(times.shape, self.default, dtype=np.float64)
        prev_time = -math.inf
        prev_value = self.default
        for event in self.events:
            segment = (times >= prev_time) & (times < event.time)
            if event.kind == "linear" and math.isfinite(prev_time) and event.time > prev_time:
                frac = (times[segment] - prev_time) / (event.time - prev_time)
                out[segment] = prev_value + (event.value - prev_value) * frac
            elif (
                event.kind == "exponential"
                and math.isfinite(prev_time)
                and event.time > prev_time
                and prev_value > 0
            ):
                frac = (times[segment] - prev_time) / (event.time - prev_time)
                out[segment] = prev_value * (event.value / prev_value) ** frac
            else:
                out[segment] = prev_value
            prev_time = event.time
            prev_value = event.value
        out[times >= prev_time] = prev_value
        return out


EnvelopeFn: TypeAlias = Callable[[GainAutomation, float, float], None]


def _piano(gain: GainAutomation, start: float, duration: float) -> None:
    gain.set_value_at_time(0.0, start)
    gain.linear_ramp_to_value_at_time(0.8, start + 0.02)
    gain.exponential_ramp_to_value_at_time(ENVELOPE_FLOOR, start + duration)


def _violin(gain: GainAutomation, start: float, duration: float) -> None:
    gain.set_value_at_time(0.0, start)
    gain.linear_ramp_to_value_at_time(0.5, start + 0.2)
    gain.set_value_at_time(0.5, start + duration - 0.1)
    gain.linear_ramp_to_value_at_time(0.0, start + duration)


def _flute(gain: GainAutomation, start: float, duration: float) -> None:
    gain.set_value_at_time(0.0, start)
    gain.linear_ramp_to_value_at_time(0.6, start + 0.05)
    gain.linear_ramp_to_value_at_time(0.0, start + duration)


def _guitar(gain: GainAutomation, start: float, duration: float) -> None:
    gain.set_value_at_time(0.0, start)
    gain.linear_ramp_to_value_at_time(0.7, start + 0.01)
    gain.exponential_ramp_to_value_at_time(ENVELOPE_FLOOR, start + duration)


def _synth(gain: GainAutomation, start: float, duration: float) -> None:
    gain.set_value_at_time(0.0, start)
    gain.linear_ramp_to_value_at_time(0.3, start + 0.05)
    gain.linear_ramp_to_value_at_time(0.3, start + duration - 0.05)
    gain.linear_ramp_to_value_at_time(0.0, start + duration)


def _default(gain: GainAutomation, start: float, duration: float) -> None:
    gain.set_value_at_time(0.5, start)
    gain.linear_ramp_to_value_at_time(0.0, start + duration)


ENVELOPES: Mapping[InstrumentKind, EnvelopeFn] = MappingProxyType(
    {
        "piano": _piano,
        "violin": _violin,
        "flute": _flute,
        "guitar": _guitar,
        "synth": _synth,
    }
)

WAVEFORMS: Mapping[InstrumentKind, WaveformKind] = MappingProxyType(
    {
        "piano": "sine",
        "violin": "sawtooth",
        "flute": "triangle",
        "guitar": "triangle",
        "synth": "square",
    }
)


def shape_envelope(
    gain: GainAutomation,
    start: float,
    duration: float,
    instrument: InstrumentKind | str,
) -> WaveformKind:
    """Write the instrument's envelope onto `gain` and return its waveform."""

    key = instrument.lower()
    envelope = ENVELOPES.get(key)  # type: ignore[call-overload]
    if envelope is None:
        _default(gain, start, duration)
        return "sine"
    envelope(gain, start, duration)
    return WAVEFORMS[key]  # type: ignore[index]
