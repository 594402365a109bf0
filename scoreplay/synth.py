# pyright: reportUnknownVariableType=false
# pyright: reportUnknownMemberType=false
# pyright: reportUnknownArgumentType=false

"""Tone generators for voices.

Sine and triangle are computed directly; sawtooth and square use 4-point
PolyBLEP on a 2x oversampled phase followed by FIR decimation.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Callable, TypeAlias, cast

import numpy as np
from numpy.typing import NDArray
from scipy.signal import decimate  # type: ignore[import]

from .config import SAMPLE_RATE, WaveformKind
from .voice import GainAutomation

FloatArray: TypeAlias = NDArray[np.float64]
OscFn: TypeAlias = Callable[..., FloatArray]


def _phase(
    freq: float, num_samples: int, sr: int, t_offset: float
) -> FloatArray:
    t = np.arange(num_samples, dtype=np.float64) / sr + t_offset
    return t * freq


def generate_sine(
    freq: float,
    duration: float,
    sr: int = SAMPLE_RATE,
    amp: float = 0.3,
    t_offset: float = 0.0,
) -> FloatArray:
    """Generate sine wave."""
    cycles = _phase(freq, int(sr * duration), sr, t_offset)
    return amp * np.sin(2 * np.pi * cycles)


def generate_triangle(
    freq: float,
    duration: float,
    sr: int = SAMPLE_RATE,
    amp: float = 0.3,
    t_offset: float = 0.0,
) -> FloatArray:
    """Generate triangle wave."""
    cycles = _phase(freq, int(sr * duration), sr, t_offset)
    return amp * 2 * np.abs(2 * (cycles - np.floor(cycles + 0.5))) - amp


def _blep(phase: FloatArray, dt: float) -> FloatArray:
    """4-point PolyBLEP correction around a discontinuity at phase 0."""

    corr = np.zeros_like(phase)

    # Region 1: 0 <= phase < dt
    m1 = phase < dt
    t1 = phase[m1] / dt
    corr[m1] = t1 * t1 * (2 * t1 - 3) + 1

    # Region 2: dt <= phase < 2*dt
    m2 = (phase >= dt) & (phase < 2 * dt)
    t2 = phase[m2] / dt - 1
    corr[m2] = t2 * t2 * (2 * t2 - 3)

    # Region 3: 1-2*dt < phase <= 1-dt
    m3 = (phase > 1 - 2 * dt) & (phase <= 1 - dt)
    t3 = (phase[m3] - 1) / dt + 1
    corr[m3] = t3 * t3 * (2 * t3 + 3)

    # Region 4: 1-dt < phase < 1
    m4 = phase > 1 - dt
    t4 = (phase[m4] - 1) / dt
    corr[m4] = t4 * t4 * (2 * t4 + 3) + 1
    return corr


def _decimate_to(signal_high: FloatArray, oversample: int, num_samples: int) -> FloatArray:
    if num_samples == 0:
        return np.zeros(0, dtype=np.float64)
    signal = decimate(signal_high, oversample, ftype="fir", zero_phase=True)

    # Ensure exact output length
    if len(signal) > num_samples:
        signal = signal[:num_samples]
    elif len(signal) < num_samples:
        signal = np.pad(signal, (0, num_samples - len(signal)))
    return cast(FloatArray, signal)


def generate_sawtooth(
    freq: float,
    duration: float,
    sr: int = SAMPLE_RATE,
    amp: float = 0.3,
    t_offset: float = 0.0,
    oversample: int = 2,
) -> FloatArray:
    """Generate anti-aliased sawtooth using 4-point PolyBLEP + oversampling."""

    num_samples = int(sr * duration)
    phase = _phase(freq, num_samples * oversample, sr * oversample, t_offset) % 1.0
    dt = freq / (sr * oversample)
    naive = 2.0 * phase - 1.0
    signal = _decimate_to(naive - _blep(phase, dt), oversample, num_samples)
    return amp * signal


def generate_square(
    freq: float,
    duration: float,
    sr: int = SAMPLE_RATE,
    amp: float = 0.3,
    t_offset: float = 0.0,
    oversample: int = 2,
) -> FloatArray:
    """Generate anti-aliased square wave using 4-point PolyBLEP + oversampling."""

    num_samples = int(sr * duration)
    phase = _phase(freq, num_samples * oversample, sr * oversample, t_offset) % 1.0
    dt = freq / (sr * oversample)
    naive = np.where(phase < 0.5, 1.0, -1.0)

    # Rising edge at phase 0, falling edge at phase 0.5
    correction = _blep(phase, dt) - _blep((phase + 0.5) % 1.0, dt)
    signal = _decimate_to(naive + correction, oversample, num_samples)
    return amp * signal


OSC_FUNCTIONS: Mapping[WaveformKind, OscFn] = MappingProxyType(
    {
        "sine": generate_sine,
        "triangle": generate_triangle,
        "sawtooth": generate_sawtooth,
        "square": generate_square,
    }
)


def render_tone(
    freq: float,
    start: float,
    duration: float,
    waveform: WaveformKind,
    gain: GainAutomation,
    sr: int = SAMPLE_RATE,
    offset: float = 0.0,
) -> NDArray[np.float32]:
    """Oscillator output for one voice with its gain automation applied.

    `offset` skips that many seconds into the note, keeping oscillator phase and
    envelope position, so a voice joined late renders only what is left of it.
    """

    if duration <= 0 or freq <= 0:
        return np.zeros(0, dtype=np.float32)
    osc = OSC_FUNCTIONS[waveform]
    wave = osc(freq, duration, sr=sr, amp=1.0, t_offset=offset)
    times = start + offset + np.arange(len(wave), dtype=np.float64) / sr
    return (wave * gain.values_at(times)).astype(np.float32)
