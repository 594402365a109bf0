from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any, Callable, cast

import numpy as np
import soundfile as sf  # type: ignore[import]
from numpy.typing import NDArray

from .config import SAMPLE_RATE
from .errors import InvalidConfigError

FloatArray = NDArray[np.float32]
AudioNumbers = NDArray[np.floating[Any]] | Sequence[float] | FloatArray


def ensure_audio_contract(audio: AudioNumbers, *, check_peak: bool = True) -> FloatArray:
    """Flatten to mono float32 and scale down if the peak exceeds 1.0."""

    mono: FloatArray = np.asarray(audio, dtype=np.float32).reshape(-1)
    if mono.size == 0 or not check_peak:
        return mono
    peak = float(np.max(np.abs(mono)))
    if peak > 1.0:
        mono = mono / peak
    return mono


def write_wav(
    path: str | Path,
    audio: AudioNumbers,
    *,
    sample_rate: int = SAMPLE_RATE,
) -> Path:
    """Write mono samples to a wav file."""

    target = Path(path)
    match audio:
        case np.ndarray() | list() | tuple():
            pass
        case _:
            raise InvalidConfigError("audio must be a sample array or a list of samples")
    write_fn = getattr(sf, "write", None)
    assert callable(write_fn)
    write_audio = cast(Callable[[Path | str, AudioNumbers, int], None], write_fn)
    normalized = ensure_audio_contract(audio)
    # soundfile stubs are incomplete; cast is intentional for type safety.
    write_audio(target, normalized, sample_rate)  # type: ignore[reportUnknownMemberType]
    return target
