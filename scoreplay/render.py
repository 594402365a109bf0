from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from .audio import FloatArray, ensure_audio_contract, write_wav
from .config import InstrumentKind, NoteInput, PlaybackSettings
from .context import OfflineContext
from .engine import PlaybackEngine

_LOGGER = logging.getLogger("scoreplay.render")

# Extra audio kept after the last note so release tails are not cut.
_TAIL_SECONDS = 0.25


def render_sequence(
    notes: Iterable[NoteInput],
    bpm: float,
    instrument: InstrumentKind | str = "piano",
    *,
    settings: PlaybackSettings | None = None,
) -> FloatArray:
    """Run the playback engine against an offline context and return the audio."""

    resolved = settings or PlaybackSettings()
    context = OfflineContext(sample_rate=resolved.sample_rate)
    engine = PlaybackEngine(context_factory=lambda _: context, settings=resolved)
    try:
        session = engine.play_sequence(notes, bpm, instrument)
        context.advance(session.end_time + _TAIL_SECONDS)
        if session.skipped:
            _LOGGER.warning("Rendered with %d silent notes: %s", len(session.skipped), session.skipped)
        return ensure_audio_contract(context.samples)
    finally:
        engine.close()


def render_to_wav(
    path: str | Path,
    notes: Iterable[NoteInput],
    bpm: float,
    instrument: InstrumentKind | str = "piano",
    *,
    settings: PlaybackSettings | None = None,
) -> Path:
    resolved = settings or PlaybackSettings()
    audio = render_sequence(notes, bpm, instrument, settings=resolved)
    return write_wav(path, audio, sample_rate=resolved.sample_rate)
