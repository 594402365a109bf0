from __future__ import annotations

from .config import (
    INITIAL_BPM,
    INSTRUMENTS,
    SAMPLE_RATE,
    InstrumentKind,
    Note,
    PlaybackSettings,
    Song,
)
from .context import DeviceContext, OfflineContext, Voice
from .cursor import CursorLoop, CursorTracker, current_index
from .engine import PlaybackEngine, PlaybackHooks, PlaybackSession
from .errors import (
    InvalidConfigError,
    InvalidSequenceError,
    OutputUnavailableError,
    PlaybackError,
    ScorePlayError,
)
from .logging_utils import configure_logging as _configure_logging
from .pitch import frequency
from .player import Player
from .render import render_sequence, render_to_wav
from .song import load_song, parse_analysis
from .voice import shape_envelope

__all__ = [
    "INITIAL_BPM",
    "INSTRUMENTS",
    "SAMPLE_RATE",
    "CursorLoop",
    "CursorTracker",
    "DeviceContext",
    "InstrumentKind",
    "InvalidConfigError",
    "InvalidSequenceError",
    "Note",
    "OfflineContext",
    "OutputUnavailableError",
    "PlaybackEngine",
    "PlaybackError",
    "PlaybackHooks",
    "PlaybackSession",
    "PlaybackSettings",
    "Player",
    "ScorePlayError",
    "Song",
    "Voice",
    "current_index",
    "frequency",
    "load_song",
    "parse_analysis",
    "render_sequence",
    "render_to_wav",
    "shape_envelope",
]

__version__ = "0.1.0"

_configure_logging()
del _configure_logging
