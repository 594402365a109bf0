from __future__ import annotations


class ScorePlayError(Exception):
    """Base error for the scoreplay library."""


class InvalidConfigError(ScorePlayError):
    """Raised when a tempo, instrument, or setting cannot be validated."""


class InvalidSequenceError(ScorePlayError):
    """Raised when a note sequence is empty or contains invalid notes."""


class PlaybackError(ScorePlayError):
    """Raised when playback cannot proceed."""


class OutputUnavailableError(PlaybackError):
    """Raised when the audio output device cannot be opened or resumed."""
