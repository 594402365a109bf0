from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Callable

from .config import InstrumentKind, NoteInput, PlaybackSettings, coerce_notes, normalize_instrument
from .cursor import CursorLoop, CursorTracker
from .engine import PlaybackEngine, PlaybackSession

_LOGGER = logging.getLogger("scoreplay.player")

CursorCallback = Callable[[int | None], None]


class Player:
    """Play/stop/preview controls plus a cursor feed, for a UI to drive.

    The cursor runs on its own loop keyed to wall-clock time; it starts when a
    sequence starts and reports None when playback completes or is stopped.
    """

    def __init__(
        self,
        engine: PlaybackEngine | None = None,
        *,
        on_cursor: CursorCallback | None = None,
        settings: PlaybackSettings | None = None,
    ) -> None:
        if engine is None:
            engine = PlaybackEngine(settings=settings or PlaybackSettings.from_env())
        self.engine = engine
        self._on_cursor = on_cursor
        self._cursor: CursorLoop | None = None

    @property
    def is_playing(self) -> bool:
        return self.engine.state != "idle"

    @property
    def cursor_running(self) -> bool:
        return self._cursor is not None and self._cursor.running

    def play(
        self,
        sequence: Iterable[NoteInput],
        bpm: float,
        instrument: InstrumentKind | str = "piano",
        on_complete: Callable[[], None] | None = None,
    ) -> PlaybackSession:
        notes = coerce_notes(sequence)
        kind = normalize_instrument(instrument)

        def _finished() -> None:
            self._stop_cursor()
            if on_complete is not None:
                on_complete()

        session = self.engine.play_sequence(notes, bpm, kind, on_complete=_finished)
        # Replace the cursor only once the engine has accepted the new sequence.
        self._stop_cursor()
        if self._on_cursor is not None:
            settings = self.engine.settings
            tracker = CursorTracker(
                notes,
                bpm,
                lookahead=settings.lookahead,
                grace_tail=settings.grace_tail,
            )
            self._cursor = CursorLoop(
                tracker, self._on_cursor, frame_interval=settings.frame_interval
            )
            self._cursor.start()
            _LOGGER.debug("Cursor feed started for %d notes", len(notes))
        return session

    def stop(self) -> None:
        self.engine.stop()
        self._stop_cursor()

    def preview_tone(self, pitch: str, instrument: InstrumentKind | str = "piano") -> None:
        self.engine.play_tone(pitch, normalize_instrument(instrument))

    def close(self) -> None:
        self.stop()
        self.engine.close()

    def _stop_cursor(self) -> None:
        cursor = self._cursor
        self._cursor = None
        if cursor is not None:
            cursor.stop()

    def __enter__(self) -> "Player":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()
