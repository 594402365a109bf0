from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict

from .config import (
    InstrumentKind,
    Note,
    NoteInput,
    PlaybackSettings,
    PlaybackState,
    coerce_notes,
    validate_bpm,
)
from .context import AudioContext, DeviceContext, ScheduledCall, Voice
from .errors import InvalidSequenceError
from .logging_utils import debug_enabled
from .pitch import frequency, is_rest
from .timeline import ScheduledNote, build_timeline
from .voice import shape_envelope

_LOGGER = logging.getLogger("scoreplay.engine")

ContextFactory = Callable[[PlaybackSettings], AudioContext]


class PlaybackSession:
    """State of one `play_sequence` call, from scheduling to its end."""

    def __init__(
        self,
        notes: tuple[Note, ...],
        bpm: float,
        instrument: InstrumentKind | str,
        on_complete: Callable[[], None] | None,
    ) -> None:
        self.notes = notes
        self.bpm = bpm
        self.instrument = instrument
        self.state: PlaybackState = "scheduling"
        self.timeline: tuple[ScheduledNote, ...] = ()
        self.start_time = 0.0
        self.end_time = 0.0
        self.skipped: list[int] = []
        self._on_complete = on_complete

    def __repr__(self) -> str:
        return (
            f"PlaybackSession(notes={len(self.notes)}, bpm={self.bpm}, "
            f"instrument={self.instrument!r}, state={self.state!r})"
        )

    @property
    def is_active(self) -> bool:
        return self.state in ("scheduling", "playing")

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class PlaybackHooks(BaseModel):
    on_session_start: Callable[[PlaybackSession], None] | None = None
    on_note_skipped: Callable[[int, Note], None] | None = None
    on_session_end: Callable[[PlaybackSession], None] | None = None

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


def _emit_hook(
    hooks: PlaybackHooks | None,
    *,
    kind: Literal["session_start", "note_skipped", "session_end"],
    session: PlaybackSession,
    index: int | None = None,
) -> None:
    if hooks is None:
        return
    try:
        match kind:
            case "session_start":
                if hooks.on_session_start is not None:
                    hooks.on_session_start(session)
            case "note_skipped":
                if hooks.on_note_skipped is not None and index is not None:
                    hooks.on_note_skipped(index, session.notes[index])
            case "session_end":
                if hooks.on_session_end is not None:
                    hooks.on_session_end(session)
    except Exception as exc:
        _LOGGER.warning("Playback hook failed: %s", exc, exc_info=debug_enabled())


def _device_context(settings: PlaybackSettings) -> AudioContext:
    return DeviceContext(sample_rate=settings.sample_rate, block_size=settings.block_size)


class PlaybackEngine:
    """Schedules note sequences on an owned audio context.

    At most one session plays at a time: starting a new one stops the previous
    session's voices before anything new is scheduled. Voices are tracked in a
    live set that only the engine mutates; voices that end on their own ask the
    engine to release them.
    """

    def __init__(
        self,
        *,
        context_factory: ContextFactory | None = None,
        settings: PlaybackSettings | None = None,
        hooks: PlaybackHooks | None = None,
    ) -> None:
        self._context_factory = context_factory or _device_context
        self._settings = settings or PlaybackSettings()
        self._hooks = hooks
        self._context: AudioContext | None = None
        self._session: PlaybackSession | None = None
        self._completion: ScheduledCall | None = None
        self._voices: set[Voice] = set()
        self._lock = threading.RLock()

    @property
    def settings(self) -> PlaybackSettings:
        return self._settings

    @property
    def context(self) -> AudioContext | None:
        return self._context

    @property
    def session(self) -> PlaybackSession | None:
        return self._session

    @property
    def state(self) -> PlaybackState:
        session = self._session
        if session is None or not session.is_active:
            return "idle"
        return session.state

    @property
    def live_voices(self) -> tuple[Voice, ...]:
        with self._lock:
            return tuple(self._voices)

    def play_sequence(
        self,
        notes: Iterable[NoteInput],
        bpm: float,
        instrument: InstrumentKind | str = "piano",
        on_complete: Callable[[], None] | None = None,
    ) -> PlaybackSession:
        sequence = coerce_notes(notes)
        if not sequence:
            raise InvalidSequenceError("Cannot play an empty sequence")
        tempo = validate_bpm(bpm)

        context = self._ensure_context()
        self.stop()

        session = PlaybackSession(sequence, tempo, instrument, on_complete)
        self._session = session
        session.start_time = context.current_time + self._settings.lookahead
        session.timeline = build_timeline(sequence, tempo, offset=session.start_time)

        for slot in session.timeline:
            if is_rest(slot.pitch):
                continue
            freq = frequency(slot.pitch)
            if freq <= 0:
                session.skipped.append(slot.index)
                _LOGGER.warning("Skipping unresolvable pitch %r at index %d", slot.pitch, slot.index)
                _emit_hook(self._hooks, kind="note_skipped", session=session, index=slot.index)
                continue
            self._play_note(context, freq, slot.start, slot.duration, instrument)

        session.end_time = session.timeline[-1].end
        session.state = "playing"
        completion = context.call_at(session.end_time, lambda: self._complete(session))
        with self._lock:
            self._completion = completion
        _LOGGER.info(
            "Scheduled %d notes (%d skipped) at %.1f bpm on %s, %.2fs",
            len(sequence),
            len(session.skipped),
            tempo,
            instrument,
            session.duration,
        )
        _emit_hook(self._hooks, kind="session_start", session=session)
        return session

    def play_tone(self, pitch: str, instrument: InstrumentKind | str = "piano") -> None:
        """Audition a single pitch now, independent of any playing sequence."""

        context = self._ensure_context()
        freq = frequency(pitch)
        if freq <= 0:
            _LOGGER.info("No tone for pitch %r", pitch)
            return
        self._play_note(
            context, freq, context.current_time, self._settings.preview_seconds, instrument
        )

    def stop(self) -> None:
        with self._lock:
            session = self._session
            completion = self._completion
            self._completion = None
            voices = list(self._voices)
            self._voices.clear()
            cancelled = session is not None and session.is_active
            if cancelled:
                assert session is not None
                session.state = "cancelled"

        if completion is not None:
            completion.cancel()
        for voice in voices:
            voice.stop()
            voice.disconnect()
        if cancelled:
            assert session is not None
            _LOGGER.info("Playback cancelled; silenced %d voices", len(voices))
            _emit_hook(self._hooks, kind="session_end", session=session)

    def close(self) -> None:
        self.stop()
        if self._context is not None:
            self._context.close()
            self._context = None

    def _ensure_context(self) -> AudioContext:
        if self._context is None or self._context.state == "closed":
            self._context = self._context_factory(self._settings)
        if self._context.state == "suspended":
            _LOGGER.debug("Resuming suspended audio context")
            self._context.resume()
        return self._context

    def _play_note(
        self,
        context: AudioContext,
        freq: float,
        start: float,
        duration: float,
        instrument: InstrumentKind | str,
    ) -> Voice:
        voice = context.create_voice(freq)
        voice.waveform = shape_envelope(voice.gain, start, duration, instrument)
        voice.on_ended = self._release
        with self._lock:
            self._voices.add(voice)
        voice.start(start)
        voice.stop(start + duration)
        return voice

    def _release(self, voice: Voice) -> None:
        with self._lock:
            self._voices.discard(voice)
        voice.disconnect()

    def _complete(self, session: PlaybackSession) -> None:
        with self._lock:
            if not session.is_active:
                return
            session.state = "completed"
            self._completion = None
        _LOGGER.info("Playback completed after %.2fs", session.duration)
        _emit_hook(self._hooks, kind="session_end", session=session)
        callback = session._on_complete
        if callback is None:
            return
        try:
            callback()
        except Exception as exc:
            _LOGGER.warning("Completion callback failed: %s", exc, exc_info=debug_enabled())
