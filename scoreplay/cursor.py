"""Playback cursor estimation.

The cursor never asks the audio engine where playback is. It anchors a
wall-clock epoch at activation (now + the engine's lookahead) and maps elapsed
time onto the same beat arithmetic the engine schedules with. The two clocks
differ by a few tens of milliseconds; that is expected.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from typing import Callable

from .config import (
    GRACE_TAIL_SECONDS,
    LOOKAHEAD_SECONDS,
    Note,
    NoteInput,
    coerce_notes,
    validate_bpm,
)
from .logging_utils import debug_enabled
from .timeline import ScheduledNote, build_timeline

_LOGGER = logging.getLogger("scoreplay.cursor")

Clock = Callable[[], float]


def current_index(elapsed: float, notes: Sequence[Note], bpm: float) -> int | None:
    """Index of the note sounding `elapsed` seconds in, or None outside the sequence."""
    return _find(elapsed, build_timeline(notes, bpm))


def _find(elapsed: float, timeline: Sequence[ScheduledNote]) -> int | None:
    for slot in timeline:
        if slot.contains(elapsed):
            return slot.index
    return None


@dataclass(frozen=True)
class CursorFrame:
    index: int | None
    elapsed: float
    running: bool


class CursorTracker:
    def __init__(
        self,
        notes: Iterable[NoteInput],
        bpm: float,
        *,
        lookahead: float = LOOKAHEAD_SECONDS,
        grace_tail: float = GRACE_TAIL_SECONDS,
        clock: Clock = time.monotonic,
    ) -> None:
        self.notes = coerce_notes(notes)
        self.bpm = validate_bpm(bpm)
        self.lookahead = lookahead
        self.grace_tail = grace_tail
        self._clock = clock
        self._timeline = build_timeline(self.notes, self.bpm)
        self._total = self._timeline[-1].end if self._timeline else 0.0
        self._anchor: float | None = None

    @property
    def active(self) -> bool:
        return self._anchor is not None

    @property
    def total_seconds(self) -> float:
        return self._total

    def activate(self) -> None:
        self._anchor = self._clock() + self.lookahead

    def deactivate(self) -> CursorFrame:
        self._anchor = None
        return CursorFrame(None, 0.0, False)

    def tick(self) -> CursorFrame:
        if self._anchor is None:
            return CursorFrame(None, 0.0, False)
        elapsed = self._clock() - self._anchor
        if elapsed >= self._total + self.grace_tail:
            self._anchor = None
            return CursorFrame(None, elapsed, False)
        return CursorFrame(_find(elapsed, self._timeline), elapsed, True)

    def frames(self) -> Iterator[CursorFrame]:
        """Yield one frame per tick until the tracker stops or is deactivated."""

        while True:
            frame = self.tick()
            yield frame
            if not frame.running:
                return

    def run(
        self,
        on_index: Callable[[int | None], None],
        *,
        frame_interval: float = 1.0 / 60.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        for frame in self.frames():
            on_index(frame.index)
            if frame.running:
                sleep(frame_interval)


class CursorLoop:
    """Drive a tracker from a background thread, reporting index changes only."""

    def __init__(
        self,
        tracker: CursorTracker,
        on_index: Callable[[int | None], None],
        *,
        frame_interval: float = 1.0 / 60.0,
    ) -> None:
        self._tracker = tracker
        self._on_index = on_index
        self._interval = frame_interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._last: int | None = None
        self._emit_lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._last = None
        self._tracker.activate()
        self._thread = threading.Thread(target=self._run, name="scoreplay-cursor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=0.2)
        self._thread = None
        self._tracker.deactivate()
        self._emit(None, force=True)

    def _run(self) -> None:
        while not self._stop.is_set():
            frame = self._tracker.tick()
            self._emit(frame.index)
            if not frame.running:
                _LOGGER.debug("Cursor loop finished after %.2fs", frame.elapsed)
                return
            self._stop.wait(self._interval)

    def _emit(self, index: int | None, *, force: bool = False) -> None:
        with self._emit_lock:
            if index == self._last and not force:
                return
            self._last = index
        try:
            self._on_index(index)
        except Exception as exc:
            _LOGGER.warning("Cursor callback failed: %s", exc, exc_info=debug_enabled())
