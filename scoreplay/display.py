from __future__ import annotations

import sys
import threading
import traceback
from collections.abc import Sequence
from typing import IO

from rich.console import Console
from rich.panel import Panel
from rich.status import Status
from rich.text import Text
from rich.traceback import Traceback

from .config import NOTE_DURATIONS, Note
from .logging_utils import debug_enabled, get_log_path
from .pitch import solfege

_NOTE_FRAMES = "♪♫♬♩"


def duration_symbol(duration: float) -> str:
    for _, value, symbol in NOTE_DURATIONS:
        if duration == value:
            return symbol
    return f"x{duration:g}"


def describe_note(notes: Sequence[Note], index: int | None) -> str:
    if index is None or not 0 <= index < len(notes):
        return "waiting"
    note = notes[index]
    return f"{note.pitch} ({solfege(note.pitch)}) {duration_symbol(note.duration)}  [{index + 1}/{len(notes)}]"


class CursorDisplay:
    """Terminal status line that follows the playback cursor."""

    def __init__(
        self,
        notes: Sequence[Note],
        *,
        title: str = "Playing",
        stream: IO[str] | None = None,
        enabled: bool | None = None,
    ) -> None:
        self._notes = notes
        self._title = title
        self._stream = stream or sys.stderr
        self._enabled = self._stream.isatty() if enabled is None else enabled
        self._console = Console(file=self._stream)
        self._status: Status | None = None
        self._lock = threading.Lock()
        self.history: list[int | None] = []

    def start(self) -> None:
        if not self._enabled or self._status is not None:
            return
        self._status = self._console.status(self._message(None), spinner="dots")
        self._status.start()

    def update(self, index: int | None) -> None:
        with self._lock:
            self.history.append(index)
            if self._status is not None:
                self._status.update(self._message(index))

    def stop(self) -> None:
        if self._status is None:
            return
        self._status.stop()
        self._status = None

    def _message(self, index: int | None) -> str:
        frame = _NOTE_FRAMES[(index or 0) % len(_NOTE_FRAMES)]
        return f"{frame} {self._title}: {describe_note(self._notes, index)}"

    def __enter__(self) -> "CursorDisplay":
        self.start()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.stop()


def render_error(
    context: str,
    exc: BaseException,
    *,
    stream: IO[str] | None = None,
) -> None:
    target = stream or sys.stderr
    debug = debug_enabled()
    log_path = get_log_path()
    if target.isatty():
        console = Console(file=target)
        body = Text.assemble(
            ("scoreplay error while ", "bold"),
            (context, "bold"),
            (":\n\n", "bold"),
            Text(f"{type(exc).__name__}", style="bold red"),
            (": ", "bold"),
            Text(str(exc)),
            (f"\nLogs: {log_path}", "dim"),
            ("\n\nSet SCOREPLAY_DEBUG=1 for console trace.", "dim"),
        )
        console.print(Panel(body, title="Error", border_style="red"))
        if debug:
            console.print(Traceback.from_exception(type(exc), exc, exc.__traceback__))
    else:
        target.write(f"{context} failed: {type(exc).__name__}: {exc} (logs: {log_path})\n")
        if debug:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=target)
