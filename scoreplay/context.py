"""Audio output contexts and the voices they mix.

A context owns an audio clock (`current_time`, seconds of audio delivered)
and a mixer of live voices. :class:`DeviceContext` feeds a sounddevice output
stream; :class:`OfflineContext` runs the same mixer on a clock that only moves
when `advance()` is called, for rendering to a buffer and for tests.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from typing import Any, Callable, Literal, Protocol

import numpy as np
from numpy.typing import NDArray

from .config import SAMPLE_RATE, WaveformKind
from .errors import OutputUnavailableError, PlaybackError
from .synth import render_tone
from .voice import GainAutomation

_LOGGER = logging.getLogger("scoreplay.context")

ContextState = Literal["suspended", "running", "closed"]
EndedCallback = Callable[["Voice"], None]


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class AudioContext(Protocol):
    sample_rate: int

    @property
    def state(self) -> ContextState: ...

    @property
    def current_time(self) -> float: ...

    def resume(self) -> None: ...

    def suspend(self) -> None: ...

    def close(self) -> None: ...

    def create_voice(self, frequency: float) -> "Voice": ...

    def call_at(self, when: float, callback: Callable[[], None]) -> ScheduledCall: ...


class Voice:
    """One oscillator + gain pair, started and stopped on the context clock."""

    def __init__(self, context: "MixingContext", frequency: float) -> None:
        self.frequency = frequency
        self.waveform: WaveformKind = "sine"
        self.gain = GainAutomation()
        self.on_ended: EndedCallback | None = None
        self.start_time: float | None = None
        self.stop_time: float | None = None
        self.ended = False
        self._context = context
        self._samples: NDArray[np.float32] | None = None
        self._origin = 0

    def __repr__(self) -> str:
        return (
            f"Voice({self.frequency:.2f}Hz {self.waveform}, "
            f"start={self.start_time}, stop={self.stop_time}, ended={self.ended})"
        )

    def start(self, when: float) -> None:
        if self.start_time is not None:
            raise PlaybackError("Voice already started")
        self.start_time = when
        self._context._connect(self)

    def stop(self, when: float | None = None) -> None:
        """Schedule the end of the voice; with no time (or a past one) end it now."""

        if self.ended:
            return
        if self.start_time is None:
            raise PlaybackError("Voice stopped before it was started")
        now = self._context.current_time
        if when is None or when <= now:
            self.stop_time = now
            self._finish()
            return
        self.stop_time = when
        self._samples = None

    def disconnect(self) -> None:
        self._context._disconnect(self)

    def stop_frame(self, sample_rate: int) -> int | None:
        if self.stop_time is None:
            return None
        return _to_frame(self.stop_time, sample_rate)

    def mix_into(self, block: NDArray[np.float32], block_start: int, sample_rate: int) -> None:
        if self.start_time is None or self.stop_time is None:
            return
        lo = max(block_start, _to_frame(self.start_time, sample_rate))
        hi = min(block_start + len(block), _to_frame(self.stop_time, sample_rate))
        if hi <= lo:
            return
        origin, samples = self._render(lo, sample_rate)
        hi = min(hi, origin + len(samples))
        if hi <= lo:
            return
        block[lo - block_start : hi - block_start] += samples[lo - origin : hi - origin]

    def _render(self, from_frame: int, sample_rate: int) -> tuple[int, NDArray[np.float32]]:
        """Render once, from the first frame a block asks for up to the stop time."""

        if self._samples is None:
            assert self.start_time is not None and self.stop_time is not None
            start_frame = _to_frame(self.start_time, sample_rate)
            stop_frame = _to_frame(self.stop_time, sample_rate)
            self._origin = from_frame
            self._samples = render_tone(
                self.frequency,
                self.start_time,
                (stop_frame - from_frame) / sample_rate,
                self.waveform,
                self.gain,
                sr=sample_rate,
                offset=(from_frame - start_frame) / sample_rate,
            )
        return self._origin, self._samples

    def _finish(self) -> None:
        with self._context._lock:
            if self.ended:
                return
            self.ended = True
        callback = self.on_ended
        if callback is not None:
            callback(self)


def _to_frame(seconds: float, sample_rate: int) -> int:
    return int(round(seconds * sample_rate))


class MixingContext:
    """Clock, voice list, and block mixer shared by the concrete contexts."""

    def __init__(self, *, sample_rate: int = SAMPLE_RATE) -> None:
        self.sample_rate = sample_rate
        self._frame = 0
        self._voices: list[Voice] = []
        self._lock = threading.RLock()
        self._state: ContextState = "suspended"

    @property
    def state(self) -> ContextState:
        return self._state

    @property
    def current_time(self) -> float:
        return self._frame / self.sample_rate

    @property
    def voice_count(self) -> int:
        with self._lock:
            return len(self._voices)

    def create_voice(self, frequency: float) -> Voice:
        if self._state == "closed":
            raise PlaybackError("Audio context is closed")
        return Voice(self, frequency)

    def _connect(self, voice: Voice) -> None:
        with self._lock:
            if voice not in self._voices:
                self._voices.append(voice)

    def _disconnect(self, voice: Voice) -> None:
        with self._lock:
            if voice in self._voices:
                self._voices.remove(voice)

    def _mix(self, frames: int) -> NDArray[np.float32]:
        block = np.zeros(frames, dtype=np.float32)
        block_start = self._frame
        block_end = block_start + frames
        with self._lock:
            voices = list(self._voices)
        for voice in voices:
            voice.mix_into(block, block_start, self.sample_rate)
        self._frame = block_end

        for voice in voices:
            stop_frame = voice.stop_frame(self.sample_rate)
            if not voice.ended and stop_frame is not None and stop_frame <= block_end:
                voice._finish()
        with self._lock:
            self._voices = [voice for voice in self._voices if not voice.ended]
        return block


def load_sounddevice() -> Any | None:
    try:
        import sounddevice as sd_module  # type: ignore[import]
    except (ImportError, OSError) as exc:
        _LOGGER.info("sounddevice not available: %s", exc, exc_info=True)
        return None
    return sd_module


class DeviceContext(MixingContext):
    """Context backed by the default (or given) sounddevice output device."""

    def __init__(
        self,
        *,
        sample_rate: int = SAMPLE_RATE,
        block_size: int = 512,
        device: int | str | None = None,
    ) -> None:
        super().__init__(sample_rate=sample_rate)
        self.block_size = block_size
        self.device = device
        self._stream: Any | None = None
        self._timers: set[threading.Timer] = set()

    def resume(self) -> None:
        if self._state == "closed":
            raise OutputUnavailableError("Audio context is closed")
        if self._state == "running":
            return
        sd = load_sounddevice()
        if sd is None:
            raise OutputUnavailableError("Playback requires sounddevice. Install it (or render to a file).")
        try:
            if self._stream is None:
                self._stream = sd.OutputStream(
                    samplerate=self.sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=self.block_size,
                    device=self.device,
                    callback=self._callback,
                )
            self._stream.start()
        except Exception as exc:
            raise OutputUnavailableError(f"Audio output unavailable: {exc}") from exc
        self._state = "running"
        _LOGGER.info("Audio output running at %d Hz", self.sample_rate)

    def suspend(self) -> None:
        if self._state != "running":
            return
        assert self._stream is not None
        self._stream.stop()
        self._state = "suspended"

    def close(self) -> None:
        if self._state == "closed":
            return
        for timer in list(self._timers):
            timer.cancel()
        self._timers.clear()
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as exc:
                _LOGGER.warning("Closing output stream failed: %s", exc, exc_info=True)
            self._stream = None
        with self._lock:
            self._voices.clear()
        self._state = "closed"

    def call_at(self, when: float, callback: Callable[[], None]) -> ScheduledCall:
        delay = max(0.0, when - self.current_time)

        def _fire() -> None:
            self._timers.discard(timer)
            callback()

        timer = threading.Timer(delay, _fire)
        timer.daemon = True
        self._timers.add(timer)
        timer.start()
        return timer

    def _callback(self, outdata: Any, frames: int, time_info: Any, status: Any) -> None:
        _ = time_info
        if status:
            _LOGGER.debug("Output stream status: %s", status)
        block = self._mix(frames)
        outdata[:, 0] = np.clip(block, -1.0, 1.0)


class _OfflineCall:
    def __init__(self, callback: Callable[[], None]) -> None:
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class OfflineContext(MixingContext):
    """Context whose clock moves only through `advance()`; keeps what it rendered."""

    def __init__(self, *, sample_rate: int = SAMPLE_RATE) -> None:
        super().__init__(sample_rate=sample_rate)
        self._calls: list[tuple[int, int, _OfflineCall]] = []
        self._order = itertools.count()
        self._chunks: list[NDArray[np.float32]] = []

    @property
    def samples(self) -> NDArray[np.float32]:
        if not self._chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(self._chunks)

    def resume(self) -> None:
        if self._state == "closed":
            raise OutputUnavailableError("Audio context is closed")
        self._state = "running"

    def suspend(self) -> None:
        if self._state == "running":
            self._state = "suspended"

    def close(self) -> None:
        self._calls.clear()
        with self._lock:
            self._voices.clear()
        self._state = "closed"

    def call_at(self, when: float, callback: Callable[[], None]) -> ScheduledCall:
        call = _OfflineCall(callback)
        heapq.heappush(self._calls, (_to_frame(when, self.sample_rate), next(self._order), call))
        return call

    def advance(self, seconds: float) -> None:
        """Render `seconds` of audio, firing voice ends and due calls in time order."""

        if self._state != "running":
            raise PlaybackError(f"Cannot advance a {self._state} context")
        target = self._frame + _to_frame(seconds, self.sample_rate)
        while True:
            due = self._next_due_frame(target)
            if due is None:
                break
            self._chunks.append(self._mix(due - self._frame))
            self._fire_calls()
        if target > self._frame:
            self._chunks.append(self._mix(target - self._frame))
        self._fire_calls()

    def _next_due_frame(self, target: int) -> int | None:
        candidates: list[int] = []
        while self._calls and self._calls[0][2].cancelled:
            heapq.heappop(self._calls)
        if self._calls:
            candidates.append(self._calls[0][0])
        with self._lock:
            voices = list(self._voices)
        for voice in voices:
            stop_frame = voice.stop_frame(self.sample_rate)
            if not voice.ended and stop_frame is not None:
                candidates.append(stop_frame)
        due = min(candidates, default=None)
        if due is None or due > target:
            return None
        return max(due, self._frame)

    def _fire_calls(self) -> None:
        while self._calls and self._calls[0][0] <= self._frame:
            _, _, call = heapq.heappop(self._calls)
            if not call.cancelled:
                call.callback()
