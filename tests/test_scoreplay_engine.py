from __future__ import annotations

import numpy as np
import pytest

from scoreplay.config import Note, PlaybackSettings
from scoreplay.context import OfflineContext
from scoreplay.engine import PlaybackEngine, PlaybackHooks, PlaybackSession
from scoreplay.errors import InvalidConfigError, InvalidSequenceError, OutputUnavailableError

SR = 8000


def _engine(
    lookahead: float = 0.0,
    hooks: PlaybackHooks | None = None,
) -> tuple[PlaybackEngine, OfflineContext]:
    context = OfflineContext(sample_rate=SR)
    settings = PlaybackSettings(lookahead=lookahead, sample_rate=SR)
    engine = PlaybackEngine(context_factory=lambda _: context, settings=settings, hooks=hooks)
    return engine, context


def _notes(*pairs: tuple[str, float]) -> list[Note]:
    return [Note(pitch=pitch, duration=duration) for pitch, duration in pairs]


class _FailingContext(OfflineContext):
    def resume(self) -> None:
        raise OutputUnavailableError("no device")


def test_context_is_resumed_before_scheduling() -> None:
    engine, context = _engine()
    assert context.state == "suspended"
    engine.play_sequence(_notes(("C4", 1)), 120)
    assert context.state == "running"


def test_rest_leaves_silent_gap() -> None:
    engine, context = _engine()
    session = engine.play_sequence(_notes(("C4", 1), ("R", 1), ("D4", 1)), 60)

    voices = sorted(engine.live_voices, key=lambda voice: voice.start_time or 0.0)
    assert [(voice.start_time, voice.stop_time) for voice in voices] == [(0.0, 1.0), (2.0, 3.0)]
    assert session.end_time == pytest.approx(3.0)

    context.advance(3.0)
    samples = context.samples
    assert np.any(samples[: SR // 2] != 0)
    assert np.all(samples[SR : 2 * SR] == 0)
    assert np.any(samples[2 * SR : 2 * SR + SR // 2] != 0)


def test_lookahead_offsets_first_note() -> None:
    engine, context = _engine(lookahead=0.1)
    context.resume()
    context.advance(0.5)
    session = engine.play_sequence(_notes(("C4", 1), ("E4", 1)), 120)
    assert session.start_time == pytest.approx(0.6)
    assert [slot.start for slot in session.timeline] == pytest.approx([0.6, 1.1])


def test_voices_do_not_overlap() -> None:
    engine, _ = _engine()
    engine.play_sequence(_notes(("C4", 0.5), ("D4", 0.25), ("E4", 1.5), ("F4", 0.75)), 93)
    voices = sorted(engine.live_voices, key=lambda voice: voice.start_time or 0.0)
    for current, following in zip(voices, voices[1:]):
        assert current.stop_time is not None and following.start_time is not None
        assert current.stop_time <= following.start_time + 1e-12


def test_waveform_follows_instrument() -> None:
    engine, _ = _engine()
    engine.play_sequence(_notes(("C4", 1), ("D4", 1)), 120, "violin")
    assert {voice.waveform for voice in engine.live_voices} == {"sawtooth"}


def test_completion_callback_fires_once() -> None:
    engine, context = _engine()
    calls: list[str] = []
    session = engine.play_sequence(
        _notes(("C4", 1), ("D4", 1)), 120, on_complete=lambda: calls.append("done")
    )
    assert engine.state == "playing"

    context.advance(0.9)
    assert calls == []
    context.advance(0.2)
    assert calls == ["done"]
    assert session.state == "completed"
    assert engine.state == "idle"
    assert engine.live_voices == ()

    context.advance(1.0)
    assert calls == ["done"]


def test_failing_completion_callback_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    engine, context = _engine()

    def _explode() -> None:
        raise RuntimeError("ui went away")

    session = engine.play_sequence(_notes(("C4", 1)), 120, on_complete=_explode)
    with caplog.at_level("WARNING", logger="scoreplay.engine"):
        context.advance(1.0)

    assert session.state == "completed"
    assert engine.state == "idle"
    assert "Completion callback failed: ui went away" in caplog.text


def test_stop_makes_completion_a_noop() -> None:
    engine, context = _engine()
    calls: list[str] = []
    session = engine.play_sequence(
        _notes(("C4", 1), ("D4", 1)), 120, on_complete=lambda: calls.append("done")
    )
    context.advance(0.3)
    engine.stop()

    assert session.state == "cancelled"
    assert engine.live_voices == ()
    context.advance(2.0)
    assert calls == []


def test_stop_silences_immediately() -> None:
    engine, context = _engine()
    engine.play_sequence(_notes(("C4", 4)), 60)
    context.advance(0.5)
    engine.stop()
    context.advance(0.5)
    assert np.all(context.samples[SR // 2 :] == 0)
    assert context.voice_count == 0


def test_stop_is_idempotent() -> None:
    engine, _ = _engine()
    engine.stop()
    engine.stop()
    assert engine.live_voices == ()

    engine.play_sequence(_notes(("C4", 1)), 120)
    engine.stop()
    engine.stop()
    assert engine.live_voices == ()
    assert engine.state == "idle"


def test_new_session_cancels_previous_first() -> None:
    engine, context = _engine(lookahead=0.1)
    first_done: list[str] = []
    first = engine.play_sequence(
        _notes(("C4", 1), ("D4", 1), ("E4", 1)), 60, on_complete=lambda: first_done.append("x")
    )
    first_voices = engine.live_voices
    context.advance(0.5)

    second = engine.play_sequence(_notes(("G4", 1)), 60)

    assert first.state == "cancelled"
    assert all(voice.ended for voice in first_voices)
    assert not set(first_voices) & set(engine.live_voices)
    latest_stop = max(voice.stop_time or 0.0 for voice in first_voices)
    assert latest_stop <= second.start_time
    context.advance(5.0)
    assert first_done == []
    assert second.state == "completed"


def test_unresolvable_pitch_is_skipped_without_shifting_time() -> None:
    skipped: list[tuple[int, str]] = []
    hooks = PlaybackHooks(on_note_skipped=lambda index, note: skipped.append((index, note.pitch)))
    engine, context = _engine(hooks=hooks)
    calls: list[str] = []

    session = engine.play_sequence(
        _notes(("C4", 1), ("H9", 1), ("D4", 1)), 60, on_complete=lambda: calls.append("done")
    )

    assert session.skipped == [1]
    assert skipped == [(1, "H9")]
    starts = sorted(voice.start_time for voice in engine.live_voices)
    assert starts == [0.0, 2.0]
    context.advance(3.0)
    assert calls == ["done"]


def test_failing_hook_does_not_break_playback() -> None:
    def _boom(session: PlaybackSession) -> None:
        raise RuntimeError("hook failed")

    engine, _ = _engine(hooks=PlaybackHooks(on_session_start=_boom))
    session = engine.play_sequence(_notes(("C4", 1)), 120)
    assert session.state == "playing"


def test_empty_sequence_declined_without_touching_current_session() -> None:
    engine, _ = _engine()
    session = engine.play_sequence(_notes(("C4", 1)), 120)
    with pytest.raises(InvalidSequenceError):
        engine.play_sequence([], 120)
    assert session.state == "playing"
    assert engine.live_voices


def test_invalid_inputs_rejected() -> None:
    engine, _ = _engine()
    with pytest.raises(InvalidConfigError):
        engine.play_sequence(_notes(("C4", 1)), 0)
    with pytest.raises(InvalidSequenceError):
        engine.play_sequence([{"pitch": "C4", "duration": 0}], 120)


def test_plain_mappings_are_accepted() -> None:
    engine, _ = _engine()
    session = engine.play_sequence([{"pitch": "C4", "duration": 1.0}], 120)
    assert session.notes == (Note(pitch="C4", duration=1.0),)


def test_resume_failure_is_surfaced() -> None:
    context = _FailingContext(sample_rate=SR)
    engine = PlaybackEngine(
        context_factory=lambda _: context, settings=PlaybackSettings(sample_rate=SR)
    )
    with pytest.raises(OutputUnavailableError):
        engine.play_sequence(_notes(("C4", 1)), 120)
    assert engine.state == "idle"
    assert engine.session is None
    assert engine.live_voices == ()


def test_preview_tone_leaves_session_alone() -> None:
    engine, context = _engine()
    session = engine.play_sequence(_notes(("C4", 4)), 60)
    before = len(engine.live_voices)

    engine.play_tone("A4", "flute")

    assert len(engine.live_voices) == before + 1
    assert session.state == "playing"
    preview = [voice for voice in engine.live_voices if voice.frequency == 440.0]
    assert preview[0].stop_time == pytest.approx(0.5)
    context.advance(0.6)
    assert len(engine.live_voices) == before


def test_preview_of_rest_is_silent() -> None:
    engine, _ = _engine()
    engine.play_tone("R")
    assert engine.live_voices == ()


def test_repeated_previews_do_not_accumulate() -> None:
    engine, context = _engine()
    for _ in range(20):
        engine.play_tone("C5", "guitar")
        context.advance(0.6)
    assert engine.live_voices == ()
    assert context.voice_count == 0


def test_close_releases_context() -> None:
    engine, context = _engine()
    engine.play_sequence(_notes(("C4", 1)), 120)
    engine.close()
    assert context.state == "closed"
    assert engine.context is None
    assert engine.state == "idle"
