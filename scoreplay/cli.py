from __future__ import annotations

import argparse
import logging
import threading
import time
from collections.abc import Iterable
from pathlib import Path

from rich.console import Console

from .config import INITIAL_BPM, INSTRUMENT_LABELS, INSTRUMENTS, PlaybackSettings, Song, validate_bpm
from .context import load_sounddevice
from .display import CursorDisplay, describe_note, render_error
from .engine import PlaybackEngine
from .errors import InvalidSequenceError
from .logging_utils import configure_logging, debug_enabled, get_log_path, log_exception
from .player import Player
from .render import render_to_wav
from .song import load_song, parse_analysis, save_song
from .timeline import total_seconds

_LOGGER = logging.getLogger("scoreplay.cli")
_CONSOLE = Console()


def _report(lines: Iterable[str]) -> None:
    for line in lines:
        _CONSOLE.print(line)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scoreplay")
    sub = parser.add_subparsers(dest="command", required=True)

    play = sub.add_parser("play", help="Play a song file with a live cursor.")
    play.add_argument("song", type=str)
    play.add_argument("--bpm", type=float, default=None)
    play.add_argument("--instrument", type=str.lower, default="piano", choices=INSTRUMENTS)

    render = sub.add_parser("render", help="Render a song file to wav.")
    render.add_argument("song", type=str)
    render.add_argument("--output", type=str, default=None)
    render.add_argument("--bpm", type=float, default=None)
    render.add_argument("--instrument", type=str.lower, default="piano", choices=INSTRUMENTS)

    tone = sub.add_parser("tone", help="Preview a single pitch.")
    tone.add_argument("pitch", type=str)
    tone.add_argument("--instrument", type=str.lower, default="piano", choices=INSTRUMENTS)

    importer = sub.add_parser("import", help="Turn a sheet-music recognizer response into a song file.")
    importer.add_argument("analysis", type=str)
    importer.add_argument("--output", type=str, default=None)
    importer.add_argument("--title", type=str, default=None)
    importer.add_argument("--bpm", type=float, default=INITIAL_BPM)

    sub.add_parser("doctor", help="Check the audio output device and log paths.")
    return parser


def _play(args: argparse.Namespace, settings: PlaybackSettings) -> int:
    song = load_song(args.song)
    bpm = song.bpm if args.bpm is None else args.bpm
    done = threading.Event()
    display = CursorDisplay(song.notes, title=song.title)
    with Player(PlaybackEngine(settings=settings), on_cursor=display.update) as player:
        with display:
            session = player.play(song.notes, bpm, args.instrument, on_complete=done.set)
            try:
                # Completion fires from the scheduler; the extra second is a safety margin.
                done.wait(timeout=session.duration + settings.lookahead + 1.0)
            except KeyboardInterrupt:
                _CONSOLE.print("Stopped.")
                player.stop()
                return 130
    if session.skipped:
        labels = ", ".join(describe_note(song.notes, index) for index in session.skipped)
        _CONSOLE.print(f"[yellow]Skipped {len(session.skipped)} unreadable notes:[/] {labels}")
    label = INSTRUMENT_LABELS[args.instrument]
    _CONSOLE.print(f"Played {song.title!r} on {label}: {len(song.notes)} notes at {bpm:g} bpm")
    return 0


def _render(args: argparse.Namespace, settings: PlaybackSettings) -> int:
    song = load_song(args.song)
    bpm = song.bpm if args.bpm is None else args.bpm
    output = args.output or str(Path(args.song).with_suffix(".wav"))
    path = render_to_wav(output, song.notes, bpm, args.instrument, settings=settings)
    seconds = total_seconds(song.notes, bpm)
    _CONSOLE.print(f"Wrote {seconds:.2f}s to {path} (sr={settings.sample_rate})")
    return 0


def _tone(args: argparse.Namespace, settings: PlaybackSettings) -> int:
    with Player(PlaybackEngine(settings=settings)) as player:
        player.preview_tone(args.pitch, args.instrument)
        time.sleep(settings.preview_seconds + settings.lookahead)
    return 0


def _import(args: argparse.Namespace) -> int:
    source = Path(args.analysis)
    notes = parse_analysis(source.read_text(encoding="utf-8"), id_prefix=source.stem)
    if not notes:
        raise InvalidSequenceError(f"{source} holds no notes")
    song = Song(title=args.title or source.stem, bpm=validate_bpm(args.bpm), notes=notes)
    output = args.output or str(source.with_name(f"{source.stem}.song.json"))
    path = save_song(song, output)
    rests = sum(1 for note in notes if note.is_rest)
    _CONSOLE.print(f"Wrote {len(notes)} notes ({rests} rests) to {path}")
    return 0


def _doctor(settings: PlaybackSettings) -> int:
    sd = load_sounddevice()
    device = "unavailable (install sounddevice / PortAudio)"
    if sd is not None:
        try:
            info = sd.query_devices(kind="output")
            device = f"{info['name']} ({int(info['default_samplerate'])} Hz)"
        except Exception as exc:
            _LOGGER.info("Output device query failed: %s", exc, exc_info=True)
            device = f"unavailable ({exc})"
    _report(
        [
            f"Output device: {device}",
            f"Sample rate: {settings.sample_rate}",
            f"Lookahead: {settings.lookahead * 1000:.0f} ms",
            f"Log file: {get_log_path()}",
            "Hints:",
            "- Set SCOREPLAY_LOOKAHEAD / SCOREPLAY_SAMPLE_RATE to tune output timing.",
            "- Use `scoreplay render` when no output device is available.",
        ]
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        settings = PlaybackSettings.from_env()

        if args.command == "play":
            return _play(args, settings)
        if args.command == "render":
            return _render(args, settings)
        if args.command == "tone":
            return _tone(args, settings)
        if args.command == "import":
            return _import(args)
        if args.command == "doctor":
            return _doctor(settings)

        parser.print_help()
        return 1
    except Exception as exc:
        _LOGGER.warning("scoreplay CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("scoreplay CLI", exc)
        render_error("scoreplay CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
