"""Note sequences as delivered by the sheet-music recognizer.

The recognizer answers with JSON shaped like ``{"notes": [{"pitch": "C4",
"duration": 1.0}, ...]}`` (a bare list is accepted too). Identifiers are
assigned here; nothing downstream relies on them being stable.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, cast

from pydantic import ValidationError

from .config import Note, Song
from .errors import InvalidSequenceError

_LOGGER = logging.getLogger("scoreplay.song")


def _decode(payload: str | bytes | Mapping[str, Any] | Sequence[Any]) -> object:
    match payload:
        case str() | bytes():
            try:
                return json.loads(payload)
            except json.JSONDecodeError as exc:
                raise InvalidSequenceError(f"Analysis response is not JSON: {exc}") from exc
        case _:
            return payload


def parse_analysis(
    payload: str | bytes | Mapping[str, Any] | Sequence[Any],
    *,
    id_prefix: str | None = None,
) -> list[Note]:
    """Validate a recognizer response and give every note an id."""

    data = _decode(payload)
    match data:
        case {"notes": list() as items}:
            raw_notes = cast(list[Any], items)
        case list() as items:
            raw_notes = cast(list[Any], items)
        case _:
            raise InvalidSequenceError("Analysis response must contain a 'notes' list")

    prefix = id_prefix or f"generated-{int(time.time() * 1000)}"
    notes: list[Note] = []
    for index, item in enumerate(raw_notes):
        try:
            note = Note.model_validate(item)
        except ValidationError as exc:
            raise InvalidSequenceError(f"Note {index} is invalid: {exc}") from exc
        notes.append(note.model_copy(update={"id": f"{prefix}-{index}"}))
    _LOGGER.debug("Parsed %d notes from analysis response", len(notes))
    return notes


def load_song(path: str | Path) -> Song:
    """Read a song file: ``{"title": ..., "bpm": ..., "notes": [...]}``."""

    source = Path(path)
    try:
        data = json.loads(source.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidSequenceError(f"{source} is not valid JSON: {exc}") from exc
    if isinstance(data, list):
        data = {"notes": data}
    if not isinstance(data, dict):
        raise InvalidSequenceError(f"{source} must hold an object or a list of notes")
    try:
        song = Song.model_validate(data)
    except ValidationError as exc:
        raise InvalidSequenceError(f"{source} is not a valid song: {exc}") from exc
    if not song.title or song.title == "Untitled":
        song = song.model_copy(update={"title": source.stem})
    return song


def save_song(song: Song, path: str | Path) -> Path:
    target = Path(path)
    target.write_text(song.model_dump_json(indent=2, exclude_none=True), encoding="utf-8")
    return target
