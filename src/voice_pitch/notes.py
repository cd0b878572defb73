"""Conversions between frequencies in Hertz and equal-tempered notes (A4 = 440 Hz)."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Optional

from voice_pitch.utils import round_half_up

A4_FREQUENCY = 440.0
A4_MIDI_NUMBER = 69
NOTE_NAMES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

_NOTE_PATTERN = re.compile(r"^([A-G]#?)(-?\d+)$")


@dataclass(frozen=True, slots=True)
class NoteInfo:
    """An integer MIDI note with its name, octave and frequency."""

    note: str
    octave: int
    frequency: float
    midi_number: int

    @property
    def name(self) -> str:
        return f"{self.note}{self.octave}"


@dataclass(frozen=True, slots=True)
class NoteReading:
    """Nearest note to a measured frequency and the deviation from it."""

    note: str
    octave: int
    cents: int
    midi_number: int
    frequency: float

    @property
    def name(self) -> str:
        return f"{self.note}{self.octave}"


def hz_to_midi(frequency: float) -> float:
    """Return the (fractional) MIDI number of ``frequency``.

    Raises ``ValueError`` for zero, negative or non-finite input since the
    logarithm is undefined there.
    """

    frequency = float(frequency)
    if not math.isfinite(frequency) or frequency <= 0.0:
        raise ValueError(f"frequency must be positive and finite, got {frequency!r}")
    return 12.0 * math.log2(frequency / A4_FREQUENCY) + A4_MIDI_NUMBER


def midi_to_hz(midi_number: float) -> float:
    return A4_FREQUENCY * 2.0 ** ((float(midi_number) - A4_MIDI_NUMBER) / 12.0)


def _split_midi(midi_number: int) -> tuple[str, int]:
    return NOTE_NAMES[midi_number % 12], midi_number // 12 - 1


def hz_to_note(frequency: Optional[float]) -> Optional[NoteReading]:
    """Return the nearest note to ``frequency`` or ``None`` when there is none."""

    if frequency is None or not math.isfinite(frequency) or frequency <= 0.0:
        return None

    raw_midi = hz_to_midi(frequency)
    rounded = round_half_up(raw_midi)
    cents = round_half_up((raw_midi - rounded) * 100.0)
    note, octave = _split_midi(rounded)
    return NoteReading(
        note=note,
        octave=octave,
        cents=cents,
        midi_number=rounded,
        frequency=float(frequency),
    )


def note_to_hz(note: str, octave: int) -> float:
    """Return the frequency of ``note`` (e.g. ``"C#"``) in ``octave``."""

    try:
        index = NOTE_NAMES.index(note)
    except ValueError:
        raise ValueError(f"Invalid note: {note!r}") from None
    midi_number = (int(octave) + 1) * 12 + index
    return midi_to_hz(midi_number)


def parse_note_string(text: str) -> float:
    """Parse strings such as ``"C4"`` or ``"A#5"`` into a frequency."""

    match = _NOTE_PATTERN.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid note string: {text!r}")
    note, octave = match.groups()
    return note_to_hz(note, int(octave))


def note_range(min_midi: float, max_midi: float) -> list[NoteInfo]:
    """Return every integer MIDI note in ``[min_midi, max_midi]``.

    Fractional bounds are rounded inwards so the result only contains notes that
    lie inside the interval. An inverted interval yields an empty list.
    """

    lo = math.ceil(min_midi)
    hi = math.floor(max_midi)
    notes = []
    for midi in range(lo, hi + 1):
        note, octave = _split_midi(midi)
        notes.append(
            NoteInfo(
                note=note,
                octave=octave,
                frequency=midi_to_hz(midi),
                midi_number=midi,
            )
        )
    return notes


__all__ = [
    "A4_FREQUENCY",
    "A4_MIDI_NUMBER",
    "NOTE_NAMES",
    "NoteInfo",
    "NoteReading",
    "hz_to_midi",
    "midi_to_hz",
    "hz_to_note",
    "note_to_hz",
    "parse_note_string",
    "note_range",
]
