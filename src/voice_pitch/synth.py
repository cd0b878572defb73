"""Synthetic voice-like signals for the demo source and for tests.

Tones are built from a harmonic series whose fundamental follows a frequency
contour, so glides and vibrato stay phase-continuous.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import numpy as np
from scipy.io import wavfile

from voice_pitch.notes import midi_to_hz

SUPPORTED_WAVEFORMS = {"sine", "square", "triangle", "sawtooth"}


@dataclass(slots=True)
class ToneParameters:
    """Parameters of a single steady tone."""

    sample_rate: int = 44100
    duration: float = 1.0
    frequency: float = 220.0
    waveform: str = "sine"
    num_partials: int = 1
    gain: float = 0.8
    noise_level: float = 0.0
    vibrato_rate: float = 0.0
    vibrato_depth_cents: float = 0.0
    seed: int | None = None
    normalize: bool = True


@dataclass(frozen=True, slots=True)
class PhraseNote:
    """One step of a phrase; ``midi_number=None`` is a rest."""

    midi_number: Optional[float]
    duration: float


# A short warm-up exercise around A3 with breaths between the runs.
DEFAULT_PHRASE: tuple[PhraseNote, ...] = (
    PhraseNote(57, 0.6),
    PhraseNote(59, 0.4),
    PhraseNote(61, 0.4),
    PhraseNote(62, 0.4),
    PhraseNote(64, 0.8),
    PhraseNote(None, 0.5),
    PhraseNote(64, 0.4),
    PhraseNote(62, 0.4),
    PhraseNote(61, 0.4),
    PhraseNote(59, 0.4),
    PhraseNote(57, 1.0),
    PhraseNote(None, 0.8),
)


def _partial_amplitude(waveform: str, partial_index: int) -> float:
    if waveform == "sine":
        return 1.0 if partial_index == 1 else 0.0
    if waveform == "square":
        if partial_index % 2 == 1:
            return 1.0 / partial_index
        return 0.0
    if waveform == "triangle":
        if partial_index % 2 == 1:
            sign = -1.0 if ((partial_index - 1) // 2) % 2 else 1.0
            return sign / (partial_index**2)
        return 0.0
    if waveform == "sawtooth":
        return 1.0 / partial_index
    msg = ", ".join(sorted(SUPPORTED_WAVEFORMS))
    raise ValueError(f"Unsupported waveform '{waveform}'. Available: {msg}.")


def synthesize(
    contour: np.ndarray,
    sample_rate: int,
    *,
    waveform: str = "sine",
    num_partials: int = 1,
    phase: float = 0.0,
) -> np.ndarray:
    """Render a harmonic series following the per-sample frequency ``contour``.

    Partials that would exceed the Nyquist frequency at any point of the
    contour are dropped. The result is not normalised.
    """

    contour = np.asarray(contour, dtype=np.float64)
    if contour.size == 0:
        return np.zeros(0, dtype=np.float64)
    nyquist = sample_rate / 2.0
    peak = float(np.max(contour))
    fundamental_phase = phase + 2.0 * np.pi * np.cumsum(contour) / sample_rate

    out = np.zeros_like(contour)
    for partial_index in range(1, max(1, int(num_partials)) + 1):
        amplitude = _partial_amplitude(waveform, partial_index)
        if amplitude == 0.0:
            continue
        if peak * partial_index >= nyquist:
            break
        out += amplitude * np.sin(partial_index * fundamental_phase)
    return out


def _finish(
    audio: np.ndarray,
    *,
    gain: float,
    noise_level: float,
    normalize: bool,
    rng: np.random.Generator,
) -> np.ndarray:
    peak = float(np.max(np.abs(audio))) if audio.size else 0.0
    if normalize and peak > 1.0e-12:
        audio = audio / peak
    audio = audio * gain
    if noise_level > 0.0:
        audio = audio + rng.normal(0.0, noise_level, size=audio.shape)
    return np.clip(audio, -1.0, 1.0).astype(np.float32)


def vibrato_contour(
    frequency: float,
    sample_count: int,
    sample_rate: int,
    rate: float = 0.0,
    depth_cents: float = 0.0,
) -> np.ndarray:
    t = np.arange(sample_count) / sample_rate
    if rate <= 0.0 or depth_cents == 0.0:
        return np.full(sample_count, float(frequency))
    cents = depth_cents * np.sin(2.0 * np.pi * rate * t)
    return frequency * np.power(2.0, cents / 1200.0)


def generate_tone(params: ToneParameters) -> np.ndarray:
    """Generate a steady (optionally vibrato) tone as ``float32`` samples."""

    if params.waveform not in SUPPORTED_WAVEFORMS:
        msg = ", ".join(sorted(SUPPORTED_WAVEFORMS))
        raise ValueError(
            f"Unsupported waveform '{params.waveform}'. Available waveforms: {msg}."
        )

    rng = np.random.default_rng(params.seed)
    sample_count = int(params.sample_rate * params.duration)
    contour = vibrato_contour(
        params.frequency,
        sample_count,
        params.sample_rate,
        params.vibrato_rate,
        params.vibrato_depth_cents,
    )
    audio = synthesize(
        contour,
        params.sample_rate,
        waveform=params.waveform,
        num_partials=params.num_partials,
        phase=rng.uniform(0.0, 2 * np.pi),
    )
    return _finish(
        audio,
        gain=params.gain,
        noise_level=params.noise_level,
        normalize=params.normalize,
        rng=rng,
    )


def _moving_average(values: np.ndarray, length: int) -> np.ndarray:
    if length <= 1 or values.size == 0:
        return values
    kernel = np.ones(length) / length
    padded = np.pad(values, (length // 2, length - 1 - length // 2), mode="edge")
    return np.convolve(padded, kernel, mode="valid")


def midi_to_hz_array(midi: np.ndarray) -> np.ndarray:
    """Vectorised :func:`voice_pitch.notes.midi_to_hz`."""
    return midi_to_hz(0.0) * np.power(2.0, np.asarray(midi, dtype=np.float64) / 12.0)


def render_phrase(
    notes: Sequence[PhraseNote] = DEFAULT_PHRASE,
    sample_rate: int = 44100,
    *,
    waveform: str = "triangle",
    num_partials: int = 9,
    glide_sec: float = 0.06,
    vibrato_rate: float = 5.5,
    vibrato_depth_cents: float = 25.0,
    gain: float = 0.5,
    noise_level: float = 0.0,
    seed: int | None = None,
) -> np.ndarray:
    """Render a sung-like phrase with glides between notes and silent rests."""

    rng = np.random.default_rng(seed)
    midi_steps: list[np.ndarray] = []
    gate_steps: list[np.ndarray] = []
    previous = next((n.midi_number for n in notes if n.midi_number is not None), 69.0)
    for note in notes:
        count = max(1, int(round(note.duration * sample_rate)))
        if note.midi_number is None:
            midi_steps.append(np.full(count, float(previous)))
            gate_steps.append(np.zeros(count))
        else:
            previous = float(note.midi_number)
            midi_steps.append(np.full(count, previous))
            gate_steps.append(np.ones(count))

    if not midi_steps:
        return np.zeros(0, dtype=np.float32)

    glide = max(1, int(glide_sec * sample_rate))
    midi = _moving_average(np.concatenate(midi_steps), glide)
    gate = _moving_average(np.concatenate(gate_steps), glide)

    t = np.arange(midi.size) / sample_rate
    midi = midi + (vibrato_depth_cents / 100.0) * np.sin(2.0 * np.pi * vibrato_rate * t)
    contour = midi_to_hz_array(midi)

    audio = synthesize(
        contour, sample_rate, waveform=waveform, num_partials=num_partials
    )
    audio = audio * gate
    return _finish(
        audio, gain=gain, noise_level=noise_level, normalize=True, rng=rng
    )


def write_wav(path: Path, audio: np.ndarray, sample_rate: int) -> Path:
    """Write ``audio`` as a 32-bit float WAV file and return the path."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    wavfile.write(path, int(sample_rate), np.asarray(audio, dtype=np.float32))
    return path


__all__ = [
    "SUPPORTED_WAVEFORMS",
    "ToneParameters",
    "PhraseNote",
    "DEFAULT_PHRASE",
    "synthesize",
    "vibrato_contour",
    "generate_tone",
    "render_phrase",
    "midi_to_hz_array",
    "write_wav",
]
