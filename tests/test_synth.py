from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from voice_pitch.synth import (
    DEFAULT_PHRASE,
    PhraseNote,
    ToneParameters,
    generate_tone,
    midi_to_hz_array,
    render_phrase,
    vibrato_contour,
)


def test_generate_tone_shape_and_gain():
    tone = generate_tone(ToneParameters(sample_rate=8000, duration=0.5, gain=0.6, seed=0))
    assert tone.dtype == np.float32
    assert tone.size == 4000
    assert np.max(np.abs(tone)) == pytest.approx(0.6, rel=1e-3)


def test_generate_tone_rejects_unknown_waveform():
    with pytest.raises(ValueError):
        generate_tone(ToneParameters(waveform="organ"))


def test_noise_is_reproducible_with_seed():
    params = ToneParameters(duration=0.05, noise_level=0.05, seed=9)
    assert np.array_equal(generate_tone(params), generate_tone(params))


def test_vibrato_contour_stays_within_depth():
    contour = vibrato_contour(440.0, 44100, 44100, rate=5.0, depth_cents=50.0)
    assert contour.max() == pytest.approx(440.0 * 2 ** (50 / 1200), rel=1e-4)
    assert contour.min() == pytest.approx(440.0 * 2 ** (-50 / 1200), rel=1e-4)
    flat = vibrato_contour(440.0, 100, 44100)
    assert np.all(flat == 440.0)


def test_midi_to_hz_array():
    assert np.allclose(midi_to_hz_array(np.array([57, 69, 81])), [220.0, 440.0, 880.0])


def test_default_phrase_has_a_silent_breath():
    sr = 8000
    audio = render_phrase(DEFAULT_PHRASE, sr, noise_level=0.0)
    assert audio.size == int(round(sum(n.duration for n in DEFAULT_PHRASE) * sr))
    rest = audio[int(2.7 * sr) : int(3.0 * sr)]
    sung = audio[int(0.1 * sr) : int(0.5 * sr)]
    assert np.max(np.abs(rest)) < 1e-6
    assert np.max(np.abs(sung)) > 0.1
    assert np.max(np.abs(audio)) <= 0.5 + 1e-6


def test_empty_phrase():
    assert render_phrase([], 8000).size == 0


def test_phrase_of_rests_is_silent():
    audio = render_phrase([PhraseNote(None, 0.2)], 8000)
    assert audio.size == 1600
    assert not np.any(audio)
