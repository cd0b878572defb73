from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from voice_pitch.pitch_detector import (
    UNVOICED,
    AudioFrame,
    PitchDetector,
    PitchDetectorConfig,
    absolute_threshold,
    cumulative_mean_normalized_difference,
    difference_function,
    parabolic_interpolation,
)
from voice_pitch.synth import ToneParameters, generate_tone

SR = 44100
N = 4096


def _tone(frequency: float, *, sample_rate: int = SR, size: int = N, **overrides) -> np.ndarray:
    params = ToneParameters(
        sample_rate=sample_rate,
        duration=0.25,
        frequency=frequency,
        seed=7,
    )
    for key, value in overrides.items():
        setattr(params, key, value)
    return generate_tone(params)[:size]


def _brute_force_difference(x: np.ndarray) -> np.ndarray:
    width = x.size // 2
    out = np.zeros(width)
    for tau in range(width):
        delta = x[:width] - x[tau : tau + width]
        out[tau] = np.sum(delta * delta)
    return out


def test_difference_function_matches_direct_sum():
    rng = np.random.default_rng(3)
    x = rng.uniform(-1.0, 1.0, size=96)
    assert np.allclose(difference_function(x), _brute_force_difference(x), atol=1e-9)


def test_difference_function_odd_length_uses_floor_half():
    rng = np.random.default_rng(4)
    x = rng.uniform(-1.0, 1.0, size=51)
    diff = difference_function(x)
    assert diff.size == 25
    assert np.allclose(diff, _brute_force_difference(x), atol=1e-9)


def test_cmndf_normalises_by_running_mean():
    diff = np.array([0.0, 2.0, 4.0, 1.0])
    cmndf = cumulative_mean_normalized_difference(diff)
    assert cmndf[0] == 1.0
    assert cmndf[1] == pytest.approx(2.0 / (2.0 / 1))
    assert cmndf[2] == pytest.approx(4.0 / (6.0 / 2))
    assert cmndf[3] == pytest.approx(1.0 / (7.0 / 3))


def test_cmndf_of_silence_is_flat():
    cmndf = cumulative_mean_normalized_difference(np.zeros(16))
    assert np.all(cmndf == 1.0)


def test_absolute_threshold_walks_to_dip_bottom():
    cmndf = np.array([1.0, 0.9, 0.08, 0.05, 0.03, 0.06, 0.5])
    assert absolute_threshold(cmndf, 0.1, min_tau=1) == 4


def test_absolute_threshold_respects_min_tau_and_misses():
    cmndf = np.array([1.0, 0.02, 0.9, 0.9, 0.5])
    assert absolute_threshold(cmndf, 0.1, min_tau=2) is None
    assert absolute_threshold(cmndf, 0.1, min_tau=1) == 1
    assert absolute_threshold(cmndf, 0.1, min_tau=10) is None


def test_parabolic_interpolation_recovers_vertex():
    xs = np.arange(5, dtype=np.float64)
    cmndf = (xs - 2.3) ** 2
    assert parabolic_interpolation(cmndf, 2) == pytest.approx(2.3)


def test_parabolic_interpolation_skips_edges():
    cmndf = np.array([0.5, 0.2, 0.4])
    assert parabolic_interpolation(cmndf, 0) == 0.0
    assert parabolic_interpolation(cmndf, 2) == 2.0


@pytest.mark.parametrize("frequency", [55.0, 98.0, 220.0, 440.0, 880.0, 1318.5, 1760.0])
def test_sine_within_one_percent(frequency):
    detector = PitchDetector(SR)
    estimate = detector.analyze(_tone(frequency))
    assert estimate.voiced
    assert estimate.frequency == pytest.approx(frequency, rel=0.01)
    assert estimate.period == pytest.approx(SR / estimate.frequency)
    assert 0.0 <= estimate.confidence <= 1.0


def test_harmonic_tone_reports_fundamental():
    detector = PitchDetector(SR)
    estimate = detector.analyze(_tone(196.0, waveform="triangle", num_partials=9))
    assert estimate.frequency == pytest.approx(196.0, rel=0.01)


def test_audio_frame_sample_rate_is_used():
    detector = PitchDetector(SR)
    frame = AudioFrame(_tone(300.0, sample_rate=22050, size=2048), 22050.0)
    estimate = detector.analyze(frame)
    assert estimate.frequency == pytest.approx(300.0, rel=0.01)


def test_silence_is_unvoiced():
    detector = PitchDetector(SR)
    assert detector.detect_pitch(np.zeros(N, dtype=np.float32)) == UNVOICED


def test_white_noise_is_unvoiced():
    rng = np.random.default_rng(11)
    noise = np.clip(rng.normal(0.0, 0.3, size=N), -1.0, 1.0)
    detector = PitchDetector(SR)
    assert not detector.detect_pitch(noise).voiced


def test_buffer_shorter_than_min_period_is_unvoiced():
    detector = PitchDetector(SR)
    assert not detector.analyze(_tone(440.0, size=40)).voiced


def test_odd_length_frame_still_detects():
    detector = PitchDetector(SR)
    estimate = detector.analyze(_tone(330.0, size=N + 1))
    assert estimate.frequency == pytest.approx(330.0, rel=0.01)


def test_plausibility_filter_rejects_low_pitch():
    detector = PitchDetector(SR)
    assert not detector.analyze(_tone(40.0, size=8192)).voiced


def test_exponential_smoothing_uses_previous_smoothed_value():
    detector = PitchDetector(SR)
    first = detector.detect_pitch(_tone(220.0))
    assert first.frequency == pytest.approx(first.raw_frequency)

    second = detector.detect_pitch(_tone(440.0))
    expected = first.frequency * 0.3 + second.raw_frequency * 0.7
    assert second.frequency == pytest.approx(expected)
    assert detector.last_smoothed_frequency == pytest.approx(expected)

    third = detector.detect_pitch(_tone(440.0))
    assert third.frequency == pytest.approx(expected * 0.3 + third.raw_frequency * 0.7)


def test_unvoiced_frames_keep_smoothing_state():
    detector = PitchDetector(SR)
    detector.detect_pitch(_tone(220.0))
    before = detector.last_smoothed_frequency
    detector.detect_pitch(np.zeros(N))
    detector.detect_pitch(np.zeros(N))
    assert detector.last_smoothed_frequency == before

    resumed = detector.detect_pitch(_tone(440.0))
    assert resumed.frequency == pytest.approx(before * 0.3 + resumed.raw_frequency * 0.7)


def test_long_silence_clears_smoothing_state():
    detector = PitchDetector(SR, PitchDetectorConfig(reset_after_unvoiced=3))
    detector.detect_pitch(_tone(220.0))
    detector.mark_unvoiced()
    detector.mark_unvoiced()
    assert detector.last_smoothed_frequency is not None
    detector.mark_unvoiced()
    assert detector.last_smoothed_frequency is None


def test_silence_policy_can_be_disabled():
    detector = PitchDetector(SR, PitchDetectorConfig(reset_after_unvoiced=None))
    detector.detect_pitch(_tone(220.0))
    for _ in range(500):
        detector.mark_unvoiced()
    assert detector.last_smoothed_frequency is not None


def test_reset_clears_state():
    detector = PitchDetector(SR)
    detector.detect_pitch(_tone(220.0))
    detector.reset()
    assert detector.last_smoothed_frequency is None
    fresh = detector.detect_pitch(_tone(440.0))
    assert fresh.frequency == pytest.approx(fresh.raw_frequency)


def test_threshold_change_keeps_smoothing_state():
    detector = PitchDetector(SR)
    detector.detect_pitch(_tone(220.0))
    before = detector.last_smoothed_frequency
    detector.threshold = 0.0
    assert not detector.detect_pitch(_tone(220.0)).voiced
    assert detector.last_smoothed_frequency == before


def test_sensitivity_mapping():
    detector = PitchDetector(SR)
    assert detector.set_sensitivity(-120.0) == pytest.approx(0.30)
    assert detector.set_sensitivity(-40.0) == pytest.approx(0.05)
    assert detector.set_sensitivity(-80.0) == pytest.approx(0.175)
    assert detector.sensitivity_db == pytest.approx(-80.0)
    assert detector.set_sensitivity(0.0) == pytest.approx(0.05)
    assert detector.set_sensitivity(-500.0) == pytest.approx(0.30)


def test_smoothing_factor_is_clamped():
    detector = PitchDetector(SR)
    detector.smoothing_factor = 1.5
    assert detector.smoothing_factor == 1.0
    detector.smoothing_factor = -0.2
    assert detector.smoothing_factor == 0.0


def test_invalid_sample_rate():
    with pytest.raises(ValueError):
        PitchDetector(0)
