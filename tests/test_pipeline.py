from pathlib import Path
import sys

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from voice_pitch.engine import EngineConfig, PitchTraceEngine
from voice_pitch.pipeline import PitchTracePipeline
from voice_pitch.pitch_detector import AudioFrame, PitchDetector
from voice_pitch.synth import ToneParameters, generate_tone

SR = 44100
N = 4096


class _ScriptedSource:
    """Returns queued frames, then ``None`` once the script runs out."""

    def __init__(self, frames):
        self.frames = list(frames)
        self.sample_rate = float(SR)

    def get_frame(self):
        if not self.frames:
            return None
        return self.frames.pop(0)


def _frame(frequency, gain=0.8):
    params = ToneParameters(
        sample_rate=SR, duration=0.1, frequency=frequency, gain=gain, seed=5
    )
    return AudioFrame(generate_tone(params)[:N], float(SR))


def _pipeline(frames, **engine_overrides):
    engine = PitchTraceEngine(EngineConfig(**engine_overrides))
    return PitchTracePipeline(_ScriptedSource(frames), PitchDetector(SR), engine)


def test_missing_frame_is_unvoiced():
    pipeline = _pipeline([])
    estimate = pipeline.step(0.0)
    assert not estimate.voiced
    assert pipeline.frames_seen == 0
    assert [s.voiced for s in pipeline.engine.samples] == [False]


def test_quiet_frame_is_gated():
    quiet = AudioFrame(np.full(N, 0.001, dtype=np.float32), float(SR))
    pipeline = _pipeline([quiet])
    estimate = pipeline.step(0.0)
    assert not estimate.voiced
    assert pipeline.frames_seen == 1
    assert pipeline.level_db == pytest.approx(-60.0, abs=0.1)


def test_loud_frame_is_detected_and_appended():
    pipeline = _pipeline([_frame(220.0)])
    estimate = pipeline.step(1.0)
    assert estimate.frequency == pytest.approx(220.0, rel=0.01)
    assert pipeline.last_estimate is estimate
    sample = pipeline.engine.samples[-1]
    assert sample.timestamp == 1.0
    assert sample.frequency == estimate.frequency


def test_gated_frames_count_towards_silence_reset():
    quiet = AudioFrame(np.zeros(N, dtype=np.float32), float(SR))
    engine = PitchTraceEngine()
    detector = PitchDetector(SR)
    detector.reset_after_unvoiced = 2
    pipeline = PitchTracePipeline(
        _ScriptedSource([_frame(220.0), quiet, quiet]), detector, engine
    )
    pipeline.step(0.0)
    pipeline.step(0.1)
    assert detector.last_smoothed_frequency is not None
    pipeline.step(0.2)
    assert detector.last_smoothed_frequency is None


def test_ticks_auto_range_and_draw_a_line():
    pipeline = _pipeline([_frame(220.0) for _ in range(10)])
    model = None
    for i in range(10):
        model = pipeline.tick(i / 60.0)
    assert pipeline.engine.auto_range.has_ranged
    assert (model.view.min_note, model.view.max_note) == (39.0, 75.0)
    assert len(model.segments) == 1
    assert len(model.segments[0]) == 10
    assert model.current_note.name == "A3"


def test_tick_uses_injected_clock():
    times = iter([2.0, 2.5])
    pipeline = _pipeline([_frame(330.0), _frame(330.0)])
    pipeline.clock = lambda: next(times)
    pipeline.tick()
    pipeline.tick()
    assert [s.timestamp for s in pipeline.engine.samples] == [2.0, 2.5]


def test_reset_session_clears_detector_and_engine():
    pipeline = _pipeline([_frame(220.0) for _ in range(3)])
    for i in range(3):
        pipeline.tick(float(i))
    pipeline.reset_session()
    assert not pipeline.engine.samples
    assert pipeline.detector.last_smoothed_frequency is None
    assert not pipeline.last_estimate.voiced
