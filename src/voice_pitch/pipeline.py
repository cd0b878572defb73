"""Per-tick driver tying an audio source, the detector and the engine together."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from voice_pitch.audio_sources import AudioSource
from voice_pitch.engine import FrameModel, PitchTraceEngine
from voice_pitch.pitch_detector import UNVOICED, PitchDetector, PitchEstimate
from voice_pitch.utils import dbfs, rms

logger = logging.getLogger(__name__)

DEFAULT_NOISE_THRESHOLD = 0.005


class PitchTracePipeline:
    """Run one acquisition, estimation and draw-model step per display refresh.

    A missing frame and a frame whose RMS level is below ``noise_threshold``
    are both recorded as unvoiced.
    """

    def __init__(
        self,
        source: AudioSource,
        detector: PitchDetector,
        engine: PitchTraceEngine,
        noise_threshold: float = DEFAULT_NOISE_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.detector = detector
        self.engine = engine
        self.noise_threshold = float(noise_threshold)
        self.clock = clock
        self.last_estimate: PitchEstimate = UNVOICED
        self.level_db = float("-inf")
        self.frames_seen = 0

    def step(self, now: Optional[float] = None) -> PitchEstimate:
        """Acquire and analyse one frame, appending the result at ``now``."""

        if now is None:
            now = self.clock()
        frame = self.source.get_frame()
        estimate = UNVOICED
        if frame is None:
            self.detector.mark_unvoiced()
        else:
            level = rms(frame.samples)
            self.level_db = float(dbfs(level))
            if level > self.noise_threshold:
                estimate = self.detector.detect_pitch(frame)
            else:
                self.detector.mark_unvoiced()
            self.frames_seen += 1
        self.engine.append(estimate, now)
        self.last_estimate = estimate
        return estimate

    def tick(self, now: Optional[float] = None) -> FrameModel:
        if now is None:
            now = self.clock()
        self.step(now)
        return self.engine.produce_frame(now)

    def reset_session(self) -> None:
        """Forget smoothing state and history, e.g. when a new take starts."""

        self.detector.reset()
        self.engine.clear_data()
        self.last_estimate = UNVOICED
        logger.info("Session reset")


__all__ = ["DEFAULT_NOISE_THRESHOLD", "PitchTracePipeline"]
