"""Time-series to screen mapping for the scrolling pitch trace.

The engine owns the rolling window of pitch samples, the visible semitone
range, the one-shot auto-ranging state and the display mode. It never paints;
:meth:`PitchTraceEngine.produce_frame` returns a :class:`FrameModel` in pixel
coordinates (origin at the top-left corner, y growing downwards) that a
rasterizer can draw directly.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import ClassVar, Optional, Union

import numpy as np

from voice_pitch.notes import NoteReading, hz_to_midi, hz_to_note, note_range
from voice_pitch.pitch_detector import PitchEstimate
from voice_pitch.utils import round_half_up

logger = logging.getLogger(__name__)

MIN_SPAN = 6.0
MAX_SPAN = 120.0
TIME_WINDOW_LIMITS = (5.0, 30.0)
TARGET_FREQUENCY_LIMITS = (50.0, 2000.0)

Point = tuple[float, float]


@dataclass
class EngineConfig:
    """Geometry and behaviour of :class:`PitchTraceEngine`."""

    width: float = 800.0
    height: float = 600.0
    label_width: float = 60.0
    time_window: float = 10.0
    gap_threshold: int = 3
    min_note: float = 48.0  # C3
    max_note: float = 84.0  # C6
    auto_range: bool = True
    auto_range_samples: int = 10
    auto_range_span: float = 36.0
    pan_sensitivity: float = 0.05
    zoom_factor: float = 1.2
    target_frequency: float = 440.0


@dataclass(slots=True)
class Sample:
    frequency: Optional[float]
    timestamp: float

    @property
    def voiced(self) -> bool:
        return self.frequency is not None


@dataclass(slots=True)
class ViewRange:
    """Visible pitch interval in (fractional) MIDI numbers."""

    min_note: float
    max_note: float

    @property
    def span(self) -> float:
        return self.max_note - self.min_note

    @property
    def center(self) -> float:
        return 0.5 * (self.min_note + self.max_note)

    def with_span(self, span: float) -> "ViewRange":
        """Return a range of ``span`` semitones (clamped) around the same centre."""
        span = float(np.clip(span, MIN_SPAN, MAX_SPAN))
        center = self.center
        return ViewRange(center - span / 2.0, center + span / 2.0)


@dataclass(slots=True)
class AutoRangeState:
    enabled: bool = True
    has_ranged: bool = False
    pending_samples: list[float] = field(default_factory=list)

    def reset(self) -> None:
        self.has_ranged = False
        self.pending_samples.clear()


@dataclass(frozen=True, slots=True)
class NormalMode:
    name: ClassVar[str] = "normal"


@dataclass(frozen=True, slots=True)
class TargetMode:
    frequency: float
    name: ClassVar[str] = "target"


@dataclass(frozen=True, slots=True)
class RangeMode:
    """Tracks the lowest and highest voiced frequency since the mode was entered."""

    min_observed: Optional[float] = None
    max_observed: Optional[float] = None
    name: ClassVar[str] = "range"

    def observe(self, frequency: float) -> "RangeMode":
        lo = frequency if self.min_observed is None else min(self.min_observed, frequency)
        hi = frequency if self.max_observed is None else max(self.max_observed, frequency)
        return RangeMode(lo, hi)


DisplayMode = Union[NormalMode, TargetMode, RangeMode]
MODE_NAMES = (NormalMode.name, TargetMode.name, RangeMode.name)


def mode_from_name(name: str, target_frequency: float = 440.0) -> DisplayMode:
    key = name.strip().lower()
    if key == NormalMode.name:
        return NormalMode()
    if key == TargetMode.name:
        return TargetMode(float(target_frequency))
    if key == RangeMode.name:
        return RangeMode()
    raise ValueError(f"Unknown display mode {name!r}. Available: {', '.join(MODE_NAMES)}.")


@dataclass(frozen=True, slots=True)
class GridLine:
    midi_number: int
    name: str
    y: float
    octave_boundary: bool
    label: Optional[str]


@dataclass(frozen=True, slots=True)
class TargetOverlay:
    frequency: float
    y: float
    dash: tuple[float, float] = (10.0, 5.0)


@dataclass(frozen=True, slots=True)
class RangeOverlay:
    min_frequency: float
    max_frequency: float
    y_top: float
    y_bottom: float


Overlay = Union[TargetOverlay, RangeOverlay]


@dataclass(frozen=True, slots=True)
class FrameModel:
    """Everything a rasterizer needs to paint one frame."""

    width: float
    height: float
    plot_left: float
    view: ViewRange
    grid_lines: tuple[GridLine, ...]
    segments: tuple[tuple[Point, ...], ...]
    overlay: Optional[Overlay]
    mode: DisplayMode
    current_note: Optional[NoteReading]
    time_window: float


def _clean_frequency(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    value = float(value)
    if not math.isfinite(value) or value <= 0.0:
        return None
    return value


class PitchTraceEngine:
    """Rolling pitch history, visible range, auto-range and mode overlays."""

    def __init__(self, config: Optional[EngineConfig] = None) -> None:
        if config is None:
            config = EngineConfig()
        self.config = dataclasses.replace(config)

        self.width = float(config.width)
        self.height = float(config.height)
        self.label_width = float(config.label_width)
        self.pan_sensitivity = float(config.pan_sensitivity)
        self.zoom_factor = float(config.zoom_factor)
        self.auto_range_samples = max(1, int(config.auto_range_samples))
        self.auto_range_span = float(np.clip(config.auto_range_span, MIN_SPAN, MAX_SPAN))

        self.time_window = TIME_WINDOW_LIMITS[1]
        self.set_time_window(config.time_window)
        self.gap_threshold = 1
        self.set_gap_threshold(config.gap_threshold)

        view = ViewRange(float(config.min_note), float(config.max_note))
        self.view = view.with_span(view.span)
        self.auto_range = AutoRangeState(enabled=bool(config.auto_range))
        self.samples: deque[Sample] = deque()
        self.mode: DisplayMode = NormalMode()
        self._target_frequency = 440.0
        self.set_target_frequency(config.target_frequency)

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------
    def append(
        self, estimate: Union[PitchEstimate, float, None], timestamp: float
    ) -> None:
        """Record one frame's result at ``timestamp`` (seconds, monotonic)."""

        if isinstance(estimate, PitchEstimate):
            frequency = _clean_frequency(estimate.frequency)
        else:
            frequency = _clean_frequency(estimate)
        timestamp = float(timestamp)
        if self.samples and timestamp < self.samples[-1].timestamp:
            raise ValueError(
                f"timestamp {timestamp} is older than the last sample "
                f"({self.samples[-1].timestamp})"
            )

        if frequency is not None:
            self._feed_auto_range(frequency)
            if isinstance(self.mode, RangeMode):
                self.mode = self.mode.observe(frequency)

        self.samples.append(Sample(frequency, timestamp))
        self._trim(timestamp)

    def _trim(self, now: float) -> None:
        cutoff = now - self.time_window
        while self.samples and self.samples[0].timestamp <= cutoff:
            self.samples.popleft()

    def _feed_auto_range(self, frequency: float) -> None:
        state = self.auto_range
        if not state.enabled or state.has_ranged:
            return
        state.pending_samples.append(frequency)
        if len(state.pending_samples) >= self.auto_range_samples:
            self._perform_auto_range()

    def _perform_auto_range(self) -> None:
        state = self.auto_range
        mean_frequency = float(np.mean(state.pending_samples))
        center = hz_to_midi(mean_frequency)
        half = self.auto_range_span / 2.0
        self.view = ViewRange(
            float(round_half_up(center - half)), float(round_half_up(center + half))
        )
        state.has_ranged = True
        state.pending_samples.clear()
        logger.info(
            "Auto-ranged to %d-%d MIDI (centred on %.0f Hz)",
            self.view.min_note,
            self.view.max_note,
            mean_frequency,
        )

    def clear_data(self) -> None:
        """Drop the history, range accumulators and auto-range progress."""

        self.samples.clear()
        if isinstance(self.mode, RangeMode):
            self.mode = RangeMode()
        self.auto_range.reset()

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------
    @property
    def graph_width(self) -> float:
        return max(self.width - self.label_width, 0.0)

    def frequency_to_y(self, frequency: float) -> float:
        """Vertical pixel position of ``frequency``; not clipped to the view."""

        normalized = (hz_to_midi(frequency) - self.view.min_note) / self.view.span
        return self.height - normalized * self.height

    def timestamp_to_x(self, timestamp: float, now: float) -> float:
        """Horizontal position; ``now`` sits on the right edge."""

        age = (now - timestamp) / self.time_window
        return self.width - age * self.graph_width

    def _grid_lines(self) -> tuple[GridLine, ...]:
        lines = []
        for info in note_range(self.view.min_note, self.view.max_note):
            labelled = "#" not in info.note or info.note == "C#"
            lines.append(
                GridLine(
                    midi_number=info.midi_number,
                    name=info.name,
                    y=self.frequency_to_y(info.frequency),
                    octave_boundary=info.note == "C",
                    label=info.name if labelled else None,
                )
            )
        return tuple(lines)

    def _segments(self, now: float) -> tuple[tuple[Point, ...], ...]:
        # Short unvoiced runs are bridged; a run of gap_threshold breaks the line.
        segments: list[tuple[Point, ...]] = []
        current: list[Point] = []
        consecutive_unvoiced = 0
        for sample in self.samples:
            if sample.frequency is None:
                consecutive_unvoiced += 1
                if consecutive_unvoiced >= self.gap_threshold and current:
                    segments.append(tuple(current))
                    current = []
                continue
            consecutive_unvoiced = 0
            current.append(
                (
                    self.timestamp_to_x(sample.timestamp, now),
                    self.frequency_to_y(sample.frequency),
                )
            )
        if current:
            segments.append(tuple(current))
        return tuple(segments)

    def _overlay(self) -> Optional[Overlay]:
        mode = self.mode
        if isinstance(mode, TargetMode):
            return TargetOverlay(mode.frequency, self.frequency_to_y(mode.frequency))
        if isinstance(mode, RangeMode):
            if mode.min_observed is None or mode.max_observed is None:
                return None
            return RangeOverlay(
                min_frequency=mode.min_observed,
                max_frequency=mode.max_observed,
                y_top=self.frequency_to_y(mode.max_observed),
                y_bottom=self.frequency_to_y(mode.min_observed),
            )
        return None

    def produce_frame(self, now: float) -> FrameModel:
        """Build the draw model for time ``now`` (same clock as ``append``)."""

        latest = self.samples[-1].frequency if self.samples else None
        return FrameModel(
            width=self.width,
            height=self.height,
            plot_left=self.label_width,
            view=ViewRange(self.view.min_note, self.view.max_note),
            grid_lines=self._grid_lines(),
            segments=self._segments(float(now)),
            overlay=self._overlay(),
            mode=self.mode,
            current_note=hz_to_note(latest),
            time_window=self.time_window,
        )

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------
    def zoom(self, delta: float) -> None:
        """Positive ``delta`` widens the view (zoom out), negative narrows it."""

        self.view = self.view.with_span(self.view.span * self.zoom_factor ** float(delta))

    def pan(self, delta_pixels: float) -> None:
        """Shift the view; positive deltas move the content down."""

        if self.height <= 0.0:
            return
        shift = (float(delta_pixels) / self.height) * self.view.span * self.pan_sensitivity
        self.view = ViewRange(self.view.min_note - shift, self.view.max_note - shift)

    def set_time_window(self, seconds: float) -> None:
        self.time_window = float(np.clip(seconds, *TIME_WINDOW_LIMITS))

    def set_gap_threshold(self, count: float) -> None:
        self.gap_threshold = max(1, round_half_up(count))

    def set_auto_range(self, enabled: bool) -> None:
        self.auto_range.enabled = bool(enabled)
        if not enabled:
            self.auto_range.pending_samples.clear()

    def set_target_frequency(self, frequency: float) -> None:
        frequency = float(frequency)
        if math.isnan(frequency):
            raise ValueError("target frequency must be a number.")
        self._target_frequency = float(np.clip(frequency, *TARGET_FREQUENCY_LIMITS))
        if isinstance(self.mode, TargetMode):
            self.mode = TargetMode(self._target_frequency)

    @property
    def target_frequency(self) -> float:
        return self._target_frequency

    def set_mode(self, mode: Union[DisplayMode, str]) -> None:
        """Switch display mode.

        Any switch re-arms auto-ranging. Entering ``RangeMode`` also clears the
        history and starts fresh min/max accumulators.
        """

        if isinstance(mode, str):
            mode = mode_from_name(mode, self._target_frequency)
        switching = type(mode) is not type(self.mode)

        if isinstance(mode, TargetMode):
            self.set_target_frequency(mode.frequency)
            mode = TargetMode(self._target_frequency)
        elif isinstance(mode, RangeMode):
            mode = RangeMode()
            self.samples.clear()

        if switching or isinstance(mode, RangeMode):
            self.auto_range.reset()
        self.mode = mode
        logger.info("Display mode set to %s", mode.name)

    def resize(self, width: float, height: float) -> None:
        self.width = max(float(width), 0.0)
        self.height = max(float(height), 0.0)


__all__ = [
    "MIN_SPAN",
    "MAX_SPAN",
    "TIME_WINDOW_LIMITS",
    "EngineConfig",
    "Sample",
    "ViewRange",
    "AutoRangeState",
    "NormalMode",
    "TargetMode",
    "RangeMode",
    "DisplayMode",
    "MODE_NAMES",
    "mode_from_name",
    "GridLine",
    "TargetOverlay",
    "RangeOverlay",
    "FrameModel",
    "PitchTraceEngine",
]
