"""Matplotlib window that paints the pitch trace draw model in real time."""

from __future__ import annotations

import logging
from typing import Optional

import matplotlib.pyplot as plt
from matplotlib.collections import LineCollection
from matplotlib.patches import Rectangle

from voice_pitch.engine import (
    FrameModel,
    NormalMode,
    RangeMode,
    RangeOverlay,
    TargetMode,
    TargetOverlay,
)
from voice_pitch.notes import parse_note_string
from voice_pitch.pipeline import PitchTracePipeline

logger = logging.getLogger(__name__)

COLORS = {
    "background": "#0a0a0a",
    "grid": (1.0, 1.0, 1.0, 0.08),
    "grid_bold": (1.0, 1.0, 1.0, 0.15),
    "pitch_line": "#00ff88",
    "target_line": "#00d4ff",
    "range_zone": (0.0, 0.83, 1.0, 0.15),
    "note_label": (1.0, 1.0, 1.0, 0.7),
}

TARGET_NOTES = ("C4", "D4", "E4", "F4", "G4", "A4", "B4", "C5")
MODE_CYCLE = ("normal", "target", "range")


class PitchTraceView:
    """Interactive scrolling pitch trace.

    Keyboard:
      q / escape  quit           p  pause/resume
      + / -       zoom out/in    up / down  pan
      m           cycle mode     t  next target note
      c           clear trace    [ / ]  shorter/longer time window
      , / .       gap tolerance  z / x  less/more sensitive
    Mouse wheel zooms; shift + wheel pans.
    """

    def __init__(self, pipeline: PitchTracePipeline, interval_ms: int = 16) -> None:
        self.pipeline = pipeline
        self.engine = pipeline.engine
        self.interval_ms = int(interval_ms)
        self.paused = False
        self._target_index = TARGET_NOTES.index("A4")

        width = self.engine.width
        height = self.engine.height
        self.fig = plt.figure(figsize=(width / 100.0, height / 100.0), dpi=100)
        self.fig.patch.set_facecolor(COLORS["background"])
        self.ax = self.fig.add_axes((0.0, 0.0, 1.0, 0.94))
        self.ax.set_facecolor(COLORS["background"])
        self.ax.set_axis_off()
        self._set_limits()

        self.grid = LineCollection([], linewidths=0.5, colors=[COLORS["grid"]])
        self.ax.add_collection(self.grid)
        self.trace = LineCollection(
            [],
            linewidths=3.0,
            colors=COLORS["pitch_line"],
            capstyle="round",
            joinstyle="round",
        )
        self.ax.add_collection(self.trace)
        (self.target_line,) = self.ax.plot(
            [], [], color=COLORS["target_line"], lw=2.0, dashes=(10, 5)
        )
        self.range_zone = Rectangle(
            (0.0, 0.0), 0.0, 0.0, facecolor=COLORS["range_zone"], edgecolor="none"
        )
        self.range_zone.set_visible(False)
        self.ax.add_patch(self.range_zone)
        self.labels: list = []
        self.title = self.fig.suptitle("", color="white", fontsize=11)

        self.fig.canvas.mpl_connect("key_press_event", self.on_key)
        self.fig.canvas.mpl_connect("scroll_event", self.on_scroll)
        self.fig.canvas.mpl_connect("resize_event", self.on_resize)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _set_limits(self) -> None:
        self.ax.set_xlim(0.0, self.engine.width)
        self.ax.set_ylim(self.engine.height, 0.0)

    def on_resize(self, event) -> None:
        if event.width and event.height:
            self.engine.resize(event.width, event.height * 0.94)
            self._set_limits()

    def on_scroll(self, event) -> None:
        if event.key == "shift":
            self.engine.pan(-event.step * 10.0)
        else:
            self.engine.zoom(-1.0 if event.step > 0 else 1.0)

    def on_key(self, event) -> None:
        key = event.key
        engine = self.engine
        if key in ("q", "escape"):
            plt.close(self.fig)
        elif key == "p":
            self.paused = not self.paused
        elif key in ("+", "="):
            engine.zoom(1.0)
        elif key == "-":
            engine.zoom(-1.0)
        elif key == "up":
            engine.pan(engine.height * 0.5)
        elif key == "down":
            engine.pan(-engine.height * 0.5)
        elif key == "m":
            self.cycle_mode()
        elif key == "t":
            self.next_target()
        elif key == "c":
            self.pipeline.reset_session()
        elif key == "[":
            engine.set_time_window(engine.time_window - 5.0)
        elif key == "]":
            engine.set_time_window(engine.time_window + 5.0)
        elif key == ",":
            engine.set_gap_threshold(engine.gap_threshold - 1)
        elif key == ".":
            engine.set_gap_threshold(engine.gap_threshold + 1)
        elif key in ("z", "x"):
            detector = self.pipeline.detector
            step = -5.0 if key == "z" else 5.0
            threshold = detector.set_sensitivity(detector.sensitivity_db + step)
            logger.info("YIN threshold set to %.3f", threshold)

    def cycle_mode(self) -> None:
        current = MODE_CYCLE.index(self.engine.mode.name)
        self.engine.set_mode(MODE_CYCLE[(current + 1) % len(MODE_CYCLE)])

    def next_target(self) -> None:
        self._target_index = (self._target_index + 1) % len(TARGET_NOTES)
        note = TARGET_NOTES[self._target_index]
        self.engine.set_target_frequency(parse_note_string(note))
        logger.info("Target note %s", note)

    # ------------------------------------------------------------------
    # Painting
    # ------------------------------------------------------------------
    def _describe(self, model: FrameModel) -> str:
        parts = []
        reading = model.current_note
        if reading is not None:
            parts.append(
                f"{reading.name} {reading.cents:+d}¢  {reading.frequency:6.1f} Hz"
            )
        else:
            parts.append("--")
        mode = model.mode
        if isinstance(mode, TargetMode):
            parts.append(f"target {mode.frequency:.1f} Hz")
        elif isinstance(mode, RangeMode):
            if mode.min_observed is not None and mode.max_observed is not None:
                parts.append(f"range {mode.min_observed:.0f}-{mode.max_observed:.0f} Hz")
            else:
                parts.append("range")
        elif isinstance(mode, NormalMode):
            parts.append("normal")
        parts.append(f"{model.time_window:.0f}s")
        if self.paused:
            parts.append("PAUSED")
        return "  |  ".join(parts)

    def render(self, model: FrameModel) -> None:
        left, right = model.plot_left, model.width

        self.grid.set_segments([[(left, g.y), (right, g.y)] for g in model.grid_lines])
        self.grid.set_color(
            [COLORS["grid_bold"] if g.octave_boundary else COLORS["grid"] for g in model.grid_lines]
        )
        self.grid.set_linewidth([1.5 if g.octave_boundary else 0.5 for g in model.grid_lines])

        for text in self.labels:
            text.remove()
        self.labels = [
            self.ax.text(
                left - 10.0,
                g.y,
                g.label,
                color=COLORS["note_label"],
                fontsize=8,
                family="monospace",
                ha="right",
                va="center",
            )
            for g in model.grid_lines
            if g.label is not None and 0.0 <= g.y <= model.height
        ]

        self.trace.set_segments([list(segment) for segment in model.segments])

        overlay = model.overlay
        if isinstance(overlay, TargetOverlay):
            self.target_line.set_data([left, right], [overlay.y, overlay.y])
            self.target_line.set_visible(True)
        else:
            self.target_line.set_visible(False)
        if isinstance(overlay, RangeOverlay):
            self.range_zone.set_bounds(
                left, overlay.y_top, right - left, overlay.y_bottom - overlay.y_top
            )
            self.range_zone.set_visible(True)
        else:
            self.range_zone.set_visible(False)

        self.title.set_text(self._describe(model))
        self.fig.canvas.draw_idle()

    def update(self, now: Optional[float] = None) -> FrameModel:
        """Run one pipeline tick and paint the result."""

        model = self.pipeline.tick(now)
        self.render(model)
        return model

    def run(self) -> None:
        self.pipeline.source.start()
        try:

            def _on_timer(_):
                if self.paused:
                    return
                self.update()

            timer = self.fig.canvas.new_timer(interval=self.interval_ms)
            timer.add_callback(_on_timer, None)
            timer.start()
            plt.show()
        finally:
            self.pipeline.source.stop()


__all__ = ["COLORS", "TARGET_NOTES", "MODE_CYCLE", "PitchTraceView"]
