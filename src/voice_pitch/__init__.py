"""Live pitch estimation and scrolling pitch-trace visualisation."""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "AudioFrame",
    "PitchEstimate",
    "PitchDetector",
    "PitchDetectorConfig",
    "PitchTraceEngine",
    "EngineConfig",
    "FrameModel",
    "PitchTracePipeline",
    "PitchTraceConfig",
    "AudioSource",
    "DemoSource",
    "FileSource",
    "MicSource",
    "hz_to_midi",
    "midi_to_hz",
    "hz_to_note",
    "note_range",
    "main",
]

_EXPORT_MAP = {
    "AudioFrame": ("voice_pitch.pitch_detector", "AudioFrame"),
    "PitchEstimate": ("voice_pitch.pitch_detector", "PitchEstimate"),
    "PitchDetector": ("voice_pitch.pitch_detector", "PitchDetector"),
    "PitchDetectorConfig": ("voice_pitch.pitch_detector", "PitchDetectorConfig"),
    "PitchTraceEngine": ("voice_pitch.engine", "PitchTraceEngine"),
    "EngineConfig": ("voice_pitch.engine", "EngineConfig"),
    "FrameModel": ("voice_pitch.engine", "FrameModel"),
    "PitchTracePipeline": ("voice_pitch.pipeline", "PitchTracePipeline"),
    "PitchTraceConfig": ("voice_pitch.config", "PitchTraceConfig"),
    "AudioSource": ("voice_pitch.audio_sources", "AudioSource"),
    "DemoSource": ("voice_pitch.audio_sources", "DemoSource"),
    "FileSource": ("voice_pitch.audio_sources", "FileSource"),
    "MicSource": ("voice_pitch.audio_sources", "MicSource"),
    "hz_to_midi": ("voice_pitch.notes", "hz_to_midi"),
    "midi_to_hz": ("voice_pitch.notes", "midi_to_hz"),
    "hz_to_note": ("voice_pitch.notes", "hz_to_note"),
    "note_range": ("voice_pitch.notes", "note_range"),
    "main": ("voice_pitch.cli", "main"),
}


if TYPE_CHECKING:  # pragma: no cover - only for type checkers
    from voice_pitch.audio_sources import AudioSource, DemoSource, FileSource, MicSource
    from voice_pitch.cli import main
    from voice_pitch.config import PitchTraceConfig
    from voice_pitch.engine import EngineConfig, FrameModel, PitchTraceEngine
    from voice_pitch.notes import hz_to_midi, hz_to_note, midi_to_hz, note_range
    from voice_pitch.pipeline import PitchTracePipeline
    from voice_pitch.pitch_detector import (
        AudioFrame,
        PitchDetector,
        PitchDetectorConfig,
        PitchEstimate,
    )


def __getattr__(name: str) -> Any:
    """Lazily import heavy submodules on demand."""

    if name in _EXPORT_MAP:
        module_name, attribute = _EXPORT_MAP[name]
        module = import_module(module_name)
        value = getattr(module, attribute)
        globals()[name] = value
        return value
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(__all__))
