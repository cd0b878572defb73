"""Configuration loaded from JSON for pitch trace sessions."""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict

from voice_pitch.engine import EngineConfig
from voice_pitch.pitch_detector import PitchDetectorConfig

DEFAULT_CONFIG_NAME = "pitch_trace_config.json"

_DETECTOR_ALIASES = {
    "yin_threshold": "threshold",
    "threshold": "threshold",
    "smoothing_factor": "smoothing_factor",
    "max_search_frequency": "max_frequency",
    "min_voice_frequency": "min_voice_frequency",
    "max_voice_frequency": "max_voice_frequency",
    "reset_after_unvoiced": "reset_after_unvoiced",
}

_ENGINE_ALIASES = {
    "time_window": "time_window",
    "time_window_sec": "time_window",
    "gap_threshold": "gap_threshold",
    "gap_tolerance": "gap_threshold",
    "min_note": "min_note",
    "max_note": "max_note",
    "auto_range": "auto_range",
    "auto_range_samples": "auto_range_samples",
    "pan_sensitivity": "pan_sensitivity",
    "target_frequency": "target_frequency",
    "width": "width",
    "height": "height",
}


def _known(cls: type, data: Dict[str, Any]) -> Dict[str, Any]:
    names = {f.name for f in dataclasses.fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclasses.dataclass
class PitchTraceConfig:
    """Session configuration: acquisition, estimator and view settings."""

    sample_rate: int = 44100
    frame_size: int = 8192
    frames_per_second: float = 60.0
    noise_threshold: float = 0.005
    mode: str = "normal"
    target_note: str = "A4"
    detector: PitchDetectorConfig = dataclasses.field(
        default_factory=PitchDetectorConfig
    )
    engine: EngineConfig = dataclasses.field(default_factory=EngineConfig)

    @property
    def hop(self) -> int:
        """Samples between successive frames at the configured refresh rate."""
        return max(1, int(round(self.sample_rate / max(self.frames_per_second, 1.0))))

    @property
    def interval_ms(self) -> int:
        """Display refresh period in milliseconds."""
        return max(1, int(1000 / max(self.frames_per_second, 1.0)))

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "PitchTraceConfig":
        normalized = dict(raw)

        detector_data: Dict[str, Any] = {}
        detector_raw = normalized.pop("detector", None)
        if isinstance(detector_raw, dict):
            detector_data.update(detector_raw)

        engine_data: Dict[str, Any] = {}
        engine_raw = normalized.pop("engine", None)
        if isinstance(engine_raw, dict):
            engine_data.update(engine_raw)

        for legacy_key, new_key in _DETECTOR_ALIASES.items():
            if legacy_key in normalized:
                detector_data[new_key] = normalized.pop(legacy_key)
        for legacy_key, new_key in _ENGINE_ALIASES.items():
            if legacy_key in normalized:
                engine_data[new_key] = normalized.pop(legacy_key)

        filtered = _known(PitchTraceConfig, normalized)
        filtered["detector"] = PitchDetectorConfig(
            **_known(PitchDetectorConfig, detector_data)
        )
        filtered["engine"] = EngineConfig(**_known(EngineConfig, engine_data))
        return PitchTraceConfig(**filtered)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def default_config_path() -> Path:
    return Path(__file__).with_name(DEFAULT_CONFIG_NAME)


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> PitchTraceConfig:
    """Load the packaged defaults, with ``path`` (if given) layered on top.

    A user file only needs the keys it changes; nested ``detector`` and
    ``engine`` sections are merged key by key.
    """

    data = _read_json(default_config_path())
    if path is not None:
        data = _merge(data, _read_json(Path(path)))
    return PitchTraceConfig.from_dict(data)


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "PitchTraceConfig",
    "default_config_path",
    "load_config",
]
