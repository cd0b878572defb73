"""Command-line entrypoint for the live pitch trace."""

from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path

from voice_pitch.audio_sources import (
    AudioSource,
    DemoSource,
    FileSource,
    MicSource,
    list_devices,
    sd,
)
from voice_pitch.config import PitchTraceConfig, load_config
from voice_pitch.engine import MODE_NAMES, PitchTraceEngine
from voice_pitch.notes import parse_note_string
from voice_pitch.pipeline import PitchTracePipeline
from voice_pitch.pitch_detector import PitchDetector

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Scrolling pitch trace for vocal practice (microphone to screen)"
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="JSON file overriding the defaults"
    )
    parser.add_argument("--device", type=str, default=None, help="Input device")
    parser.add_argument(
        "--list-devices", action="store_true", help="List audio devices and exit"
    )
    parser.add_argument("--demo", action="store_true", help="Use a synthetic singer")
    parser.add_argument("--input", type=Path, default=None, help="Stream a WAV file")
    parser.add_argument("--samplerate", type=int, default=None)
    parser.add_argument("--frame-size", type=int, default=None)
    parser.add_argument("--threshold", type=float, default=None, help="YIN threshold")
    parser.add_argument("--smoothing", type=float, default=None)
    parser.add_argument("--noise-threshold", type=float, default=None)
    parser.add_argument("--time-window", type=float, default=None)
    parser.add_argument("--gap", type=int, default=None, help="Gap tolerance (frames)")
    parser.add_argument("--mode", choices=MODE_NAMES, default=None)
    parser.add_argument("--target", type=str, default=None, help="Target note, e.g. G4")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PitchTraceConfig:
    config = load_config(args.config)
    detector = config.detector
    engine = config.engine
    overrides = {}
    if args.samplerate is not None:
        overrides["sample_rate"] = args.samplerate
    if args.frame_size is not None:
        overrides["frame_size"] = args.frame_size
    if args.noise_threshold is not None:
        overrides["noise_threshold"] = args.noise_threshold
    if args.mode is not None:
        overrides["mode"] = args.mode
    if args.target is not None:
        overrides["target_note"] = args.target
    if args.threshold is not None:
        detector = dataclasses.replace(detector, threshold=args.threshold)
    if args.smoothing is not None:
        detector = dataclasses.replace(detector, smoothing_factor=args.smoothing)
    if args.time_window is not None:
        engine = dataclasses.replace(engine, time_window=args.time_window)
    if args.gap is not None:
        engine = dataclasses.replace(engine, gap_threshold=args.gap)
    return dataclasses.replace(config, detector=detector, engine=engine, **overrides)


def create_source(args: argparse.Namespace, config: PitchTraceConfig) -> AudioSource:
    if args.input is not None:
        return FileSource(args.input, config.frame_size, config.hop)
    if args.demo or sd is None:
        return DemoSource(config.sample_rate, config.frame_size, config.hop)
    try:
        return MicSource(
            config.sample_rate, config.frame_size, config.hop, device=args.device
        )
    except Exception as exc:  # pragma: no cover - interactive fallback
        logger.warning("Could not initialize microphone input: %s", exc)
        logger.warning(
            "Falling back to demo mode. Use --device to select input or install sounddevice."
        )
        return DemoSource(config.sample_rate, config.frame_size, config.hop)


def build_pipeline(
    config: PitchTraceConfig, source: AudioSource
) -> PitchTracePipeline:
    detector = PitchDetector(source.sample_rate, config.detector)
    engine = PitchTraceEngine(config.engine)
    engine.set_target_frequency(parse_note_string(config.target_note))
    if config.mode != "normal":
        engine.set_mode(config.mode)
    return PitchTracePipeline(
        source, detector, engine, noise_threshold=config.noise_threshold
    )


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    if args.list_devices:
        try:
            print(list_devices())
        except RuntimeError as exc:
            logger.error("Cannot list audio devices: %s", exc)
        return

    from voice_pitch.renderer import PitchTraceView

    config = build_config(args)
    source = create_source(args, config)
    pipeline = build_pipeline(config, source)
    view = PitchTraceView(pipeline, interval_ms=config.interval_ms)
    view.run()


__all__ = ["parse_args", "build_config", "create_source", "build_pipeline", "main"]
