from pathlib import Path
import json
import logging
import sys

import matplotlib
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from voice_pitch import audio_sources, cli
from voice_pitch.audio_sources import DemoSource, FileSource
from voice_pitch.engine import RangeMode, TargetMode
from voice_pitch.notes import parse_note_string
from voice_pitch.synth import ToneParameters, generate_tone, write_wav


def test_defaults_come_from_packaged_config():
    config = cli.build_config(cli.parse_args([]))
    assert config.sample_rate == 44100
    assert config.detector.threshold == pytest.approx(0.1)
    assert config.engine.gap_threshold == 3


def test_command_line_overrides():
    args = cli.parse_args(
        [
            "--samplerate",
            "48000",
            "--frame-size",
            "4096",
            "--threshold",
            "0.2",
            "--smoothing",
            "0.5",
            "--noise-threshold",
            "0.01",
            "--time-window",
            "20",
            "--gap",
            "6",
            "--mode",
            "range",
            "--target",
            "G4",
        ]
    )
    config = cli.build_config(args)
    assert config.sample_rate == 48000
    assert config.frame_size == 4096
    assert config.detector.threshold == 0.2
    assert config.detector.smoothing_factor == 0.5
    assert config.noise_threshold == 0.01
    assert config.engine.time_window == 20.0
    assert config.engine.gap_threshold == 6
    assert config.mode == "range"
    assert config.target_note == "G4"


def test_unknown_mode_is_rejected():
    with pytest.raises(SystemExit):
        cli.parse_args(["--mode", "karaoke"])


def test_demo_flag_selects_demo_source():
    args = cli.parse_args(["--demo", "--frame-size", "2048"])
    config = cli.build_config(args)
    source = cli.create_source(args, config)
    assert isinstance(source, DemoSource)
    assert source.frame_size == 2048
    assert source.hop == config.hop


def test_missing_sounddevice_falls_back_to_demo(monkeypatch):
    monkeypatch.setattr(cli, "sd", None)
    args = cli.parse_args([])
    source = cli.create_source(args, cli.build_config(args))
    assert isinstance(source, DemoSource)


def test_input_flag_selects_file_source(tmp_path):
    path = write_wav(
        tmp_path / "take.wav",
        generate_tone(ToneParameters(sample_rate=22050, duration=0.2)),
        22050,
    )
    args = cli.parse_args(["--input", str(path)])
    source = cli.create_source(args, cli.build_config(args))
    assert isinstance(source, FileSource)
    assert source.sample_rate == 22050.0


def test_build_pipeline_applies_mode_and_target():
    args = cli.parse_args(["--demo", "--mode", "target", "--target", "E4"])
    config = cli.build_config(args)
    pipeline = cli.build_pipeline(config, cli.create_source(args, config))
    assert pipeline.engine.mode == TargetMode(parse_note_string("E4"))
    assert pipeline.detector.sample_rate == 44100.0
    assert pipeline.noise_threshold == config.noise_threshold


def test_build_pipeline_range_mode():
    args = cli.parse_args(["--demo", "--mode", "range"])
    config = cli.build_config(args)
    pipeline = cli.build_pipeline(config, cli.create_source(args, config))
    assert pipeline.engine.mode == RangeMode()


def test_main_lists_devices(monkeypatch, capsys):
    monkeypatch.setattr(cli, "list_devices", lambda: "0 Fake Mic")
    cli.main(["--list-devices"])
    assert "Fake Mic" in capsys.readouterr().out


def test_list_devices_without_sounddevice_logs_error(monkeypatch, caplog, capsys):
    monkeypatch.setattr(audio_sources, "sd", None)
    with caplog.at_level(logging.ERROR):
        cli.main(["--list-devices"])
    assert "Cannot list audio devices" in caplog.text
    assert capsys.readouterr().out == ""


def test_main_survives_zero_frame_rate(monkeypatch, tmp_path):
    matplotlib.use("Agg")
    from voice_pitch import renderer

    created = []

    class _View:
        def __init__(self, pipeline, interval_ms):
            created.append(interval_ms)

        def run(self):
            pass

    monkeypatch.setattr(renderer, "PitchTraceView", _View)
    path = tmp_path / "slow.json"
    path.write_text(json.dumps({"frames_per_second": 0}), encoding="utf-8")
    cli.main(["--demo", "--config", str(path)])
    assert created == [1000]
