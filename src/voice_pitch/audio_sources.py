"""Audio sources that hand the pipeline the most recent complete frame."""

from __future__ import annotations

import logging
import queue
from pathlib import Path
from typing import Optional

import numpy as np
from scipy.io import wavfile

from voice_pitch.pitch_detector import AudioFrame
from voice_pitch.synth import DEFAULT_PHRASE, render_phrase

try:  # Optional dependency
    import sounddevice as sd
except Exception:  # pragma: no cover - optional dependency may be absent in CI
    sd = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


class AudioSource:
    """Polling audio interface: ``get_frame`` never blocks."""

    def __init__(self, samplerate: int, frame_size: int, hop: int) -> None:
        if frame_size < 2:
            raise ValueError("frame_size must be at least 2 samples.")
        self.samplerate = int(samplerate)
        self.frame_size = int(frame_size)
        self.hop = max(1, int(hop))
        self._buffer = np.zeros(0, dtype=np.float32)

    @property
    def sample_rate(self) -> float:
        return float(self.samplerate)

    def start(self) -> None:  # pragma: no cover - interface method
        raise NotImplementedError

    def stop(self) -> None:  # pragma: no cover - interface method
        raise NotImplementedError

    def _pull(self) -> np.ndarray:  # pragma: no cover - interface method
        raise NotImplementedError

    def _push(self, samples: np.ndarray) -> None:
        if samples.size == 0:
            return
        joined = np.concatenate([self._buffer, samples.astype(np.float32, copy=False)])
        if joined.size > self.frame_size:
            joined = joined[-self.frame_size :]
        self._buffer = joined

    def get_frame(self) -> Optional[AudioFrame]:
        """Return the latest ``frame_size`` samples, or ``None`` until filled."""

        self._push(self._pull())
        if self._buffer.size < self.frame_size:
            return None
        return AudioFrame(samples=self._buffer.copy(), sample_rate=self.sample_rate)


class MicSource(AudioSource):
    """Audio source backed by a sounddevice input stream."""

    def __init__(
        self,
        samplerate: int,
        frame_size: int,
        hop: int,
        device: Optional[str] = None,
    ) -> None:
        if sd is None:
            raise RuntimeError("sounddevice is not available. Install it or use --demo.")

        super().__init__(samplerate, frame_size, hop)
        self.device = device
        self.q: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=64)
        self.stream = None

    def _callback(self, indata, frames, time_info, status):  # pragma: no cover - sounddevice callback
        if status:
            logger.debug("Input stream status: %s", status)
        if indata.ndim == 2 and indata.shape[1] > 1:
            mono = indata.mean(axis=1).copy()
        else:
            mono = indata[:, 0].copy() if indata.ndim == 2 else indata.copy()
        try:
            self.q.put_nowait(mono)
        except queue.Full:
            pass

    def start(self) -> None:
        if sd is None:  # pragma: no cover
            raise RuntimeError("sounddevice is not available.")
        self.stream = sd.InputStream(
            channels=1,
            samplerate=self.samplerate,
            blocksize=self.hop,
            device=self.device,
            callback=self._callback,
            dtype="float32",
        )
        self.stream.start()
        actual = int(round(getattr(self.stream, "samplerate", self.samplerate)))
        if actual != self.samplerate:
            logger.warning(
                "Requested %d Hz but the input stream runs at %d Hz; using %d Hz",
                self.samplerate,
                actual,
                actual,
            )
            self.samplerate = actual
        logger.info(
            "Microphone started (%d Hz, frame %d samples)",
            self.samplerate,
            self.frame_size,
        )

    def _pull(self) -> np.ndarray:
        chunks = []
        while True:
            try:
                chunks.append(self.q.get_nowait())
            except queue.Empty:
                break
        if not chunks:
            return np.zeros(0, dtype=np.float32)
        return np.concatenate(chunks)

    def stop(self) -> None:
        if self.stream is not None:
            try:  # pragma: no cover - depends on audio backend
                self.stream.stop()
                self.stream.close()
            except Exception:
                logger.exception("Failed to close the input stream")
            self.stream = None
            logger.info("Microphone stopped")


class DemoSource(AudioSource):
    """Synthetic singer used when no microphone is available.

    The rendered phrase loops forever; every call to :meth:`get_frame`
    advances it by one hop.
    """

    def __init__(
        self,
        samplerate: int,
        frame_size: int,
        hop: int,
        noise_level: float = 0.002,
        seed: Optional[int] = None,
    ) -> None:
        super().__init__(samplerate, frame_size, hop)
        self.signal = render_phrase(
            DEFAULT_PHRASE, self.samplerate, noise_level=noise_level, seed=seed
        )
        self.t = 0

    def start(self) -> None:
        self.t = 0
        self._buffer = np.zeros(0, dtype=np.float32)

    def _pull(self) -> np.ndarray:
        # Prime the rolling buffer with a full frame on the first call.
        n = self.hop if self._buffer.size else self.frame_size
        idx = np.arange(self.t, self.t + n)
        self.t += n
        return np.take(self.signal, idx, mode="wrap")

    def stop(self) -> None:
        pass


class FileSource(AudioSource):
    """Stream a WAV file through the rolling-frame interface, one hop per call."""

    def __init__(
        self, path: Path, frame_size: int, hop: int, loop: bool = False
    ) -> None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(path)
        sr, audio = wavfile.read(path)
        if audio.dtype == np.uint8:
            # 8-bit WAV is offset binary centred on 128.
            audio = (audio.astype(np.float32) - 128.0) / 128.0
        elif np.issubdtype(audio.dtype, np.integer):
            audio = audio.astype(np.float32) / np.iinfo(audio.dtype).max
        if audio.ndim > 1:
            audio = audio.mean(axis=1)
        super().__init__(int(sr), frame_size, hop)
        self.path = path
        self.signal = np.asarray(audio, dtype=np.float32)
        self.loop = loop
        self.t = 0

    @property
    def exhausted(self) -> bool:
        return not self.loop and self.t >= self.signal.size

    def start(self) -> None:
        self.t = 0
        self._buffer = np.zeros(0, dtype=np.float32)
        logger.info("Streaming %s (%d Hz)", self.path, self.samplerate)

    def _pull(self) -> np.ndarray:
        n = self.hop if self._buffer.size else self.frame_size
        if self.loop and self.signal.size:
            idx = np.arange(self.t, self.t + n)
            self.t += n
            return np.take(self.signal, idx, mode="wrap")
        chunk = self.signal[self.t : self.t + n]
        self.t += chunk.size
        return chunk

    def get_frame(self) -> Optional[AudioFrame]:
        if self.exhausted:
            return None
        return super().get_frame()

    def stop(self) -> None:
        pass


def list_devices() -> str:
    if sd is None:
        raise RuntimeError("sounddevice is not available.")
    return str(sd.query_devices())


__all__ = [
    "AudioSource",
    "MicSource",
    "DemoSource",
    "FileSource",
    "list_devices",
    "sd",
]
