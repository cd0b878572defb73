"""Small numeric helpers shared across the package."""

from __future__ import annotations

import math

import numpy as np

EPS = 1e-12


def dbfs(x: np.ndarray) -> np.ndarray:
    """Convert a linear magnitude array into dBFS."""
    return 20.0 * np.log10(np.maximum(x, EPS))


def rms(samples: np.ndarray) -> float:
    """Root-mean-square level of ``samples`` (0.0 for an empty buffer)."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with ties going towards +inf."""
    return int(math.floor(value + 0.5))


__all__ = ["EPS", "dbfs", "rms", "round_half_up"]
