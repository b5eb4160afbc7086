"""
Random parameter initialisers.

An initialiser is any callable
    (count, fan_in, fan_out, activation, rng) -> np.ndarray[float32]
returning `count` values. Layers call it for both weights and biases, so the
same scale applies to both.
"""

from __future__ import annotations

import math
from typing import Callable

import numpy as np

from deepnet.activations import Activation


Initializer = Callable[[int, int, int, Activation, np.random.Generator], np.ndarray]


def uniform_limit(fan_in: int, fan_out: int, activation: Activation) -> float:
    """Half-width of the uniform range used for `activation`."""
    if fan_in <= 0 or fan_out <= 0:
        raise ValueError(f"fan_in/fan_out must be positive, got {fan_in}/{fan_out}")
    if activation == Activation.RELU:
        # He uniform
        return math.sqrt(6.0 / fan_in)
    limit = math.sqrt(6.0 / (fan_in + fan_out))
    if activation == Activation.SIGMOID:
        return 4.0 * limit
    return limit


def glorot_uniform(
    count: int,
    fan_in: int,
    fan_out: int,
    activation: Activation,
    rng: np.random.Generator,
) -> np.ndarray:
    limit = uniform_limit(fan_in, fan_out, activation)
    return rng.uniform(-limit, limit, size=int(count)).astype(np.float32)


def zeros(
    count: int,
    fan_in: int,
    fan_out: int,
    activation: Activation,
    rng: np.random.Generator,
) -> np.ndarray:
    return np.zeros((int(count),), dtype=np.float32)


__all__ = ["Initializer", "uniform_limit", "glorot_uniform", "zeros"]
