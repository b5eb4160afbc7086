"""
Numpy reference for the affine + activation forward pass.

Mirrors the kernel numerics: float32 inputs, float32 accumulation, tanh input
clamped to [-15, 15].
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple

import numpy as np

from deepnet.activations import TANH_CLAMP, Activation


def apply_activation(x: np.ndarray, activation: Activation | str) -> np.ndarray:
    act = Activation.parse(activation)
    x = np.asarray(x, dtype=np.float32)
    if act == Activation.TANH:
        return np.tanh(np.clip(x, -TANH_CLAMP, TANH_CLAMP)).astype(np.float32)
    if act == Activation.SIGMOID:
        with np.errstate(over="ignore"):
            return (1.0 / (1.0 + np.exp(-x))).astype(np.float32)
    if act == Activation.RELU:
        return np.maximum(x, np.float32(0.0))
    return x


def reference_affine(x: Any, w: Any, b: Any, activation: Activation | str) -> np.ndarray:
    """act(x @ w + b) for x (m, n), w (n, k), b (k,) or (1, k)."""
    x = np.asarray(x, dtype=np.float32)
    w = np.asarray(w, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32).reshape(1, -1)
    if x.ndim != 2 or w.ndim != 2:
        raise ValueError(f"expected rank-2 x and w, got {x.shape} and {w.shape}")
    if x.shape[1] != w.shape[0] or b.shape[1] != w.shape[1]:
        raise ValueError(f"shape mismatch: x={x.shape} w={w.shape} b={b.shape}")
    return apply_activation(x @ w + b, activation)


def layer_params(layer: Any) -> Tuple[np.ndarray, np.ndarray]:
    """Host copies of a fully-connected layer's weights (n, k) and bias (k,)."""
    w = layer.weights.read().reshape(layer.input_size, layer.output_size)
    b = layer.bias.read().reshape(layer.output_size)
    return w, b


def reference_forward(layers: Sequence[Any], inputs: Any, *, batch_size: int) -> np.ndarray:
    """Run `layers` on the host, returning the flat graph output."""
    x = np.asarray(inputs, dtype=np.float32).reshape(int(batch_size), -1)
    for layer in layers:
        w, b = layer_params(layer)
        x = reference_affine(x, w, b, layer.activation)
    return x.reshape(-1)


__all__ = ["apply_activation", "reference_affine", "layer_params", "reference_forward"]
