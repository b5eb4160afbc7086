"""
Numerical tolerances for comparing kernel output against the numpy reference.

The kernel accumulates in float32 over the inner dimension, so the absolute
tolerance grows with the number of summed products. Saturating activations
(tanh, sigmoid) compress errors and can use the baseline.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict

from deepnet.activations import Activation


@dataclass(frozen=True)
class Tolerances:
    atol: float
    rtol: float

    def to_dict(self) -> Dict[str, float]:
        return {"atol": float(self.atol), "rtol": float(self.rtol)}


# Per-activation baseline for a short (<= 16) inner dimension.
_ACT_TOL: Dict[Activation, Tolerances] = {
    Activation.IDENTITY: Tolerances(1e-5, 1e-5),
    Activation.RELU: Tolerances(1e-5, 1e-5),
    # exp-based formulations
    Activation.TANH: Tolerances(1e-5, 1e-4),
    Activation.SIGMOID: Tolerances(1e-5, 1e-4),
}

# Historical default; never loosen past it.
_CAP = Tolerances(1e-3, 1e-3)


def infer_tolerances(activation: Activation | str, inner: int) -> Tolerances:
    act = Activation.parse(activation)
    base = _ACT_TOL.get(act, _CAP)
    scale = max(1.0, math.sqrt(max(int(inner), 1) / 16.0))
    return Tolerances(atol=min(base.atol * scale, _CAP.atol), rtol=min(base.rtol * scale, _CAP.rtol))


__all__ = ["Tolerances", "infer_tolerances"]
