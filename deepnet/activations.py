from __future__ import annotations

from enum import Enum


class Activation(str, Enum):
    """Elementwise activation applied by a layer after `x @ W + b`."""

    TANH = "tanh"
    SIGMOID = "sigmoid"
    RELU = "relu"
    IDENTITY = "identity"

    @property
    def kernel_name(self) -> str:
        return f"{self.value}_forward"

    @classmethod
    def parse(cls, value: "Activation | str") -> "Activation":
        if isinstance(value, Activation):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(a.value for a in cls)
            raise ValueError(f"unknown activation {value!r} (expected one of: {names})") from None


# Pre-activation values are clamped to this range before tanh.
TANH_CLAMP = 15.0


__all__ = ["Activation", "TANH_CLAMP"]
