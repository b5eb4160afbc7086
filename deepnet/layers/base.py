"""
Layer capability interface shared by the graph and concrete layers.

The graph only relies on the members declared here, so new layer kinds can be
added without touching `DeepNet`.
"""

from __future__ import annotations

from typing import FrozenSet, Protocol, runtime_checkable

from deepnet.activations import Activation
from deepnet.tensor import Tensor


# Names of learned parameters discarded by a resize.
Invalidated = FrozenSet[str]


@runtime_checkable
class Layer(Protocol):
    id: str
    learning_rate: float
    momentum: float

    @property
    def activation(self) -> Activation: ...

    @property
    def input_size(self) -> int: ...

    @property
    def output_size(self) -> int: ...

    @property
    def batch_size(self) -> int: ...

    @property
    def output(self) -> Tensor: ...

    def forward(self, input: Tensor) -> None:
        """Run the layer on `input`, overwriting `output` in place."""
        ...

    def resize_input(self, size: int) -> Invalidated: ...

    def resize_output(self, size: int) -> Invalidated: ...

    def resize_batch(self, size: int) -> Invalidated: ...

    def backpropagate(self, gradient: Tensor, inputs: Tensor) -> Tensor:
        """Training hook for hidden layers; returns the gradient w.r.t. the layer input."""
        ...

    def backpropagate_target(self, target: Tensor, inputs: Tensor) -> Tensor:
        """Training hook for the output layer, driven by target labels."""
        ...

    def release(self) -> None: ...


__all__ = ["Layer", "Invalidated"]
