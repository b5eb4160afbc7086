"""
Fully-connected (dense) layer: `output = act(input @ weights + bias)`.

The layer owns three tensors:
  - weights: (input_size, output_size)
  - bias:    (1, output_size), a row vector
  - output:  (batch_size, output_size), overwritten by every forward pass

Shape changes go through the explicit `resize_*` methods. Each returns the set
of learned parameters it discarded, so callers can see when training state is
lost.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np
import torch

from deepnet.activations import Activation
from deepnet.errors import PipelineMismatchError, ShapeMismatchError
from deepnet.initializers import Initializer, glorot_uniform
from deepnet.layers.base import Invalidated
from deepnet.runtime import TILE, ComputeContext, default_context
from deepnet.tensor import Tensor
from deepnet.utils.logging import get_logger


logger = get_logger(__name__)

_NOTHING: Invalidated = frozenset()


@dataclass(frozen=True)
class DispatchGrid:
    """
    Kernel dispatch geometry for one forward call.

    One kernel program computes one TILE x TILE block of the padded output.
    Programs are grouped `group_width` wide and one high: the output is usually
    much wider (nodes) than tall (batch).
    """

    tiles_x: int
    tiles_y: int
    group_width: int
    group_height: int = 1

    @property
    def groups_x(self) -> int:
        return (self.tiles_x + self.group_width - 1) // self.group_width

    @property
    def groups_y(self) -> int:
        return (self.tiles_y + self.group_height - 1) // self.group_height

    @property
    def launch_grid(self) -> Tuple[int, int]:
        return (self.tiles_x, self.tiles_y)


def _check_size(name: str, value: Any) -> int:
    size = int(value)
    if size < 1:
        raise ShapeMismatchError(f"{name} must be >= 1, got {value}")
    return size


def _ceil_div(a: int, b: int) -> int:
    return (int(a) + b - 1) // b


class FullyConnectedLayer:
    def __init__(
        self,
        input_size: int,
        output_size: int,
        activation: Activation | str = Activation.TANH,
        *,
        batch_size: int = 1,
        weights: Any = None,
        bias: Any = None,
        id: Optional[str] = None,
        initializer: Optional[Initializer] = None,
        seed: Optional[int] = None,
        context: Optional[ComputeContext] = None,
    ) -> None:
        self._input_size = _check_size("input_size", input_size)
        self._output_size = _check_size("output_size", output_size)
        self._batch_size = _check_size("batch_size", batch_size)
        self._activation = Activation.parse(activation)
        self.context = context or default_context()
        self.id = id or str(uuid.uuid4())
        # Reserved for training.
        self.learning_rate = 1.0
        self.momentum = 0.0
        self.initializer: Initializer = initializer or glorot_uniform
        self._rng = self.context.spawn_rng() if seed is None else np.random.default_rng(seed)

        self._weights = Tensor((self._input_size, self._output_size), weights, context=self.context)
        self._bias = Tensor((1, self._output_size), bias, context=self.context)
        self._output = Tensor((self._batch_size, self._output_size), context=self.context)
        if weights is None:
            self.randomize_all_weights()
        if bias is None:
            self.randomize_all_biases()

        self._pipeline = self.context.pipeline(self._activation)
        self._dims: Optional[torch.Tensor] = None
        self._dims_key: Optional[Tuple[int, ...]] = None

    def __repr__(self) -> str:
        return (
            f"FullyConnectedLayer(id={self.id!r}, inputs={self._input_size}, outputs={self._output_size}, "
            f"batch={self._batch_size}, activation={self._activation.value})"
        )

    # Shape

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def output_size(self) -> int:
        return self._output_size

    @property
    def batch_size(self) -> int:
        return self._batch_size

    # Tensors

    @property
    def weights(self) -> Tensor:
        return self._weights

    @property
    def bias(self) -> Tensor:
        return self._bias

    @property
    def output(self) -> Tensor:
        """Result of the most recent forward pass (zeros before the first)."""
        return self._output

    # Activation

    @property
    def activation(self) -> Activation:
        return self._activation

    @activation.setter
    def activation(self, value: Activation | str) -> None:
        act = Activation.parse(value)
        if act == self._activation:
            return
        self._pipeline = self.context.pipeline(act)
        self._activation = act

    @property
    def pipeline_name(self) -> str:
        return self._pipeline.name

    # Forward

    def dispatch_grid(self, input: Tensor) -> DispatchGrid:
        return DispatchGrid(
            tiles_x=_ceil_div(self._weights.padded_shape[1], TILE),
            tiles_y=_ceil_div(input.padded_shape[0], TILE),
            group_width=self.context.execution_width,
        )

    def _dims_for(self, input: Tensor) -> torch.Tensor:
        key = (
            input.logical_shape[0],
            self._output_size,
            self._input_size,
            input.row_bytes,
            self._weights.row_bytes,
        )
        if self._dims is None or self._dims_key != key:
            from kernels.triton.ops.affine_act2d import make_dims  # noqa: PLC0415

            self._dims = make_dims(*key, device=self.context.device)
            self._dims_key = key
        return self._dims

    def forward(self, input: Tensor) -> None:
        """
        Compute `act(input @ weights + bias)` into `output`.

        Blocks until the device has finished and the output is host-readable.
        """
        expected = (self._batch_size, self._input_size)
        if input.logical_shape != expected:
            raise ShapeMismatchError(
                f"layer {self.id}: input shape {input.logical_shape} does not match (batch, inputs) = {expected}"
            )
        if self._pipeline.activation != self._activation:
            raise PipelineMismatchError(
                f"layer {self.id}: pipeline {self._pipeline.name} bound but activation is {self._activation.value}"
            )
        self.context.ensure_launchable()
        grid = self.dispatch_grid(input)
        dims = self._dims_for(input)
        logger.debug(
            "layer %s: %s tiles=%dx%d groups=%dx%d",
            self.id,
            self._pipeline.name,
            grid.tiles_x,
            grid.tiles_y,
            grid.groups_x,
            grid.groups_y,
        )
        with self.context.submission():
            self._pipeline(
                input.buffer,
                self._weights.buffer,
                self._bias.buffer,
                self._output.buffer,
                dims,
                grid=grid.launch_grid,
            )
            self.context.synchronize()

    # Training extension points

    def backpropagate(self, gradient: Tensor, inputs: Tensor) -> Tensor:
        raise NotImplementedError("FullyConnectedLayer does not implement training (hidden-layer backpropagation)")

    def backpropagate_target(self, target: Tensor, inputs: Tensor) -> Tensor:
        raise NotImplementedError("FullyConnectedLayer does not implement training (output-layer backpropagation)")

    # Resizing

    def resize_input(self, size: int) -> Invalidated:
        """Reallocate and re-randomise `weights`; the output size is kept."""
        size = _check_size("input_size", size)
        if size == self._input_size:
            return _NOTHING
        weights = Tensor((size, self._output_size), context=self.context)
        self._weights.release()
        self._weights = weights
        self._input_size = size
        self.randomize_all_weights()
        logger.info("layer %s: input size -> %d, weights re-initialised", self.id, size)
        return frozenset({"weights"})

    def resize_output(self, size: int) -> Invalidated:
        """Reallocate `weights`, `bias` and `output`; weights and bias are re-randomised."""
        size = _check_size("output_size", size)
        if size == self._output_size:
            return _NOTHING
        weights = Tensor((self._input_size, size), context=self.context)
        bias = Tensor((1, size), context=self.context)
        output = Tensor((self._batch_size, size), context=self.context)
        for old in (self._weights, self._bias, self._output):
            old.release()
        self._weights, self._bias, self._output = weights, bias, output
        self._output_size = size
        self.randomize_all_weights()
        self.randomize_all_biases()
        logger.info("layer %s: output size -> %d, weights and bias re-initialised", self.id, size)
        return frozenset({"weights", "bias"})

    def resize_batch(self, size: int) -> Invalidated:
        """Reallocate `output` only; learned parameters are kept."""
        size = _check_size("batch_size", size)
        if size == self._batch_size:
            return _NOTHING
        output = Tensor((size, self._output_size), context=self.context)
        self._output.release()
        self._output = output
        self._batch_size = size
        return _NOTHING

    # Parameters

    def randomize_all_weights(self) -> None:
        w = self.initializer(self._weights.count, self._input_size, self._output_size, self._activation, self._rng)
        self._weights.write(w)

    def randomize_all_biases(self) -> None:
        b = self.initializer(self._bias.count, self._input_size, self._output_size, self._activation, self._rng)
        self._bias.write(b)

    def release(self) -> None:
        for t in (self._weights, self._bias, self._output):
            t.release()
        self._dims = None
        self._dims_key = None


__all__ = ["FullyConnectedLayer", "DispatchGrid"]
