"""
DeepNet: an ordered chain of layers run one after another.

The graph keeps three invariants:
  - layers[0].input_size == input_size
  - layers[i].output_size == layers[i + 1].input_size
  - every layer's batch_size == batch_size

Adding or inserting a layer re-sizes it (and, for insertion, its successor) to
restore them; this re-initialises the weights of the layers involved.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from deepnet.activations import Activation
from deepnet.errors import InvalidIndexError, NotReadyError, ShapeMismatchError
from deepnet.initializers import Initializer
from deepnet.layers.base import Invalidated, Layer
from deepnet.layers.fully_connected import FullyConnectedLayer
from deepnet.runtime import ComputeContext, default_context
from deepnet.tensor import Tensor
from deepnet.utils.logging import get_logger


logger = get_logger(__name__)


def _positive(name: str, value: Any) -> int:
    size = int(value)
    if size < 1:
        raise ShapeMismatchError(f"{name} must be >= 1, got {value}")
    return size


class DeepNet:
    def __init__(
        self,
        input_size: int = 1,
        *,
        batch_size: int = 1,
        context: Optional[ComputeContext] = None,
    ) -> None:
        self._input_size = _positive("input_size", input_size)
        self._batch_size = _positive("batch_size", batch_size)
        self.context = context or default_context()
        self._layers: List[Layer] = []

    def __repr__(self) -> str:
        return f"DeepNet(inputs={self._input_size}, batch={self._batch_size}, layers={len(self._layers)})"

    def __len__(self) -> int:
        return len(self._layers)

    @property
    def input_size(self) -> int:
        return self._input_size

    @property
    def batch_size(self) -> int:
        return self._batch_size

    @property
    def output_size(self) -> int:
        """Width of the graph output (the input size while the graph is empty)."""
        return self._layers[-1].output_size if self._layers else self._input_size

    @property
    def layers(self) -> Tuple[Layer, ...]:
        return tuple(self._layers)

    def make_tensor(self, shape: int | Sequence[int], data: Any = None) -> Tensor:
        return Tensor(shape, data, context=self.context)

    # Forward

    def forward(self, input: Tensor | Any) -> np.ndarray:
        """
        Run every layer in order and return the graph output as a flat host array.

        `input` is a Tensor or anything numpy can turn into `input_size * batch_size`
        floats, laid out batch-major.
        """
        if not self._layers:
            raise NotReadyError("the graph has no layers; add at least one before calling forward")
        expected = self._input_size * self._batch_size
        owned: Optional[Tensor] = None
        if isinstance(input, Tensor):
            if input.count != expected:
                raise ShapeMismatchError(f"got {input.count} inputs, expected {expected} ({self._batch_size} x {self._input_size})")
            tensor = input
        else:
            host = np.asarray(input, dtype=np.float32).reshape(-1)
            if int(host.size) != expected:
                raise ShapeMismatchError(f"got {host.size} inputs, expected {expected} ({self._batch_size} x {self._input_size})")
            owned = tensor = self.make_tensor((self._batch_size, self._input_size), host)
        try:
            self._layers[0].forward(tensor)
            for prev, layer in zip(self._layers, self._layers[1:]):
                layer.forward(prev.output)
            return self._layers[-1].output.read()
        finally:
            if owned is not None:
                owned.release()

    # Adding / inserting layers

    def _check_new_layer(self, layer: Layer) -> None:
        if any(existing is layer for existing in self._layers):
            raise ValueError(f"layer {layer.id} is already part of the graph")
        ctx = getattr(layer, "context", None)
        if ctx is not None and ctx.device != self.context.device:
            raise ValueError(f"layer {layer.id} lives on {ctx.device}, graph runs on {self.context.device}")

    def _adopt(self, layer: Layer, input_size: int) -> Invalidated:
        invalidated = layer.resize_input(input_size)
        layer.resize_batch(self._batch_size)
        return invalidated

    def add_layer(self, layer: Layer) -> Invalidated:
        """Append `layer`; it becomes the graph output."""
        self._check_new_layer(layer)
        invalidated = self._adopt(layer, self.output_size)
        self._layers.append(layer)
        if invalidated:
            logger.info("add_layer: %s re-initialised %s", layer.id, sorted(invalidated))
        return invalidated

    def insert_layer(self, layer: Layer, index: int) -> Dict[str, Invalidated]:
        """
        Insert `layer` at `index` and re-size its successor to match.

        Returns the parameters discarded per layer id. Training state of the
        inserted layer and the one after it may be lost.
        """
        if index < 0 or index > len(self._layers):
            raise InvalidIndexError(f"cannot insert at index {index} (graph has {len(self._layers)} layers)")
        if index == len(self._layers):
            invalidated = self.add_layer(layer)
            return {layer.id: invalidated} if invalidated else {}
        self._check_new_layer(layer)
        input_size = self._input_size if index == 0 else self._layers[index - 1].output_size
        report: Dict[str, Invalidated] = {}
        inv = self._adopt(layer, input_size)
        if inv:
            report[layer.id] = inv
        self._layers.insert(index, layer)
        successor = self._layers[index + 1]
        inv = successor.resize_input(layer.output_size)
        if inv:
            report[successor.id] = inv
        for layer_id, names in report.items():
            logger.info("insert_layer: %s re-initialised %s", layer_id, sorted(names))
        return report

    def set_layers(self, layers: Iterable[Layer]) -> None:
        """Replace the whole chain. Sizes must already be consistent."""
        new = list(layers)
        if len({id(layer) for layer in new}) != len(new):
            raise ValueError("the same layer appears more than once")
        expected_in = self._input_size
        for i, layer in enumerate(new):
            if layer.input_size != expected_in:
                raise ShapeMismatchError(f"layer {i} ({layer.id}) takes {layer.input_size} inputs, expected {expected_in}")
            if layer.batch_size != self._batch_size:
                raise ShapeMismatchError(f"layer {i} ({layer.id}) has batch size {layer.batch_size}, expected {self._batch_size}")
            expected_in = layer.output_size
        self._layers = new

    # Fully-connected helpers

    def make_fully_connected_layer(
        self,
        outputs: int,
        activation: Activation | str = Activation.TANH,
        *,
        inputs: Optional[int] = None,
        id: Optional[str] = None,
        weights: Any = None,
        bias: Any = None,
        initializer: Optional[Initializer] = None,
    ) -> FullyConnectedLayer:
        """Build a layer on this graph's context without adding it."""
        return FullyConnectedLayer(
            self.output_size if inputs is None else inputs,
            outputs,
            activation,
            batch_size=self._batch_size,
            weights=weights,
            bias=bias,
            id=id,
            initializer=initializer,
            context=self.context,
        )

    def add_fully_connected_layer(
        self,
        outputs: int,
        activation: Activation | str = Activation.TANH,
        *,
        id: Optional[str] = None,
        weights: Any = None,
        bias: Any = None,
        initializer: Optional[Initializer] = None,
    ) -> FullyConnectedLayer:
        layer = self.make_fully_connected_layer(
            outputs, activation, id=id, weights=weights, bias=bias, initializer=initializer
        )
        self.add_layer(layer)
        return layer

    def insert_fully_connected_layer(
        self,
        outputs: int,
        activation: Activation | str = Activation.TANH,
        *,
        index: int,
        id: Optional[str] = None,
        weights: Any = None,
        bias: Any = None,
        initializer: Optional[Initializer] = None,
    ) -> FullyConnectedLayer:
        if index < 0 or index > len(self._layers):
            raise InvalidIndexError(f"cannot insert at index {index} (graph has {len(self._layers)} layers)")
        inputs = self._input_size if index == 0 else self._layers[index - 1].output_size
        layer = self.make_fully_connected_layer(
            outputs, activation, inputs=inputs, id=id, weights=weights, bias=bias, initializer=initializer
        )
        self.insert_layer(layer, index)
        return layer

    # Resizing

    def resize_input(self, size: int) -> Invalidated:
        """Change the graph input width; re-initialises the first layer's weights."""
        size = _positive("input_size", size)
        if size == self._input_size:
            return frozenset()
        invalidated: Invalidated = frozenset()
        if self._layers:
            invalidated = self._layers[0].resize_input(size)
        self._input_size = size
        return invalidated

    def resize_batch(self, size: int) -> None:
        """Change the batch size; reallocates every layer's output."""
        size = _positive("batch_size", size)
        if size == self._batch_size:
            return
        for layer in self._layers:
            layer.resize_batch(size)
        self._batch_size = size

    def release(self) -> None:
        for layer in self._layers:
            layer.release()
        self._layers = []


__all__ = ["DeepNet"]
