"""DeepNet: feed-forward neural-network inference on GPU kernels."""

from deepnet.activations import Activation
from deepnet.errors import (
    DeepNetError,
    DeviceUnavailableError,
    InvalidIndexError,
    NotReadyError,
    PipelineMismatchError,
    ShapeMismatchError,
    TensorReleasedError,
)
from deepnet.graph import DeepNet
from deepnet.layers import DispatchGrid, FullyConnectedLayer, Layer
from deepnet.runtime import ComputeContext, default_context
from deepnet.tensor import Tensor

__all__ = [
    "Activation",
    "ComputeContext",
    "DeepNet",
    "DeepNetError",
    "DeviceUnavailableError",
    "DispatchGrid",
    "FullyConnectedLayer",
    "InvalidIndexError",
    "Layer",
    "NotReadyError",
    "PipelineMismatchError",
    "ShapeMismatchError",
    "Tensor",
    "TensorReleasedError",
    "default_context",
]

__version__ = "0.1.0"
