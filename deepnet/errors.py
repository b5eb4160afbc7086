"""
Exception hierarchy for DeepNet.

Every error is raised synchronously at the API boundary, before any kernel is
dispatched, and leaves the receiver unmodified.
"""

from __future__ import annotations


class DeepNetError(Exception):
    """Base class for all DeepNet errors."""


class ShapeMismatchError(DeepNetError, ValueError):
    """Input, weight, bias or output sizes are inconsistent."""


class InvalidIndexError(DeepNetError, IndexError):
    """A layer index is outside the graph."""


class NotReadyError(DeepNetError, RuntimeError):
    """The graph cannot run a forward pass (e.g. it has no layers)."""


class PipelineMismatchError(DeepNetError, RuntimeError):
    """The bound kernel pipeline was compiled for a different activation."""


class DeviceUnavailableError(DeepNetError, RuntimeError):
    """The configured compute device cannot execute kernels."""


class TensorReleasedError(DeepNetError, RuntimeError):
    """A tensor was used after its device buffer was released."""


__all__ = [
    "DeepNetError",
    "ShapeMismatchError",
    "InvalidIndexError",
    "NotReadyError",
    "PipelineMismatchError",
    "DeviceUnavailableError",
    "TensorReleasedError",
]
