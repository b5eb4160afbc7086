"""
Dense rank <= 2 float32 storage with tile padding.

A `Tensor` owns one device buffer whose dimensions are the logical dimensions
rounded up to a multiple of the kernel tile (8). The padding lets every kernel
program operate on a full 8x8 tile without per-element bounds checks in the
inner loop. Padding cells are zero at allocation and logical writes never
touch them.

Layout is row-major: element (r, c) lives at `r * padded_cols + c`.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence, Tuple

import numpy as np
import torch

from deepnet.errors import ShapeMismatchError, TensorReleasedError
from deepnet.runtime import TILE, ComputeContext, default_context
from deepnet.utils.logging import get_logger


logger = get_logger(__name__)

Shape2D = Tuple[int, int]


def padded_dim(d: int, tile: int = TILE) -> int:
    return ((int(d) + tile - 1) // tile) * tile


def normalize_shape(shape: int | Sequence[int]) -> Shape2D:
    """Canonical (rows, cols); rank-1 shapes become a single row vector."""
    dims = [int(shape)] if isinstance(shape, (int, np.integer)) else [int(d) for d in shape]
    if len(dims) == 1:
        dims = [1, dims[0]]
    if len(dims) != 2:
        raise ShapeMismatchError(f"tensors must have rank 1 or 2, got shape {tuple(dims)}")
    if dims[0] < 0 or dims[1] < 0:
        raise ShapeMismatchError(f"negative dimension in shape {tuple(dims)}")
    return dims[0], dims[1]


def _host_array(data: Any, count: int, what: str) -> np.ndarray:
    if isinstance(data, torch.Tensor):
        data = data.detach().to("cpu").numpy()
    arr = np.array(data, dtype=np.float32).reshape(-1)
    if int(arr.size) != int(count):
        raise ShapeMismatchError(f"{what}: got {arr.size} values, expected {count}")
    return arr


class Tensor:
    def __init__(
        self,
        shape: int | Sequence[int],
        data: Any = None,
        *,
        context: Optional[ComputeContext] = None,
    ) -> None:
        self.logical_shape: Shape2D = normalize_shape(shape)
        self.padded_shape: Shape2D = (padded_dim(self.logical_shape[0]), padded_dim(self.logical_shape[1]))
        # Validate before allocating so a bad call has no side effects.
        host = None if data is None else _host_array(data, self.count, "tensor data")
        self.context = context or default_context()
        self._buffer: Optional[torch.Tensor] = self.context.allocate(*self.padded_shape)
        logger.debug("allocated tensor logical=%s padded=%s", self.logical_shape, self.padded_shape)
        if host is not None:
            self._copy_in(host)

    def __repr__(self) -> str:
        state = "released" if self.released else str(self.context.device)
        return f"Tensor(logical_shape={self.logical_shape}, padded_shape={self.padded_shape}, {state})"

    @property
    def count(self) -> int:
        """Number of logical elements."""
        return self.logical_shape[0] * self.logical_shape[1]

    @property
    def padded_count(self) -> int:
        return self.padded_shape[0] * self.padded_shape[1]

    @property
    def length(self) -> int:
        """Size of the padded device buffer in bytes."""
        return self.padded_count * 4

    @property
    def row_bytes(self) -> int:
        """Padded row stride in bytes."""
        return self.padded_shape[1] * 4

    @property
    def is_padded(self) -> bool:
        return self.padded_shape != self.logical_shape

    @property
    def released(self) -> bool:
        return self._buffer is None

    @property
    def buffer(self) -> torch.Tensor:
        if self._buffer is None:
            raise TensorReleasedError(f"tensor {self.logical_shape} was released")
        return self._buffer

    def write(self, data: Any) -> None:
        """Copy `count` values into the logical sub-rectangle."""
        buf = self.buffer
        host = _host_array(data, self.count, "tensor write")
        self._copy_in(host, buf)

    def _copy_in(self, host: np.ndarray, buf: Optional[torch.Tensor] = None) -> None:
        buf = self.buffer if buf is None else buf
        rows, cols = self.logical_shape
        src = torch.from_numpy(host)
        if not self.is_padded:
            buf.view(-1).copy_(src)
        else:
            buf[:rows, :cols].copy_(src.view(rows, cols))

    def read_logical(self) -> np.ndarray:
        """Host copy of the logical elements, row-major, padding skipped."""
        buf = self.buffer
        rows, cols = self.logical_shape
        if not self.is_padded:
            return buf.reshape(-1).to("cpu", copy=True).numpy()
        return buf[:rows, :cols].to("cpu", copy=True).numpy().reshape(-1)

    read = read_logical

    def read_padded(self) -> np.ndarray:
        """Host copy of the whole padded buffer, pad cells included."""
        return self.buffer.reshape(-1).to("cpu", copy=True).numpy()

    def write_padded(self, data: Any) -> None:
        """Overwrite the whole padded buffer, pad cells included. Inspection only."""
        buf = self.buffer
        host = _host_array(data, self.padded_count, "padded write")
        buf.view(-1).copy_(torch.from_numpy(host))

    def release(self) -> None:
        """Drop the device buffer. Safe to call more than once."""
        if self._buffer is not None:
            logger.debug("released tensor logical=%s", self.logical_shape)
        self._buffer = None


__all__ = ["Tensor", "Shape2D", "padded_dim", "normalize_shape"]
