"""
Process-wide compute context.

A `ComputeContext` bundles the torch device that owns every tensor buffer, the
compiled kernel pipelines (one per activation) and a submission lock. Kernel
submission is not assumed thread-safe: every launch + synchronise pair runs
under the lock.

CPU execution goes through Triton's interpreter, which must be enabled with
`TRITON_INTERPRET=1` before the kernel module is first imported.
"""

from __future__ import annotations

import contextlib
import os
import threading
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator, Optional, Tuple

import numpy as np
import torch

from deepnet.activations import Activation
from deepnet.config import RuntimeConfig, load_config
from deepnet.errors import DeviceUnavailableError
from deepnet.utils.logging import get_logger


logger = get_logger(__name__)

# Edge length of the square output tile computed by one kernel program.
TILE = 8
# Threads per SIMD group on the CUDA backend.
EXECUTION_WIDTH = 32


@dataclass(frozen=True)
class KernelPipeline:
    """A kernel entry point specialised for one activation and bounds mode."""

    name: str
    activation: Activation
    check_bounds: bool
    launch: Callable[..., None]

    def __call__(self, *buffers: Any, grid: Tuple[int, int]) -> None:
        self.launch(*buffers, grid=grid, check_bounds=self.check_bounds)


def interpreter_enabled() -> bool:
    return str(os.getenv("TRITON_INTERPRET", "0")).strip() == "1"


def _resolve_device(name: str) -> torch.device:
    s = str(name).strip().lower()
    if s == "auto":
        return torch.device("cuda" if torch.cuda.is_available() else "cpu")
    if s.startswith("cuda"):
        if not torch.cuda.is_available():
            raise DeviceUnavailableError(f"device {name!r} requested but CUDA is not available")
        dev = torch.device(s)
        if dev.index is not None and dev.index >= torch.cuda.device_count():
            raise DeviceUnavailableError(f"device {name!r} out of range ({torch.cuda.device_count()} visible)")
        return dev
    if s == "cpu":
        return torch.device("cpu")
    raise DeviceUnavailableError(f"unsupported device: {name!r}")


class ComputeContext:
    def __init__(
        self,
        device: str | torch.device | None = None,
        *,
        check_bounds: Optional[bool] = None,
        config: Optional[RuntimeConfig] = None,
    ) -> None:
        self.config = config or load_config()
        if isinstance(device, torch.device):
            self.device = _resolve_device(str(device))
        else:
            self.device = _resolve_device(device or self.config.device)
        self.check_bounds = self.config.check_bounds if check_bounds is None else bool(check_bounds)
        self.execution_width = EXECUTION_WIDTH
        self._lock = threading.Lock()
        self._pipelines: Dict[Activation, KernelPipeline] = {}
        self._seeds = np.random.SeedSequence(self.config.seed)
        logger.debug("compute context on %s (check_bounds=%s)", self.device, self.check_bounds)

    def __repr__(self) -> str:
        return f"ComputeContext(device={str(self.device)!r}, check_bounds={self.check_bounds})"

    def spawn_rng(self) -> np.random.Generator:
        """Independent generator; reproducible in creation order when DEEPNET_SEED is set."""
        return np.random.default_rng(self._seeds.spawn(1)[0])

    def allocate(self, rows: int, cols: int) -> torch.Tensor:
        """Zero-filled float32 device buffer of `rows x cols`."""
        return torch.zeros((int(rows), int(cols)), dtype=torch.float32, device=self.device)

    def ensure_launchable(self) -> None:
        if self.device.type == "cpu" and not interpreter_enabled():
            raise DeviceUnavailableError(
                "kernels on the CPU device need the Triton interpreter; set TRITON_INTERPRET=1 before importing deepnet"
            )

    def pipeline(self, activation: Activation | str) -> KernelPipeline:
        act = Activation.parse(activation)
        cached = self._pipelines.get(act)
        if cached is not None:
            return cached
        from kernels.triton.ops.affine_act2d import kernel_launcher  # noqa: PLC0415

        pipe = KernelPipeline(
            name=act.kernel_name,
            activation=act,
            check_bounds=self.check_bounds,
            launch=kernel_launcher(act.kernel_name),
        )
        self._pipelines[act] = pipe
        logger.debug("bound pipeline %s (check_bounds=%s)", pipe.name, pipe.check_bounds)
        return pipe

    @contextlib.contextmanager
    def submission(self) -> Iterator[None]:
        with self._lock:
            yield

    def synchronize(self) -> None:
        if self.device.type == "cuda":
            torch.cuda.synchronize(self.device)


@lru_cache(maxsize=1)
def default_context() -> ComputeContext:
    return ComputeContext()


__all__ = [
    "TILE",
    "EXECUTION_WIDTH",
    "KernelPipeline",
    "ComputeContext",
    "default_context",
    "interpreter_enabled",
]
