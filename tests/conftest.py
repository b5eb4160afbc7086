from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
import torch

# Ensure repo root is importable for all tests, regardless of nested test layout.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Kernels run on the CPU through Triton's interpreter when there is no GPU.
# This has to happen before anything imports triton.
if not torch.cuda.is_available():
    os.environ.setdefault("TRITON_INTERPRET", "1")

from deepnet.runtime import ComputeContext  # noqa: E402


@pytest.fixture
def ctx() -> ComputeContext:
    return ComputeContext()


@pytest.fixture
def unchecked_ctx() -> ComputeContext:
    return ComputeContext(check_bounds=False)
