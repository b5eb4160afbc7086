import numpy as np
import pytest
import torch

from deepnet.activations import TANH_CLAMP
from deepnet.tensor import Tensor
from kernels.triton.ops.affine_act2d import affine_act2d, make_dims


def _buffers(ctx, x, w):
    m, n = x.shape
    k = w.shape[1]
    A = Tensor((m, n), x, context=ctx)
    B = Tensor((n, k), w, context=ctx)
    bias = Tensor((1, k), context=ctx)
    C = Tensor((m, k), context=ctx)
    dims = make_dims(m, k, n, A.row_bytes, B.row_bytes, device=ctx.device)
    return A, B, bias, C, dims


def test_tanh_clamp_is_a_kernel_parameter(ctx):
    ctx.ensure_launchable()
    x = np.array([[5.0, -5.0]], dtype=np.float32)
    A, B, bias, C, dims = _buffers(ctx, x, np.eye(2, dtype=np.float32))
    args = (A.buffer, B.buffer, bias.buffer, C.buffer, dims)

    affine_act2d(*args, kernel_name="tanh_forward", grid=(1, 1))
    np.testing.assert_allclose(C.read(), np.tanh(x).reshape(-1), atol=1e-5)

    affine_act2d(*args, kernel_name="tanh_forward", grid=(1, 1), tanh_clamp=1.0)
    np.testing.assert_allclose(C.read(), np.tanh([1.0, -1.0]), atol=1e-5)


def test_default_clamp_matches_reference_bound(ctx):
    ctx.ensure_launchable()
    x = np.array([[2.0 * TANH_CLAMP, -2.0 * TANH_CLAMP]], dtype=np.float32)
    A, B, bias, C, dims = _buffers(ctx, x, np.eye(2, dtype=np.float32))
    affine_act2d(A.buffer, B.buffer, bias.buffer, C.buffer, dims, kernel_name="tanh_forward", grid=(1, 1))
    expected = np.tanh(np.float32(TANH_CLAMP))
    np.testing.assert_allclose(C.read(), [expected, -expected], atol=1e-6)


def test_launcher_validates_buffers(ctx):
    A, B, bias, C, dims = _buffers(ctx, np.ones((2, 3), np.float32), np.ones((3, 2), np.float32))
    with pytest.raises(TypeError):
        affine_act2d(A.buffer.to(torch.float64), B.buffer, bias.buffer, C.buffer, dims, kernel_name="tanh_forward", grid=(1, 1))
    with pytest.raises(KeyError):
        affine_act2d(A.buffer, B.buffer, bias.buffer, C.buffer, dims, kernel_name="gelu_forward", grid=(1, 1))
    with pytest.raises(ValueError):
        affine_act2d(A.buffer, B.buffer, bias.buffer, C.buffer, dims, kernel_name="tanh_forward", grid=(2, 1))
