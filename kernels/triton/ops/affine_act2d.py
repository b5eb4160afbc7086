import torch
import triton
import triton.language as tl

from deepnet.activations import TANH_CLAMP


# Dimension record layout: {m, k, n, pbytes, qbytes}, int32.
DIMS_FIELDS = ("m", "k", "n", "pbytes", "qbytes")


@triton.jit
def _activation(x, ACTIVATION: tl.constexpr, CLAMP: tl.constexpr):
    # 0 identity, 1 tanh, 2 sigmoid, 3 relu
    if ACTIVATION == 1:
        # Clamp keeps exp(2x) finite.
        x = tl.minimum(tl.maximum(x, -CLAMP), CLAMP)
        e = tl.exp(2.0 * x)
        x = (e - 1.0) / (e + 1.0)
    elif ACTIVATION == 2:
        x = 1.0 / (1.0 + tl.exp(-x))
    elif ACTIVATION == 3:
        x = tl.maximum(x, 0.0)
    return x


@triton.jit
def _affine_tile(
    A_ptr,
    B_ptr,
    Bias_ptr,
    C_ptr,
    Dims_ptr,
    ACTIVATION: tl.constexpr,
    TILE: tl.constexpr,
    CHECK_BOUNDS: tl.constexpr,
    CLAMP: tl.constexpr,
):
    m = tl.load(Dims_ptr + 0)
    k = tl.load(Dims_ptr + 1)
    n = tl.load(Dims_ptr + 2)
    stride_a = tl.load(Dims_ptr + 3) // 4
    stride_b = tl.load(Dims_ptr + 4) // 4

    pid_k = tl.program_id(0)
    pid_m = tl.program_id(1)
    offs_m = pid_m * TILE + tl.arange(0, TILE)
    offs_k = pid_k * TILE + tl.arange(0, TILE)

    # A is padded to stride_a columns, so the unchecked variant can run the
    # whole padded inner dimension: pad cells are zero.
    if CHECK_BOUNDS:
        inner = n
    else:
        inner = stride_a

    acc = tl.zeros((TILE, TILE), dtype=tl.float32)
    for i in range(0, inner):
        a = tl.load(A_ptr + offs_m * stride_a + i)
        b = tl.load(B_ptr + i * stride_b + offs_k)
        acc += a[:, None] * b[None, :]

    if CHECK_BOUNDS:
        bias = tl.load(Bias_ptr + offs_k, mask=offs_k < k, other=0.0)
    else:
        bias = tl.load(Bias_ptr + offs_k)
    acc = _activation(acc + bias[None, :], ACTIVATION, CLAMP)

    c_ptrs = C_ptr + offs_m[:, None] * stride_b + offs_k[None, :]
    if CHECK_BOUNDS:
        tl.store(c_ptrs, acc, mask=(offs_m[:, None] < m) & (offs_k[None, :] < k))
    else:
        tl.store(c_ptrs, acc)


@triton.jit
def identity_forward_kernel(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, TILE: tl.constexpr, CHECK_BOUNDS: tl.constexpr, CLAMP: tl.constexpr):
    _affine_tile(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, 0, TILE, CHECK_BOUNDS, CLAMP)


@triton.jit
def tanh_forward_kernel(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, TILE: tl.constexpr, CHECK_BOUNDS: tl.constexpr, CLAMP: tl.constexpr):
    _affine_tile(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, 1, TILE, CHECK_BOUNDS, CLAMP)


@triton.jit
def sigmoid_forward_kernel(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, TILE: tl.constexpr, CHECK_BOUNDS: tl.constexpr, CLAMP: tl.constexpr):
    _affine_tile(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, 2, TILE, CHECK_BOUNDS, CLAMP)


@triton.jit
def relu_forward_kernel(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, TILE: tl.constexpr, CHECK_BOUNDS: tl.constexpr, CLAMP: tl.constexpr):
    _affine_tile(A_ptr, B_ptr, Bias_ptr, C_ptr, Dims_ptr, 3, TILE, CHECK_BOUNDS, CLAMP)


KERNELS = {
    "identity_forward": identity_forward_kernel,
    "tanh_forward": tanh_forward_kernel,
    "sigmoid_forward": sigmoid_forward_kernel,
    "relu_forward": relu_forward_kernel,
}


def make_dims(m: int, k: int, n: int, pbytes: int, qbytes: int, *, device: torch.device | str) -> torch.Tensor:
    vals = [int(m), int(k), int(n), int(pbytes), int(qbytes)]
    if any(v < 0 for v in vals):
        raise ValueError(f"dimension record must be non-negative, got {dict(zip(DIMS_FIELDS, vals))}")
    return torch.tensor(vals, dtype=torch.int32, device=device)


def _check_buffers(A: torch.Tensor, B: torch.Tensor, bias: torch.Tensor, C: torch.Tensor, dims: torch.Tensor) -> None:
    for name, t in [("A", A), ("B", B), ("bias", bias), ("C", C)]:
        if t.dtype != torch.float32:
            raise TypeError(f"{name} must be float32, got {t.dtype}")
        if t.ndim != 2:
            raise ValueError(f"{name} must be rank-2 (padded), got rank {t.ndim}")
        if not t.is_contiguous():
            raise ValueError(f"{name} must be contiguous")
    if dims.dtype != torch.int32 or dims.numel() != len(DIMS_FIELDS):
        raise ValueError(f"dims must be an int32 record of {len(DIMS_FIELDS)} fields, got {dims.dtype} x {dims.numel()}")
    if int(A.shape[1]) != int(B.shape[0]):
        raise ValueError(f"shape mismatch: A={tuple(A.shape)} B={tuple(B.shape)}")
    if int(C.shape[0]) < int(A.shape[0]) or int(C.shape[1]) != int(B.shape[1]):
        raise ValueError(f"shape mismatch: C={tuple(C.shape)} expected ({A.shape[0]}, {B.shape[1]})")
    if int(bias.shape[1]) != int(B.shape[1]):
        raise ValueError(f"shape mismatch: bias={tuple(bias.shape)} expected (*, {B.shape[1]})")
    devices = {t.device for t in (A, B, bias, C, dims)}
    if len(devices) != 1:
        raise ValueError(f"all buffers must live on one device, got {sorted(str(d) for d in devices)}")


def affine_act2d(
    A: torch.Tensor,
    B: torch.Tensor,
    bias: torch.Tensor,
    C: torch.Tensor,
    dims: torch.Tensor,
    *,
    kernel_name: str,
    grid: tuple[int, int],
    check_bounds: bool = True,
    tile: int = 8,
    tanh_clamp: float = TANH_CLAMP,
) -> None:
    """
    C = act(A @ B + bias) over tile-padded buffers, written in place.

    `grid` is (tiles along output columns, tiles along output rows).
    """
    try:
        kernel = KERNELS[kernel_name]
    except KeyError:
        raise KeyError(f"unknown kernel entry point {kernel_name!r} (known: {sorted(KERNELS)})") from None
    _check_buffers(A, B, bias, C, dims)
    if int(grid[0]) * tile > int(C.shape[1]) or int(grid[1]) * tile > int(C.shape[0]):
        raise ValueError(f"grid {tuple(grid)} overruns padded output {tuple(C.shape)}")
    if int(grid[0]) == 0 or int(grid[1]) == 0:
        return
    kernel[(int(grid[0]), int(grid[1]))](
        A,
        B,
        bias,
        C,
        dims,
        TILE=tile,
        CHECK_BOUNDS=bool(check_bounds),
        CLAMP=float(tanh_clamp),
        num_warps=1,
    )


def kernel_launcher(kernel_name: str):
    if kernel_name not in KERNELS:
        raise KeyError(f"unknown kernel entry point {kernel_name!r} (known: {sorted(KERNELS)})")

    def launch(A, B, bias, C, dims, *, grid, check_bounds=True):
        affine_act2d(A, B, bias, C, dims, kernel_name=kernel_name, grid=grid, check_bounds=check_bounds)

    launch.__name__ = kernel_name
    return launch


__all__ = [
    "DIMS_FIELDS",
    "KERNELS",
    "affine_act2d",
    "identity_forward_kernel",
    "kernel_launcher",
    "make_dims",
    "relu_forward_kernel",
    "sigmoid_forward_kernel",
    "tanh_forward_kernel",
]
