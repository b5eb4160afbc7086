"""
GPU kernel library.

Kernels are Triton programs under `kernels/triton/ops/`; each module holds the
`@triton.jit` entry points plus a thin launcher that validates buffers and
dispatches the grid. On machines without CUDA they run through Triton's
interpreter (`TRITON_INTERPRET=1`).
"""
