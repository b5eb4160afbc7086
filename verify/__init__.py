"""Host-side reference and comparison helpers for the forward kernels."""
