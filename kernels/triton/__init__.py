"""Triton kernel library."""
