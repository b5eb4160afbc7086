from .base import Invalidated, Layer
from .fully_connected import DispatchGrid, FullyConnectedLayer

__all__ = ["Layer", "Invalidated", "FullyConnectedLayer", "DispatchGrid"]
