"""microprop: a small multilayer perceptron trained by backpropagation with momentum."""

from microprop.engine import (
    Activation,
    DimensionMismatch,
    InternalInconsistency,
    MicropropError,
)
from microprop.nn import Layer, Network, Neuron

__version__ = "0.1.0"

__all__ = [
    "Activation",
    "DimensionMismatch",
    "InternalInconsistency",
    "Layer",
    "MicropropError",
    "Network",
    "Neuron",
]
