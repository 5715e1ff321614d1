"""
Numeric engine for microprop
This implements the per-neuron arithmetic: weighted sums, the two activation
functions with their hand-derived derivatives, and the momentum update rule.

Key concept: there is no computation graph here. Every activation returns its
derivative alongside its output, and the layers thread those derivatives
backward by hand.
"""

import enum
import math


LEAKY_SLOPE = 0.01


class MicropropError(Exception):
    """Base class for every error raised by microprop."""


class DimensionMismatch(MicropropError, ValueError):
    """
    A vector or topology does not have the length the network expects.

    Raised immediately when an input or error vector disagrees with the width
    of the layer it is fed to, or when a topology is too short to describe a
    network. Never recovered internally: vectors are not truncated or padded.
    """

    def __init__(self, what, expected, actual):
        self.what = what
        self.expected = expected
        self.actual = actual
        super().__init__(f"{what}: expected {expected}, got {actual}")


class InternalInconsistency(MicropropError, AssertionError):
    """
    A weighted sum, gradient or weight became NaN or infinite.

    Only raised while Python runs with assertions enabled; under ``python -O``
    the checks are skipped and non-finite values propagate silently.
    """


class Activation(enum.Enum):
    """
    The two neuron variants.

    HIDDEN neurons use Leaky-ReLU, OUTPUT neurons use the logistic sigmoid.
    A neuron's variant is fixed when it is built.
    """

    HIDDEN = "leaky_relu"
    OUTPUT = "sigmoid"


def check_finite(value, what):
    """Raise InternalInconsistency if value is NaN or infinite (debug runs only)."""
    if __debug__:
        if not math.isfinite(value):
            raise InternalInconsistency(f"{what} is not finite: {value!r}")
    return value


def sigmoid(total):
    """
    Logistic sigmoid: 1 / (1 + e^-total)

    For very negative totals e^-total overflows a float; the sigmoid's limit
    there is 0, so that is what we return.

    Example:
        sigmoid(0.0)  # 0.5
        sigmoid(0.5)  # 0.6224593...
    """
    try:
        return 1.0 / (1.0 + math.exp(-total))
    except OverflowError:
        return 0.0


def activate(kind, total):
    """
    Apply the activation of a neuron variant to a weighted sum.

    Args:
        kind: Activation.HIDDEN or Activation.OUTPUT
        total: The neuron's weighted sum (bias included)

    Returns:
        Tuple (output, derivative). The derivative is what the backward pass
        multiplies error signals by.

    HIDDEN (Leaky-ReLU):
        output = total if total >= 0 else LEAKY_SLOPE * total
        derivative = 1 if total >= 0 else LEAKY_SLOPE

    OUTPUT (sigmoid):
        output = sigmoid(total)
        derivative = 1, always. The backward pass treats the output
        nonlinearity as the identity while the forward pass still squashes.

    Example:
        activate(Activation.HIDDEN, -2.0)  # (-0.02, 0.01)
        activate(Activation.OUTPUT, 0.5)   # (0.6224593..., 1.0)
    """
    if kind is Activation.HIDDEN:
        if total >= 0:
            return total, 1.0
        return LEAKY_SLOPE * total, LEAKY_SLOPE
    if kind is Activation.OUTPUT:
        return sigmoid(total), 1.0
    raise TypeError(f"unknown activation: {kind!r}")


def weighted_sum(weights, inputs):
    """
    Compute weights[0] + weights[1]*inputs[0] + ... + weights[N]*inputs[N-1]

    weights[0] is the bias: it multiplies an implicit constant input of 1.
    """
    total = weights[0]
    for w, x in zip(weights[1:], inputs):
        total += w * x
    return check_finite(total, "weighted sum")


def apply_momentum(weights, momentum, signal, momentum_factor, inputs):
    """
    Update weights in place using gradient descent with momentum.

    Args:
        weights: The neuron's weight vector (bias at index 0), mutated
        momentum: The previous update of each weight, same layout, mutated
        signal: The neuron's learning signal (learning_rate * derivative * error)
        momentum_factor: Fraction of the previous update carried over, in [0, 1)
        inputs: What the neuron saw on its last forward pass

    Update rule, for the bias (implicit input of 1):
        delta = momentum_factor * momentum[0] + signal
    and for every other weight i:
        delta = momentum_factor * momentum[i] + signal * inputs[i-1]
    followed by momentum[i] = delta and weights[i] += delta.

    With momentum_factor = 0 this is plain gradient descent.
    """
    delta = momentum_factor * momentum[0] + signal
    momentum[0] = delta
    weights[0] += delta
    check_finite(weights[0], "bias weight")

    for i, x in enumerate(inputs, start=1):
        delta = momentum_factor * momentum[i] + signal * x
        momentum[i] = delta
        weights[i] += delta
        check_finite(weights[i], f"weight {i}")
