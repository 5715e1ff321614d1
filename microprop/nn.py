"""
Neural Network Module for microprop
Implements the building blocks: Neuron, Layer, and Network (a multilayer perceptron)
trained by hand-derived backpropagation with momentum.
"""

import logging
import random

from microprop.engine import (
    Activation,
    DimensionMismatch,
    activate,
    apply_momentum,
    check_finite,
    weighted_sum,
)

logger = logging.getLogger("microprop.nn")


class Module:
    """
    Base class for the network building blocks.
    Provides a flat view of every trainable weight.
    """

    def parameters(self):
        """
        Return a list of all trainable weights (biases included).
        Override this in subclasses.
        """
        return []

    def num_parameters(self):
        return len(self.parameters())


class Neuron(Module):
    """
    A single neuron with:
    - A weight vector whose index 0 is the bias
    - A momentum buffer holding the previous update of each weight
    - The output and derivative of its last forward pass

    Formula: output = activation(w0 + w1*x1 + w2*x2 + ... + wn*xn)
    """

    def __init__(self, nin, kind, random_source=random.random):
        """
        Initialize a neuron.

        Args:
            nin: Number of inputs (width of the previous layer)
            kind: Activation.HIDDEN (Leaky-ReLU) or Activation.OUTPUT (sigmoid)
            random_source: Nullary callable returning floats in [0, 1)

        All 1 + nin weights are drawn from random_source, bias first.
        The momentum buffer starts at zero.
        """
        self.kind = kind
        self.weights = [random_source() for _ in range(1 + nin)]
        self.momentum = [0.0] * len(self.weights)
        # Transient state, overwritten by every forward pass
        self.output = 0.0
        self.derivative = 0.0

    @classmethod
    def from_weights(cls, weights, kind):
        """Build a neuron with explicit weights (bias first)."""
        weights = list(weights)
        if not weights:
            raise DimensionMismatch("neuron weights", "at least 1 (the bias)", 0)
        neuron = cls(0, kind, random_source=lambda: 0.0)
        neuron.weights = [float(w) for w in weights]
        neuron.momentum = [0.0] * len(neuron.weights)
        return neuron

    @property
    def nin(self):
        """Number of inputs this neuron is sized for."""
        return len(self.weights) - 1

    def forward(self, inputs):
        """
        Forward pass: compute the neuron's output given inputs.

        Args:
            inputs: List of numbers, one per unit of the previous layer

        Returns:
            The activated output (a float)

        Steps:
            1. Compute weighted sum: w0 + w1*x1 + ... + wn*xn
            2. Apply the activation, remembering its derivative for learn()
        """
        total = weighted_sum(self.weights, inputs)
        self.output, self.derivative = activate(self.kind, total)
        return self.output

    def __call__(self, inputs):
        return self.forward(inputs)

    def update(self, signal, momentum_factor, inputs):
        """
        Move the weights along the learning signal.

        Args:
            signal: learning_rate * derivative * error for this neuron
            momentum_factor: Fraction of the previous update to carry over
            inputs: The inputs of the forward pass being corrected
        """
        apply_momentum(self.weights, self.momentum, signal, momentum_factor, inputs)

    def weight_at(self, i):
        """
        Weight connecting this neuron to unit i of the previous layer.

        Only the backward pass reads this, to route this neuron's error back
        to the layer behind it. Index 0 of the weight vector is the bias,
        hence the offset.
        """
        return self.weights[i + 1]

    def parameters(self):
        """
        Return all trainable weights of this neuron.

        Returns:
            The weight vector itself: [bias, w1, w2, ..., wn]
        """
        return self.weights

    def __repr__(self):
        """String representation for printing."""
        name = "LeakyReLU" if self.kind is Activation.HIDDEN else "Sigmoid"
        return f"{name}Neuron({self.nin})"


class Layer(Module):
    """
    A layer of neurons (fully connected / dense layer).
    All neurons in the layer receive the same inputs and share one variant.

    Example: Layer(2, 3, Activation.HIDDEN) creates 3 neurons, each taking 2 inputs
             Input [x1, x2] -> [neuron1, neuron2, neuron3] -> [out1, out2, out3]
    """

    def __init__(self, nin, nout, kind, random_source=random.random):
        """
        Initialize a layer of neurons.

        Args:
            nin: Number of inputs to each neuron
            nout: Number of neurons in this layer (number of outputs)
            kind: Activation shared by every neuron of the layer
            random_source: Passed to each Neuron for weight initialization
        """
        self.nin = nin
        self.kind = kind
        self.neurons = [Neuron(nin, kind, random_source) for _ in range(nout)]

    @classmethod
    def from_neurons(cls, neurons):
        """Build a layer from existing neurons (same variant and input width)."""
        neurons = list(neurons)
        if not neurons:
            raise DimensionMismatch("layer neurons", "at least 1", 0)
        first = neurons[0]
        for n in neurons[1:]:
            if n.nin != first.nin:
                raise DimensionMismatch("neuron inputs", first.nin, n.nin)
            if n.kind is not first.kind:
                raise ValueError(f"mixed activations in one layer: {first.kind} and {n.kind}")
        layer = cls(first.nin, 0, first.kind)
        layer.neurons = neurons
        return layer

    def width(self):
        """Number of neurons in the layer."""
        return len(self.neurons)

    def __len__(self):
        return len(self.neurons)

    def run(self, inputs):
        """
        Forward pass: apply all neurons to the input.

        Args:
            inputs: Input values, one per unit of the previous layer

        Returns:
            List of outputs, one per neuron, in neuron order
        """
        if len(inputs) != self.nin:
            raise DimensionMismatch("layer input", self.nin, len(inputs))
        return [n.forward(inputs) for n in self.neurons]

    def __call__(self, inputs):
        return self.run(inputs)

    def outputs(self):
        """Outputs of the last forward pass, one per neuron."""
        return [n.output for n in self.neurons]

    def propagate_error_gradient(self, errors, previous_width):
        """
        Route this layer's errors back to the layer behind it.

        Args:
            errors: One error per neuron of this layer
            previous_width: Number of units in the layer behind this one

        Returns:
            gradient, with gradient[i] = sum over neurons n of
                weight_at(n, i) * derivative(n) * errors[n]

        Reads the weights and derivatives as the last forward pass left them,
        so it has to run before apply_update() in the same training step.
        """
        self._check_errors(errors)
        if previous_width != self.nin:
            raise DimensionMismatch("previous layer width", self.nin, previous_width)

        gradient = []
        for i in range(previous_width):
            acc = 0.0
            for n, error in zip(self.neurons, errors):
                acc += n.weight_at(i) * n.derivative * error
                check_finite(acc, "error gradient")
            gradient.append(acc)
        return gradient

    def apply_update(self, errors, previous_outputs, learning_rate, momentum_factor):
        """
        Update every neuron's weights from its error.

        Args:
            errors: One error per neuron of this layer
            previous_outputs: Inputs the layer saw on its last forward pass
            learning_rate: Step size
            momentum_factor: Fraction of the previous update to carry over

        Each neuron gets the learning signal learning_rate * derivative * error.
        """
        self._check_errors(errors)
        if len(previous_outputs) != self.nin:
            raise DimensionMismatch("previous layer outputs", self.nin, len(previous_outputs))

        for n, error in zip(self.neurons, errors):
            n.update(learning_rate * n.derivative * error, momentum_factor, previous_outputs)

    def _check_errors(self, errors):
        if len(errors) != len(self.neurons):
            raise DimensionMismatch("layer errors", len(self.neurons), len(errors))

    def parameters(self):
        """
        Return all trainable weights from all neurons in the layer.

        Returns:
            Flattened list of all weights: [n1.b, n1.w1, ..., n2.b, n2.w1, ...]
        """
        return [p for n in self.neurons for p in n.parameters()]

    def __repr__(self):
        """String representation showing all neurons."""
        return f"Layer of [{', '.join(str(n) for n in self.neurons)}]"


class Network(Module):
    """
    Multilayer perceptron: a sequence of layers trained by backpropagation.

    Example: Network([2, 6, 2]) creates:
        Input(2) -> Layer(2->6, Leaky-ReLU) -> Layer(6->2, sigmoid) -> Output(2)

    Usage is a run()/learn() pair per training sample:
        result = net.run(inputs)
        net.learn([e - r for e, r in zip(expected, result)], 0.05, 0.2)

    learn() reads state that run() leaves behind (the cached input and each
    neuron's output and derivative), so pairs must not interleave.
    """

    def __init__(self, topology, random_source=random.random):
        """
        Initialize a network.

        Args:
            topology: Widths [input, hidden..., output]; at least two entries
            random_source: Nullary callable returning floats in [0, 1),
                           called once per weight

        Architecture:
            - Every layer except the last uses Leaky-ReLU (Activation.HIDDEN)
            - The last layer uses the sigmoid (Activation.OUTPUT)
        """
        topology = list(topology)
        if len(topology) < 2:
            raise DimensionMismatch("topology length", "at least 2", len(topology))
        for width in topology:
            if isinstance(width, bool) or not isinstance(width, int) or width < 1:
                raise DimensionMismatch("layer width", "a positive integer", width)

        self._topology = tuple(topology)
        last = len(topology) - 2
        # Layer i connects topology[i] inputs to topology[i+1] neurons
        self.layers = [
            Layer(
                nin,
                nout,
                Activation.OUTPUT if i == last else Activation.HIDDEN,
                random_source,
            )
            for i, (nin, nout) in enumerate(zip(topology, topology[1:]))
        ]
        self._input = None
        logger.debug(
            "Built network %s with %d weights",
            self._topology,
            sum((nin + 1) * nout for nin, nout in zip(topology, topology[1:])),
        )

    @property
    def topology(self):
        """Layer widths, input width first."""
        return self._topology

    def run(self, inputs):
        """
        Forward pass: pass input through all layers sequentially.

        Args:
            inputs: Input values, topology[0] of them

        Returns:
            Output of the final layer, topology[-1] values

        Data flows: inputs -> layer1 -> layer2 -> ... -> layerN -> output
        """
        if len(inputs) != self._topology[0]:
            raise DimensionMismatch("network input", self._topology[0], len(inputs))
        # The first layer's update needs the original input, keep a copy
        self._input = list(inputs)
        x = self._input
        for layer in self.layers:
            x = layer.run(x)
        return x

    def __call__(self, inputs):
        return self.run(inputs)

    def learn(self, output_errors, learning_rate, momentum_factor):
        """
        Backward pass: propagate output errors and update every weight.

        Args:
            output_errors: expected - output, one per output unit
            learning_rate: Step size (positive)
            momentum_factor: Fraction of the previous update carried over, in [0, 1)

        Walks the layers from last to first. For each layer but the first:
            1. gradient = errors routed to the layer behind, from the
               weights of the last forward pass
            2. update this layer from the outputs of the layer behind
            3. errors = gradient
        The first layer is updated from the cached network input.
        """
        if self._input is None:
            raise RuntimeError("learn() called before run()")
        errors = list(output_errors)
        if len(errors) != self._topology[-1]:
            raise DimensionMismatch("output errors", self._topology[-1], len(errors))

        for k in range(len(self.layers) - 1, 0, -1):
            layer, behind = self.layers[k], self.layers[k - 1]
            # Gradient strictly before the update: it needs the old weights
            gradient = layer.propagate_error_gradient(errors, behind.width())
            layer.apply_update(errors, behind.outputs(), learning_rate, momentum_factor)
            errors = gradient

        self.layers[0].apply_update(errors, self._input, learning_rate, momentum_factor)

    def parameters(self):
        """
        Return all trainable weights from all layers.

        Returns:
            Flattened list of all weights in the network
        """
        return [p for layer in self.layers for p in layer.parameters()]

    def __repr__(self):
        """String representation showing the complete network architecture."""
        return f"Network of [{', '.join(str(layer) for layer in self.layers)}]"
